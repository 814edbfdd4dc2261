"""Integration tests for the check-in API."""
from datetime import timedelta

import pytest

from app.core.exceptions import StorageConnectivityError
from tests.utils import PHONE, T0, WINDOW_MS


@pytest.mark.integration
class TestSubmitCheckin:
    """Test POST /api/v1/checkins status mapping."""

    def test_valid_code(self, client, engine):
        response = client.post("/api/v1/checkins", json={"phone_number": PHONE, "otp": engine.generate(T0)})

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is True
        assert data["reason_code"] == "CURRENT_WINDOW"
        assert data["status"] == "valid"
        assert data["time_window"] == "current"
        assert len(data["record_id"]) == 32

    def test_previous_window_code(self, client, engine):
        response = client.post(
            "/api/v1/checkins",
            json={"phone_number": PHONE, "otp": engine.generate(T0 - WINDOW_MS)},
        )

        assert response.status_code == 200
        assert response.json()["reason_code"] == "PREVIOUS_WINDOW"

    def test_expired_code_is_gone(self, client, engine):
        response = client.post(
            "/api/v1/checkins",
            json={"phone_number": PHONE, "otp": engine.generate(T0 - 5 * WINDOW_MS)},
        )

        assert response.status_code == 410
        assert response.json()["status"] == "expired"

    def test_future_code_is_bad_request(self, client, engine):
        response = client.post(
            "/api/v1/checkins",
            json={"phone_number": PHONE, "otp": engine.generate(T0 + WINDOW_MS)},
        )

        assert response.status_code == 400
        assert response.json()["reason_code"] == "FUTURE_OTP"

    def test_short_code_recorded_invalid(self, client, store):
        response = client.post("/api/v1/checkins", json={"phone_number": PHONE, "otp": "ABCDE"})

        assert response.status_code == 400
        data = response.json()
        assert data["reason_code"] == "INVALID_FORMAT"
        assert data["status"] == "invalid"
        assert store.query_by_phone(PHONE)[0]["id"] == data["record_id"]

    def test_client_timestamp(self, client, engine, clock):
        stamp = (clock.now() - timedelta(seconds=30)).isoformat().replace("+00:00", "Z")

        response = client.post(
            "/api/v1/checkins",
            json={"phone_number": PHONE, "otp": engine.generate(T0 - WINDOW_MS), "timestamp": stamp},
        )

        assert response.status_code == 200

    def test_bad_phone_is_structured_error(self, client, engine, store):
        response = client.post("/api/v1/checkins", json={"phone_number": "12", "otp": engine.generate(T0)})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "INVALID_PHONE_FORMAT"
        assert store.count() == 0

    def test_stale_timestamp_rejected(self, client, engine, clock):
        stamp = (clock.now() - timedelta(hours=1)).isoformat()

        response = client.post(
            "/api/v1/checkins",
            json={"phone_number": PHONE, "otp": engine.generate(T0), "timestamp": stamp},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_TIMESTAMP"

    def test_non_ascii_code_is_gone(self, client, store):
        response = client.post("/api/v1/checkins", json={"phone_number": PHONE, "otp": "\u00c4BCDEF"})

        assert response.status_code == 410
        assert response.json()["reason_code"] == "EXPIRED_OR_INVALID"
        assert store.query_by_phone(PHONE)[0]["validation_status"] == "expired"

    def test_very_long_code_recorded_invalid(self, client, store):
        response = client.post("/api/v1/checkins", json={"phone_number": PHONE, "otp": "X" * 1000})

        assert response.status_code == 400
        assert response.json()["reason_code"] == "INVALID_FORMAT"
        assert len(store.query_by_phone(PHONE)[0]["otp"]) == 64

    def test_missing_fields_rejected(self, client):
        response = client.post("/api/v1/checkins", json={"phone_number": PHONE})

        assert response.status_code == 422

    def test_validation_fault_is_recorded_system_error(self, client, engine, store, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(engine, "validate", explode)

        response = client.post("/api/v1/checkins", json={"phone_number": PHONE, "otp": "ABC123"})

        assert response.status_code == 500
        data = response.json()
        assert data["reason_code"] == "SYSTEM_ERROR"
        assert data["status"] == "error"
        assert store.query_by_phone(PHONE)[0]["validation_status"] == "error"

    def test_storage_outage_is_service_unavailable(self, client, engine, store, monkeypatch):
        def unavailable(*args, **kwargs):
            raise StorageConnectivityError("Database unavailable")

        monkeypatch.setattr(store, "record_attempt", unavailable)

        response = client.post("/api/v1/checkins", json={"phone_number": PHONE, "otp": engine.generate(T0)})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "DATABASE_CONNECTION_FAILED"

    def test_api_version_and_request_id_headers(self, client, engine):
        response = client.post("/api/v1/checkins", json={"phone_number": PHONE, "otp": engine.generate(T0)})

        assert "X-API-Version" in response.headers
        assert "X-Request-ID" in response.headers


@pytest.mark.integration
class TestCheckinHistory:
    """Test admin history, stats and purge endpoints."""

    def _submit(self, client, engine, phone=PHONE, offset_windows=0):
        return client.post(
            "/api/v1/checkins",
            json={"phone_number": phone, "otp": engine.generate(T0 + offset_windows * WINDOW_MS)},
        )

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/v1/checkins"),
        ("get", "/api/v1/checkins/stats"),
        ("delete", "/api/v1/checkins"),
    ])
    def test_requires_admin(self, client, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 401

    def test_todays_checkins(self, admin_client, engine):
        self._submit(admin_client, engine)
        self._submit(admin_client, engine, offset_windows=-5)

        response = admin_client.get("/api/v1/checkins")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert {c["validation_status"] for c in data["checkins"]} == {"valid", "expired"}

    def test_filter_by_phone(self, admin_client, engine):
        self._submit(admin_client, engine)
        self._submit(admin_client, engine, phone="+15559876543")

        response = admin_client.get("/api/v1/checkins", params={"phone": "+1 555 123 4567", "limit": 10})

        assert response.json()["count"] == 1
        assert response.json()["checkins"][0]["phone_number"] == PHONE

    def test_filter_by_date(self, admin_client, engine, clock):
        self._submit(admin_client, engine)
        today = clock.now().date().isoformat()

        assert admin_client.get("/api/v1/checkins", params={"date": today}).json()["count"] == 1
        assert admin_client.get("/api/v1/checkins", params={"date": "2020-01-01"}).json()["count"] == 0

    def test_date_range_validation(self, admin_client):
        response = admin_client.get(
            "/api/v1/checkins",
            params={"start_date": "2023-11-15", "end_date": "2023-11-14"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_DATE_RANGE"

    def test_bad_limit(self, admin_client):
        response = admin_client.get("/api/v1/checkins", params={"phone": PHONE, "limit": 5000})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_LIMIT"

    def test_stats(self, admin_client, engine):
        self._submit(admin_client, engine)
        self._submit(admin_client, engine, offset_windows=1)
        admin_client.post("/api/v1/checkins", json={"phone_number": "+15559876543", "otp": "XYZ"})

        response = admin_client.get("/api/v1/checkins/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["counts_by_status"] == {"valid": 1, "expired": 0, "invalid": 2, "error": 0}
        assert data["unique_subjects"] == 2

    def test_purge(self, admin_client, store, clock):
        store.record_attempt(PHONE, "OLD111", "valid", clock.now() - timedelta(days=120))
        store.record_attempt(PHONE, "NEW111", "valid", clock.now())

        response = admin_client.delete("/api/v1/checkins")

        assert response.status_code == 200
        assert response.json() == {"deleted": 1, "older_than_days": 90}

    def test_purge_negative_days(self, admin_client):
        response = admin_client.delete("/api/v1/checkins", params={"older_than_days": -1})

        assert response.status_code == 400
