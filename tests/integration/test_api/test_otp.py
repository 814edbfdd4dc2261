"""Integration tests for code display, delivery and health endpoints."""
from urllib.parse import parse_qs, urlsplit

import pytest

from app.main import app
from app.services import CheckInService, OTPEngine
from tests.utils import T0, T0_WINDOW_START, WINDOW_MS


@pytest.mark.integration
class TestCurrentCode:
    """Test GET /api/v1/otp/current and its QR variant."""

    def test_current_code(self, client, engine):
        response = client.get("/api/v1/otp/current")

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == engine.generate(T0)
        assert data["next_code"] == engine.generate(T0 + WINDOW_MS)
        assert data["expires_in_seconds"] == (T0_WINDOW_START + WINDOW_MS - T0) // 1000

    def test_current_code_rotates(self, client, clock):
        first = client.get("/api/v1/otp/current").json()
        clock.advance(WINDOW_MS)
        second = client.get("/api/v1/otp/current").json()

        assert second["code"] == first["next_code"]

    def test_current_qr(self, client, engine, renderer):
        response = client.get("/api/v1/otp/current/qr", params={"size": 300})

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == engine.generate(T0)
        assert data["size"] == 300
        assert data["qr_data_url"].startswith("data:image/svg+xml;base64,")
        assert renderer.extract_code(data["url"]) == data["code"]
        assert data["expires_in_seconds"] > 0

    def test_current_qr_png(self, client):
        response = client.get("/api/v1/otp/current/qr", params={"image_format": "png", "format": "web"})

        assert response.status_code == 200
        assert response.json()["url"].startswith("https://web.whatsapp.com/send")
        assert response.json()["qr_data_url"].startswith("data:image/png;base64,")

    def test_bad_size(self, client):
        response = client.get("/api/v1/otp/current/qr", params={"size": 10})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CONFIGURATION"


@pytest.mark.integration
class TestArbitraryCode:
    """Test rendering for a code supplied in the path."""

    def test_mobile_url(self, client):
        response = client.get("/api/v1/otp/abc123/url")

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == "ABC123"
        assert parse_qs(urlsplit(data["urls"]["mobile"]).query)["text"] == ["Check-in code: ABC123"]

    def test_all_urls(self, client):
        response = client.get("/api/v1/otp/ABC123/url", params={"format": "all", "qr_optimized": True})

        assert set(response.json()["urls"]) == {"mobile", "web", "qr"}

    def test_invalid_code(self, client):
        response = client.get("/api/v1/otp/ABC/url")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_OTP_FORMAT"

    def test_unknown_format(self, client):
        assert client.get("/api/v1/otp/ABC123/url", params={"format": "sms"}).status_code == 400

    def test_code_qr(self, client):
        response = client.get("/api/v1/otp/ABC123/qr")

        assert response.status_code == 200
        assert response.json()["size"] == 200

    def test_delivery_config(self, client):
        response = client.get("/api/v1/delivery/config")

        assert response.json() == {
            "target_number": "15550100000",
            "message_template": "Check-in code: {otp}",
        }


@pytest.mark.integration
class TestHealth:
    """Test GET /health."""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["components"]) == {"otp_engine", "checkin_store", "renderer"}

    def test_weak_secret_is_degraded(self, client, store, clock):
        weak = OTPEngine("changeme", window_ms=WINDOW_MS, clock=clock)
        app.state.otp_engine = weak
        app.state.checkin_service = CheckInService(weak, store, clock=clock)

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_store_down_is_unhealthy(self, client, store):
        store.close()

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["components"]["checkin_store"]["status"] == "unhealthy"

    def test_missing_services(self, client):
        app.state.checkin_service = None

        response = client.get("/health")

        assert response.status_code == 503
        assert client.get("/api/v1/otp/current").status_code == 503
