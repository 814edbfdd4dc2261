"""Unit tests for check-in orchestration."""
from datetime import timedelta

import pytest

from app.core.constants import (
    REASON_CURRENT_WINDOW,
    REASON_EXPIRED_OR_INVALID,
    REASON_FUTURE_OTP,
    REASON_INVALID_FORMAT,
    REASON_PREVIOUS_WINDOW,
    REASON_SYSTEM_ERROR,
)
from app.core.exceptions import (
    ErrorCodes,
    ServiceUnavailableError,
    StorageConnectivityError,
    StorageQueryError,
    ValidationError,
)
from app.services.checkin import CheckInService
from tests.utils import PHONE, T0, WINDOW_MS


def _failing_then(store, failures, error):
    """Wrap store.record_attempt so the first ``failures`` calls raise ``error``."""
    real = store.record_attempt
    calls = []

    def record_attempt(*args, **kwargs):
        calls.append(args)
        if len(calls) <= failures:
            raise error
        return real(*args, **kwargs)

    store.record_attempt = record_attempt
    return calls


@pytest.mark.unit
class TestCheckIn:
    """Test the submission state machine."""

    def test_current_code_accepted(self, service, engine, store):
        outcome = service.check_in(PHONE, engine.generate(T0))

        assert outcome.accepted is True
        assert outcome.reason_code == REASON_CURRENT_WINDOW
        assert outcome.status == "valid"
        assert outcome.time_window == "current"
        assert store.query_by_phone(PHONE)[0]["id"] == outcome.record_id

    def test_previous_window_accepted(self, service, engine):
        outcome = service.check_in(PHONE, engine.generate(T0 - WINDOW_MS))

        assert outcome.accepted is True
        assert outcome.reason_code == REASON_PREVIOUS_WINDOW

    def test_expired_code_recorded_as_expired(self, service, engine, store):
        outcome = service.check_in(PHONE, engine.generate(T0 - 3 * WINDOW_MS))

        assert outcome.accepted is False
        assert outcome.reason_code == REASON_EXPIRED_OR_INVALID
        assert outcome.status == "expired"
        assert store.query_by_phone(PHONE)[0]["validation_status"] == "expired"

    def test_future_code_recorded_as_invalid(self, service, engine):
        outcome = service.check_in(PHONE, engine.generate(T0 + WINDOW_MS))

        assert outcome.reason_code == REASON_FUTURE_OTP
        assert outcome.status == "invalid"

    def test_five_character_code_recorded_as_invalid(self, service, store):
        outcome = service.check_in(PHONE, "ABCDE")

        assert outcome.accepted is False
        assert outcome.reason_code == REASON_INVALID_FORMAT
        records = store.query_by_phone(PHONE)
        assert len(records) == 1
        assert records[0]["validation_status"] == "invalid"
        assert records[0]["otp"] == "ABCDE"

    def test_phone_is_normalized_before_storage(self, service, engine, store):
        service.check_in("+1 (555) 123-4567", engine.generate(T0))

        assert store.query_by_phone(PHONE)[0]["phone_number"] == PHONE

    def test_malformed_phone_records_nothing(self, service, engine, store):
        with pytest.raises(ValidationError) as exc_info:
            service.check_in("call me", engine.generate(T0))

        assert exc_info.value.code == ErrorCodes.INVALID_PHONE_FORMAT
        assert store.count() == 0

    def test_client_timestamp_used_for_validation(self, service, engine, store, clock):
        # Code from two windows back is still previous-window at a timestamp one window ago
        earlier = clock.now() - timedelta(milliseconds=WINDOW_MS)
        outcome = service.check_in(PHONE, engine.generate(T0 - 2 * WINDOW_MS), earlier.isoformat())

        assert outcome.reason_code == REASON_PREVIOUS_WINDOW
        assert store.query_by_phone(PHONE)[0]["timestamp"] == earlier

    def test_timestamp_outside_tolerance_rejected(self, service, engine, store, clock):
        far = (clock.now() - timedelta(minutes=10)).isoformat()

        with pytest.raises(ValidationError) as exc_info:
            service.check_in(PHONE, engine.generate(T0), far)

        assert exc_info.value.code == ErrorCodes.INVALID_TIMESTAMP
        assert store.count() == 0

    def test_z_suffix_timestamp_accepted(self, service, engine, clock):
        stamp = clock.now().isoformat().replace("+00:00", "Z")

        assert service.check_in(PHONE, engine.generate(T0), stamp).accepted is True

    def test_overlong_code_stored_clipped(self, service, store):
        service.check_in(PHONE, "X" * 500)

        assert len(store.query_by_phone(PHONE)[0]["otp"]) == 64

    @pytest.mark.parametrize("presented", ["\u00c4BCDEF", "\uff11\uff12\uff13\uff14\uff15\uff16"])
    def test_non_ascii_code_recorded_as_expired(self, service, store, presented):
        outcome = service.check_in(PHONE, presented)

        assert outcome.accepted is False
        assert outcome.reason_code == REASON_EXPIRED_OR_INVALID
        assert outcome.status == "expired"
        assert store.query_by_phone(PHONE)[0]["validation_status"] == "expired"


@pytest.mark.unit
class TestCheckInFailures:
    """Test error recording and propagation."""

    def test_validation_exception_recorded_as_error(self, service, engine, store, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("hmac backend unavailable")

        monkeypatch.setattr(engine, "validate", explode)

        outcome = service.check_in(PHONE, "ABC123")

        assert outcome.accepted is False
        assert outcome.reason_code == REASON_SYSTEM_ERROR
        assert outcome.status == "error"
        assert store.query_by_phone(PHONE)[0]["validation_status"] == "error"

    def test_persist_failure_writes_error_record(self, service, engine, store):
        calls = _failing_then(store, 1, StorageQueryError("Database query failed"))

        outcome = service.check_in(PHONE, engine.generate(T0))

        assert len(calls) == 2
        assert calls[1][2] == "error"
        assert outcome.accepted is False
        assert outcome.reason_code == REASON_SYSTEM_ERROR
        assert outcome.status == "error"
        assert store.query_by_phone(PHONE)[0]["id"] == outcome.record_id

    def test_both_writes_failing_propagates_original(self, service, engine, store):
        original = StorageConnectivityError("Database unavailable")
        calls = _failing_then(store, 2, original)

        with pytest.raises(StorageConnectivityError) as exc_info:
            service.check_in(PHONE, engine.generate(T0))

        assert exc_info.value is original
        assert len(calls) == 2
        assert store.count() == 0

    def test_missing_engine_unavailable(self, store, clock):
        service = CheckInService(None, store, clock=clock)

        with pytest.raises(ServiceUnavailableError):
            service.check_in(PHONE, "ABC123")
        assert store.count() == 0

    def test_missing_store_unavailable(self, engine, clock):
        service = CheckInService(engine, None, clock=clock)

        with pytest.raises(ServiceUnavailableError):
            service.check_in(PHONE, "ABC123")


@pytest.mark.unit
class TestHistory:
    """Test read-side operations."""

    def test_get_checkins_by_phone_normalizes(self, service, engine):
        service.check_in(PHONE, engine.generate(T0))

        assert len(service.get_checkins_by_phone("1-555-123-4567")) == 1

    def test_limit_validated(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.get_checkins_by_phone(PHONE, 0)
        assert exc_info.value.code == ErrorCodes.INVALID_LIMIT

        with pytest.raises(ValidationError):
            service.get_checkins_by_phone(PHONE, 1001)

    def test_get_checkins_by_date(self, service, engine, clock):
        service.check_in(PHONE, engine.generate(T0))

        assert len(service.get_checkins_by_date(clock.now().date().isoformat())) == 1
        assert service.get_checkins_by_date("2020-01-01") == []

    def test_bad_date_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.get_checkins_by_date("14/11/2023")
        assert exc_info.value.code == ErrorCodes.INVALID_DATE_FORMAT

    def test_reversed_range_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.get_checkins_by_date_range("2023-11-15", "2023-11-14")
        assert exc_info.value.code == ErrorCodes.INVALID_DATE_RANGE

    def test_todays_checkins_and_stats(self, service, engine):
        service.check_in(PHONE, engine.generate(T0))
        service.check_in(PHONE, "ABCDE")
        service.check_in("+15559876543", engine.generate(T0 - 3 * WINDOW_MS))

        assert len(service.get_todays_checkins()) == 3
        stats = service.get_stats()
        assert stats["total"] == 3
        assert stats["counts_by_status"] == {"valid": 1, "expired": 1, "invalid": 1, "error": 0}
        assert stats["unique_subjects"] == 2

    def test_purge(self, service, store, clock):
        store.record_attempt(PHONE, "OLD111", "valid", clock.now() - timedelta(days=30))

        assert service.purge_old_checkins(7) == 1

    def test_current_code_uses_clock(self, service, engine):
        assert service.current_code().code == engine.generate(T0)


@pytest.mark.unit
class TestServiceHealth:
    """Test combined health reporting."""

    def test_healthy(self, service):
        health = service.health_status()

        assert health["status"] == "healthy"
        assert set(health["components"]) == {"otp_engine", "checkin_store"}

    def test_unhealthy_without_engine(self, store, clock):
        assert CheckInService(None, store, clock=clock).health_status()["status"] == "unhealthy"
