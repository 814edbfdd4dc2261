"""
Check-in orchestration.

A submission moves through received -> validated -> classified -> persisted
-> reported. Every attempt that gets past input validation is written to the
store, including rejected codes and system faults, so the log doubles as an
audit trail.
"""
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from app.core.clock import Clock, SystemClock, datetime_to_ms
from app.core.constants import (
    DEFAULT_TIMESTAMP_TOLERANCE_MS,
    REASON_EXPIRED_OR_INVALID,
    REASON_SYSTEM_ERROR,
    STATUS_ERROR,
    STATUS_EXPIRED,
    STATUS_INVALID,
    STATUS_VALID,
)
from app.core.exceptions import ServiceUnavailableError, StorageError
from app.core.logging_config import get_logger, mask_code, mask_phone_number
from app.core.sanitization import (
    clip_presented_code,
    normalize_phone_number,
    parse_date,
    parse_date_range,
    parse_timestamp,
    validate_limit,
)
from app.db.store import CheckInStore
from app.services.otp import CurrentCode, OTPEngine, ValidationResult

logger = get_logger(__name__)

SYSTEM_ERROR_MESSAGE = "Check-in could not be processed. Please try again."


def status_for(result: ValidationResult) -> str:
    """Map a validation result to the stored check-in status."""
    if result.valid:
        return STATUS_VALID
    if result.reason == REASON_EXPIRED_OR_INVALID:
        return STATUS_EXPIRED
    return STATUS_INVALID


@dataclass(frozen=True)
class CheckInOutcome:
    accepted: bool
    reason_code: str
    status: str
    record_id: str
    timestamp: str
    message: str
    time_window: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CheckInService:
    """Validates submitted codes against the engine and records every attempt."""

    def __init__(
        self,
        engine: Optional[OTPEngine],
        store: Optional[CheckInStore],
        clock: Optional[Clock] = None,
        timestamp_tolerance_ms: int = DEFAULT_TIMESTAMP_TOLERANCE_MS,
    ):
        self.engine = engine
        self.store = store
        self.clock = clock or SystemClock()
        self.timestamp_tolerance_ms = timestamp_tolerance_ms

    def _require_engine(self) -> OTPEngine:
        if self.engine is None:
            raise ServiceUnavailableError("OTP service not initialized", details={"service": "otp_engine"})
        return self.engine

    def _require_store(self) -> CheckInStore:
        if self.store is None:
            raise ServiceUnavailableError("Check-in store not initialized", details={"service": "checkin_store"})
        return self.store

    def check_in(
        self,
        phone_number: str,
        presented_code: Any,
        timestamp: Union[str, int, datetime, None] = None,
    ) -> CheckInOutcome:
        """
        Process one check-in submission.

        Args:
            phone_number: Subject identity, normalized before use
            presented_code: The code as typed (any length, stored as given)
            timestamp: Optional ISO-8601 attempt time, within tolerance of now

        Returns:
            CheckInOutcome; ``accepted`` is true only for a valid code

        Raises:
            ServiceUnavailableError: If the engine or store is missing
            ValidationError: On a malformed phone number or timestamp
                             (nothing is recorded)
            StorageError: If both the primary and the fallback write failed
        """
        engine = self._require_engine()
        store = self._require_store()

        subject = normalize_phone_number(phone_number)
        attempt_time = parse_timestamp(timestamp, self.clock.now(), self.timestamp_tolerance_ms)
        code = clip_presented_code(presented_code)

        try:
            result = engine.validate(code, datetime_to_ms(attempt_time))
        except Exception as exc:
            logger.exception(
                "checkin_validation_failed",
                phone_number=mask_phone_number(subject),
                otp=mask_code(code),
                error=str(exc),
            )
            result = ValidationResult(valid=False, reason=REASON_SYSTEM_ERROR, message=SYSTEM_ERROR_MESSAGE)
            status = STATUS_ERROR
        else:
            status = status_for(result)

        try:
            record_id = store.record_attempt(subject, code, status, attempt_time)
        except StorageError as exc:
            record_id = self._record_fallback(subject, code, attempt_time, exc)
            result = ValidationResult(valid=False, reason=REASON_SYSTEM_ERROR, message=SYSTEM_ERROR_MESSAGE)
            status = STATUS_ERROR

        outcome = CheckInOutcome(
            accepted=result.valid,
            reason_code=result.reason,
            status=status,
            record_id=record_id,
            timestamp=attempt_time.isoformat(),
            message=result.message,
            time_window=result.time_window,
        )

        logger.info(
            "checkin_processed",
            checkin_id=record_id,
            phone_number=mask_phone_number(subject),
            accepted=outcome.accepted,
            reason=outcome.reason_code,
            status=status,
        )
        return outcome

    def _record_fallback(self, subject: str, code: str, attempt_time: datetime, primary: StorageError) -> str:
        # Best effort: one error record, otherwise the primary failure propagates
        logger.error(
            "checkin_persist_failed",
            phone_number=mask_phone_number(subject),
            error=primary.message,
            fallback="error_record",
        )
        try:
            return self._require_store().record_attempt(subject, code, STATUS_ERROR, attempt_time)
        except StorageError as fallback_exc:
            logger.error(
                "checkin_fallback_record_failed",
                phone_number=mask_phone_number(subject),
                error=fallback_exc.message,
            )
            raise primary

    def current_code(self) -> CurrentCode:
        return self._require_engine().current_code(self.clock.now_ms())

    def get_checkins_by_phone(self, phone_number: str, limit: Union[int, str, None] = None) -> List[Dict[str, Any]]:
        subject = normalize_phone_number(phone_number)
        return self._require_store().query_by_phone(subject, validate_limit(limit))

    def get_checkins_by_date(self, day: Union[str, date]) -> List[Dict[str, Any]]:
        parsed = parse_date(day, "date")
        return self._require_store().query_by_date_range(parsed, parsed)

    def get_checkins_by_date_range(
        self,
        start_date: Union[str, date],
        end_date: Union[str, date],
    ) -> List[Dict[str, Any]]:
        start, end = parse_date_range(start_date, end_date)
        return self._require_store().query_by_date_range(start, end)

    def get_todays_checkins(self) -> List[Dict[str, Any]]:
        return self._require_store().query_today()

    def get_stats(
        self,
        start_date: Union[str, date, None] = None,
        end_date: Union[str, date, None] = None,
    ) -> Dict[str, Any]:
        """Aggregate counts over a date range; both bounds default to today (UTC)."""
        today = self.clock.now().date()
        start, end = parse_date_range(start_date or today, end_date or start_date or today)
        return self._require_store().stats(start, end)

    def purge_old_checkins(self, days: int) -> int:
        return self._require_store().purge_older_than(days)

    def health_status(self) -> Dict[str, Any]:
        """
        Combined status of the engine and the store.

        Overall status is the worst of the two: unhealthy > degraded > healthy.
        """
        components: Dict[str, Any] = {}

        if self.engine is None:
            components["otp_engine"] = {"status": "unhealthy", "error": "not initialized"}
        else:
            components["otp_engine"] = self.engine.get_health_status()

        if self.store is None:
            components["checkin_store"] = {"status": "unhealthy", "error": "not initialized"}
        else:
            components["checkin_store"] = self.store.health_status()

        statuses = {component["status"] for component in components.values()}
        if "unhealthy" in statuses:
            overall = "unhealthy"
        elif "degraded" in statuses:
            overall = "degraded"
        else:
            overall = "healthy"

        return {"status": overall, "components": components}
