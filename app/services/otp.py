"""
Time-slot code engine.

A code identifies a time window, not a single use. For a shared secret and a
window length ``w`` (milliseconds), the code for instant ``t`` is the first six
hex characters of ``HMAC-SHA256(secret, str(t // w))``, upper-cased.

Validation accepts the current window and the previous one (one window of
grace for slow relays), rejects the next window explicitly as ``FUTURE_OTP``,
and treats anything else as ``EXPIRED_OR_INVALID``. Widening the tolerance
beyond one window in each direction weakens the freshness guarantee.

The engine keeps no mutable state of its own: secret and window are fixed at
construction, time comes from an injected clock, and diagnostic counters go
to an optional ``OTPMetrics`` collaborator. It is safe to share across
threads without locking.
"""
import hashlib
import hmac
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from app.core.clock import Clock, SystemClock, to_iso
from app.core.config import KNOWN_DEFAULT_SECRETS
from app.core.constants import (
    DEFAULT_WINDOW_MS,
    MAX_WINDOW_MS,
    MIN_SECRET_LENGTH,
    MIN_WINDOW_MS,
    OTP_LENGTH,
    REASON_CURRENT_WINDOW,
    REASON_EXPIRED_OR_INVALID,
    REASON_FUTURE_OTP,
    REASON_INVALID_FORMAT,
    REASON_PREVIOUS_WINDOW,
)
from app.core.exceptions import OTPServiceError
from app.core.logging_config import get_logger, mask_code
from app.core.metrics import OTPMetrics

logger = get_logger(__name__)


def time_slot(timestamp_ms: int, window_ms: int) -> int:
    """Index of the window containing ``timestamp_ms``."""
    return timestamp_ms // window_ms


def derive_code(secret: str, slot: int) -> str:
    """Derive the 6-character code for a time slot."""
    digest = hmac.new(secret.encode("utf-8"), str(slot).encode("utf-8"), hashlib.sha256).hexdigest()
    return digest[:OTP_LENGTH].upper()


@dataclass(frozen=True)
class CurrentCode:
    code: str
    expires_at: str
    expires_in_seconds: int
    next_code: str
    generated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str
    message: str
    time_window: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class OTPEngine:
    """Derives and validates time-windowed codes for one secret."""

    def __init__(
        self,
        secret: str,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Optional[Clock] = None,
        metrics: Optional[OTPMetrics] = None,
    ):
        """
        Args:
            secret: Shared HMAC key (16+ characters recommended)
            window_ms: Window length, 30000-300000 milliseconds
            clock: Time source (wall clock by default)
            metrics: Optional diagnostics collaborator

        Raises:
            ValueError: If the secret is empty or the window is out of range
        """
        if not isinstance(secret, str) or not secret:
            raise ValueError("OTP secret must be a non-empty string")
        if (
            isinstance(window_ms, bool)
            or not isinstance(window_ms, int)
            or window_ms < MIN_WINDOW_MS
            or window_ms > MAX_WINDOW_MS
        ):
            raise ValueError("Time window must be a number between 30 seconds and 5 minutes")

        self._secret = secret
        self.window_ms = window_ms
        self.clock = clock or SystemClock()
        self.metrics = metrics

        if self.is_degraded:
            logger.warning(
                "otp_secret_weak",
                secret_length=len(secret),
                detail="OTP secret is short or a known default; not safe for production",
            )

        logger.info("otp_engine_initialized", window_ms=window_ms, secret_length=len(secret))

    @property
    def is_degraded(self) -> bool:
        """True when the secret is shorter than recommended or a well-known default."""
        return len(self._secret) < MIN_SECRET_LENGTH or self._secret in KNOWN_DEFAULT_SECRETS

    def _resolve_timestamp(self, timestamp_ms: Optional[int]) -> int:
        # Absent or non-positive means "now"; anything else must be an integer instant
        if timestamp_ms is None:
            return self.clock.now_ms()
        if isinstance(timestamp_ms, bool) or not isinstance(timestamp_ms, (int, float)):
            raise OTPServiceError(
                "Invalid timestamp provided",
                details={"operation": "OTP generation"},
            )
        if timestamp_ms <= 0:
            return self.clock.now_ms()
        return int(timestamp_ms)

    def generate(self, timestamp_ms: Optional[int] = None) -> str:
        """
        Code for the window containing ``timestamp_ms``.

        Raises:
            OTPServiceError: If the timestamp is not a number
        """
        ts = self._resolve_timestamp(timestamp_ms)
        slot = time_slot(ts, self.window_ms)
        code = derive_code(self._secret, slot)

        if self.metrics is not None:
            self.metrics.record_generation(ts)

        logger.debug("otp_generated", time_slot=slot, timestamp=to_iso(ts))
        return code

    def current_code(self, now_ms: Optional[int] = None) -> CurrentCode:
        """Current code, when it expires, and the code that follows it."""
        now = self._resolve_timestamp(now_ms)
        slot = time_slot(now, self.window_ms)
        expires_at = (slot + 1) * self.window_ms

        return CurrentCode(
            code=self.generate(now),
            expires_at=to_iso(expires_at),
            expires_in_seconds=math.ceil((expires_at - now) / 1000),
            next_code=self.generate(expires_at),
            generated_at=to_iso(now),
        )

    def validate(self, presented_code: Any, reference_ms: Optional[int] = None) -> ValidationResult:
        """
        Classify a presented code against the reference instant.

        Windows are checked in priority order: current, previous, future.

        Returns:
            ValidationResult with ``reason`` one of CURRENT_WINDOW,
            PREVIOUS_WINDOW, FUTURE_OTP, EXPIRED_OR_INVALID, INVALID_FORMAT

        Raises:
            OTPServiceError: If ``reference_ms`` is not a number
        """
        if not isinstance(presented_code, str) or not presented_code.strip():
            return self._result(False, REASON_INVALID_FORMAT, "OTP must be a non-empty string")

        normalized = presented_code.strip().upper()
        if len(normalized) != OTP_LENGTH:
            return self._result(False, REASON_INVALID_FORMAT, f"OTP must be exactly {OTP_LENGTH} characters")

        ts = self._resolve_timestamp(reference_ms)
        slot = time_slot(ts, self.window_ms)

        presented = normalized.encode("utf-8")

        if hmac.compare_digest(presented, derive_code(self._secret, slot).encode("ascii")):
            return self._result(True, REASON_CURRENT_WINDOW, "OTP is valid (current window)", "current")

        if hmac.compare_digest(presented, derive_code(self._secret, slot - 1).encode("ascii")):
            return self._result(True, REASON_PREVIOUS_WINDOW, "OTP is valid (previous window)", "previous")

        if hmac.compare_digest(presented, derive_code(self._secret, slot + 1).encode("ascii")):
            logger.warning("otp_future_window_detected", otp=mask_code(normalized), clock_drift="possible")
            return self._result(False, REASON_FUTURE_OTP, "OTP is from future time window")

        return self._result(False, REASON_EXPIRED_OR_INVALID, "OTP is expired or invalid")

    def _result(self, valid: bool, reason: str, message: str, time_window: Optional[str] = None) -> ValidationResult:
        if self.metrics is not None:
            self.metrics.record_validation(reason)
        logger.debug("otp_validated", valid=valid, reason=reason)
        return ValidationResult(valid=valid, reason=reason, message=message, time_window=time_window)

    def time_until_next(self, timestamp_ms: Optional[int] = None) -> int:
        """Seconds until the next rotation, rounded up."""
        ts = self._resolve_timestamp(timestamp_ms)
        next_rotation = (time_slot(ts, self.window_ms) + 1) * self.window_ms
        return math.ceil((next_rotation - ts) / 1000)

    def get_stats(self) -> Dict[str, Any]:
        now = self.clock.now_ms()
        stats = {
            "window_ms": self.window_ms,
            "current_time_slot": time_slot(now, self.window_ms),
            "time_until_next": self.time_until_next(now),
            "secret_length": len(self._secret),
            "degraded": self.is_degraded,
            "timestamp": to_iso(now),
        }
        if self.metrics is not None:
            stats.update(self.metrics.snapshot())
        return stats

    def get_health_status(self) -> Dict[str, Any]:
        """Self-test: a freshly generated code must validate."""
        try:
            now = self.clock.now_ms()
            result = self.validate(self.generate(now), now)
        except OTPServiceError as exc:
            logger.error("otp_health_check_failed", error=exc.message)
            return {"status": "unhealthy", "error": exc.message}

        if not result.valid:
            status = "unhealthy"
        elif self.is_degraded:
            status = "degraded"
        else:
            status = "healthy"

        return {
            "status": status,
            "test_validation": result.valid,
            "stats": self.get_stats(),
        }
