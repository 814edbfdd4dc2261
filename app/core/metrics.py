"""
Diagnostic counters for the OTP engine.

The engine itself stays pure; it reports generations and validations to an
injected ``OTPMetrics`` collaborator. Counters are protected by a lock because
the engine is shared across request threads.
"""
import threading
from collections import Counter
from typing import Any, Dict, Optional

from app.core.clock import to_iso


class OTPMetrics:
    """Thread-safe generation/validation counters."""

    def __init__(self):
        self._lock = threading.Lock()
        self._generation_count = 0
        self._validation_count = 0
        self._validations_by_reason: Counter = Counter()
        self._last_generation_ms: Optional[int] = None

    def record_generation(self, timestamp_ms: int) -> None:
        with self._lock:
            self._generation_count += 1
            self._last_generation_ms = timestamp_ms

    def record_validation(self, reason: str) -> None:
        with self._lock:
            self._validation_count += 1
            self._validations_by_reason[reason] += 1

    def reset(self) -> None:
        with self._lock:
            self._generation_count = 0
            self._validation_count = 0
            self._validations_by_reason.clear()
            self._last_generation_ms = None

    def snapshot(self) -> Dict[str, Any]:
        """
        Get a consistent copy of the counters.

        Returns:
            Dictionary with:
            - generation_count: Codes derived since start/reset
            - validation_count: Codes validated since start/reset
            - validations_by_reason: Per-reason validation counts
            - last_generation_time: ISO-8601 instant of the last derivation, or None
        """
        with self._lock:
            return {
                "generation_count": self._generation_count,
                "validation_count": self._validation_count,
                "validations_by_reason": dict(self._validations_by_reason),
                "last_generation_time": (
                    to_iso(self._last_generation_ms)
                    if self._last_generation_ms is not None
                    else None
                ),
            }
