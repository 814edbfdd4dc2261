"""Time source abstraction.

The OTP engine, store and check-in service read "now" through a ``Clock`` so
tests can pin time instead of racing the wall clock.
"""
import time
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int:
        """Current instant in epoch milliseconds."""
        ...

    def now(self) -> datetime:
        """Current instant as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def ms_to_datetime(timestamp_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def datetime_to_ms(dt: datetime) -> int:
    """Convert a datetime (naive values are treated as UTC) to epoch milliseconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp() * 1000))


def to_iso(timestamp_ms: int) -> str:
    """ISO-8601 representation with millisecond precision and a Z suffix."""
    return ms_to_datetime(timestamp_ms).isoformat(timespec="milliseconds").replace("+00:00", "Z")
