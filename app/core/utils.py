"""General utility functions."""
from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC timezone."""
    if dt.tzinfo is None:
        # Assume UTC if no timezone
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def day_bounds(start: date, end: date) -> Tuple[datetime, datetime]:
    """
    Half-open UTC interval covering the calendar days ``start``..``end`` inclusive.

    Returns:
        (start of ``start`` at 00:00 UTC, start of the day after ``end``)
    """
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return lower, upper
