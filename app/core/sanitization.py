"""Input sanitization utilities."""
import re
from datetime import date, datetime, timezone
from typing import Optional, Tuple, Union

from app.core.constants import (
    DEFAULT_QUERY_LIMIT,
    DEFAULT_TIMESTAMP_TOLERANCE_MS,
    MAX_PHONE_DIGITS,
    MAX_PRESENTED_CODE_LENGTH,
    MAX_QUERY_LIMIT,
    MIN_PHONE_DIGITS,
    OTP_LENGTH,
)
from app.core.exceptions import ErrorCodes, ValidationError
from app.core.clock import datetime_to_ms
from app.core.utils import to_utc


# Formatting characters users commonly type into phone numbers
_PHONE_FORMATTING = re.compile(r'[\s\-\(\)\+\.]')
_OTP_PATTERN = re.compile(rf'^[A-Z0-9]{{{OTP_LENGTH}}}$')


def normalize_phone_number(phone_number: str) -> str:
    """
    Normalize a phone-number-like subject id to ``+<digits>``.

    Formatting characters (spaces, dashes, parentheses, dots, plus) are
    removed. A 10-digit national number with a leading trunk zero and no
    ``+`` prefix loses the zero.

    Args:
        phone_number: The raw phone number

    Returns:
        Canonical form, e.g. ``+628123456789``

    Raises:
        ValidationError: If the value is missing, has non-digits or has
                         fewer than 7 / more than 15 digits
    """
    if not isinstance(phone_number, str) or not phone_number.strip():
        raise ValidationError(
            "Required field 'phone_number' is missing",
            code=ErrorCodes.MISSING_REQUIRED_FIELD,
            details={"field_name": "phone_number"},
        )

    raw = phone_number.strip()
    cleaned = _PHONE_FORMATTING.sub('', raw)

    if not cleaned.isdigit() or not (MIN_PHONE_DIGITS <= len(cleaned) <= MAX_PHONE_DIGITS):
        raise ValidationError(
            "Phone number must be in valid international format",
            code=ErrorCodes.INVALID_PHONE_FORMAT,
            details={"provided_value": raw[:5] + "***"},
        )

    if not raw.startswith('+') and len(cleaned) == 10 and cleaned.startswith('0'):
        cleaned = cleaned[1:]

    return '+' + cleaned


def clean_target_number(phone_number: str) -> str:
    """
    Reduce a delivery target to digits-only international form.

    Unlike ``normalize_phone_number`` this never rewrites the number: a
    leading zero is an error because the delivery link needs a country code.

    Raises:
        ValidationError: If the number is not 7-15 digits or starts with zero
    """
    if not isinstance(phone_number, str) or not phone_number.strip():
        raise ValidationError(
            "Target phone number must be a non-empty string",
            code=ErrorCodes.INVALID_CONFIGURATION,
        )

    cleaned = re.sub(r'\D', '', phone_number)

    if not (MIN_PHONE_DIGITS <= len(cleaned) <= MAX_PHONE_DIGITS):
        raise ValidationError(
            f"Target phone number must be {MIN_PHONE_DIGITS}-{MAX_PHONE_DIGITS} digits long",
            code=ErrorCodes.INVALID_CONFIGURATION,
        )

    if cleaned.startswith('0'):
        raise ValidationError(
            "Target phone number must be in international format (no leading zero)",
            code=ErrorCodes.INVALID_CONFIGURATION,
        )

    return cleaned


def sanitize_otp(otp: str) -> str:
    """
    Validate a code for rendering: 6 alphanumeric characters.

    Returns:
        The trimmed, upper-cased code

    Raises:
        ValidationError: If the code is not 6 alphanumeric characters
    """
    if not isinstance(otp, str):
        raise ValidationError("OTP must be a non-empty string", code=ErrorCodes.INVALID_OTP_FORMAT)

    normalized = otp.strip().upper()
    if not _OTP_PATTERN.match(normalized):
        raise ValidationError(
            f"OTP must be a {OTP_LENGTH}-character alphanumeric string",
            code=ErrorCodes.INVALID_OTP_FORMAT,
            details={"provided_value": normalized[:2] + "****" if normalized else None},
        )
    return normalized


def clip_presented_code(otp: Optional[str]) -> str:
    """Trim a presented code and cap its length for storage."""
    if otp is None:
        return ""
    return str(otp).strip()[:MAX_PRESENTED_CODE_LENGTH]


def parse_timestamp(
    value: Union[str, int, float, datetime, None],
    now: datetime,
    tolerance_ms: int = DEFAULT_TIMESTAMP_TOLERANCE_MS,
) -> datetime:
    """
    Parse an optional client-supplied check-in timestamp.

    Accepts ISO-8601 strings (a trailing ``Z`` is allowed), datetimes, or epoch
    milliseconds. A missing value means "now".

    Args:
        value: The timestamp as supplied
        now: Server time to compare against
        tolerance_ms: Maximum allowed distance from ``now``

    Returns:
        Aware UTC datetime

    Raises:
        ValidationError: If the value cannot be parsed or is too far from now
    """
    if value is None or value == "":
        return to_utc(now)

    try:
        if isinstance(value, datetime):
            parsed = to_utc(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        elif isinstance(value, str):
            text = value.strip()
            if text.endswith(('Z', 'z')):
                text = text[:-1] + '+00:00'
            parsed = to_utc(datetime.fromisoformat(text))
        else:
            raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")
    except (TypeError, ValueError, OverflowError, OSError):
        raise ValidationError(
            "Timestamp must be a valid ISO-8601 string",
            code=ErrorCodes.INVALID_TIMESTAMP,
            details={"provided_value": str(value)[:40]},
        )

    if abs(datetime_to_ms(parsed) - datetime_to_ms(now)) > tolerance_ms:
        raise ValidationError(
            "Timestamp is too far from current time",
            code=ErrorCodes.INVALID_TIMESTAMP,
            details={"provided_value": str(value)[:40]},
        )

    return parsed


def parse_date(value: Union[str, date, datetime, None], field_name: str = "date") -> date:
    """
    Parse a calendar date (``YYYY-MM-DD`` or a full ISO-8601 instant).

    Raises:
        ValidationError: If the value is missing or not a valid date
    """
    if value is None or value == "":
        raise ValidationError(
            f"Required field '{field_name}' is missing",
            code=ErrorCodes.MISSING_REQUIRED_FIELD,
            details={"field_name": field_name},
        )

    if isinstance(value, datetime):
        return to_utc(value).date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        return to_utc(datetime.fromisoformat(text)).date()
    except ValueError:
        raise ValidationError(
            "Date must be in valid ISO format (YYYY-MM-DD)",
            code=ErrorCodes.INVALID_DATE_FORMAT,
            details={"provided_value": text[:40]},
        )


def parse_date_range(
    start: Union[str, date, datetime, None],
    end: Union[str, date, datetime, None],
) -> Tuple[date, date]:
    """Parse an inclusive date range; start must not be after end."""
    start_date = parse_date(start, "start_date")
    end_date = parse_date(end, "end_date")

    if start_date > end_date:
        raise ValidationError(
            "Start date must be before or equal to end date",
            code=ErrorCodes.INVALID_DATE_RANGE,
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    return start_date, end_date


def validate_limit(
    limit: Union[str, int, None],
    minimum: int = 1,
    maximum: int = MAX_QUERY_LIMIT,
) -> int:
    """Validate a result cap; missing means the default of 100."""
    if limit is None or limit == "":
        return DEFAULT_QUERY_LIMIT

    try:
        numeric = int(limit)
    except (TypeError, ValueError):
        numeric = None

    if numeric is None or isinstance(limit, bool) or not (minimum <= numeric <= maximum):
        raise ValidationError(
            f"Limit must be a number between {minimum} and {maximum}",
            code=ErrorCodes.INVALID_LIMIT,
            details={"provided_value": str(limit)[:20], "min": minimum, "max": maximum},
        )

    return numeric
