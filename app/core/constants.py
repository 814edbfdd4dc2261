"""Application constants.

This module contains magic strings and numbers used throughout the application.
Centralizing these values makes them easier to maintain and modify.
"""

# OTP Configuration
# Codes are the first 6 hex characters of an HMAC-SHA256 digest, upper-cased
OTP_LENGTH = 6
MIN_WINDOW_MS = 30_000
MAX_WINDOW_MS = 300_000
DEFAULT_WINDOW_MS = 30_000
MIN_SECRET_LENGTH = 16

# Validation reasons returned by the OTP engine
REASON_CURRENT_WINDOW = "CURRENT_WINDOW"
REASON_PREVIOUS_WINDOW = "PREVIOUS_WINDOW"
REASON_FUTURE_OTP = "FUTURE_OTP"
REASON_EXPIRED_OR_INVALID = "EXPIRED_OR_INVALID"
REASON_INVALID_FORMAT = "INVALID_FORMAT"
REASON_SYSTEM_ERROR = "SYSTEM_ERROR"

# Check-in record statuses (immutable once written)
STATUS_VALID = "valid"
STATUS_EXPIRED = "expired"
STATUS_INVALID = "invalid"
STATUS_ERROR = "error"
CHECKIN_STATUSES = (STATUS_VALID, STATUS_EXPIRED, STATUS_INVALID, STATUS_ERROR)

# System config keys
OTP_SECRET_KEY = "otp_secret"

# Query limits for history lookups
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 1000

# Presented codes are stored as submitted, capped to this length
MAX_PRESENTED_CODE_LENGTH = 64

# Default client timestamp tolerance (5 minutes)
DEFAULT_TIMESTAMP_TOLERANCE_MS = 5 * 60 * 1000

# Delivery rendering
OTP_PLACEHOLDER = "{otp}"
DEFAULT_MESSAGE_TEMPLATE = "Check-in code: {otp}"
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15

# JWT Token Configuration
# Token expiration time in minutes (8 hours)
ACCESS_TOKEN_EXPIRE_MINUTES = 480
