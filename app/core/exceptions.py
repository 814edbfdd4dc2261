"""Application error taxonomy.

Every fault raised by the service layer derives from ``AppError`` so the API
layer can render a single structured response shape:

    {"success": false, "error": {"code": ..., "message": ..., "timestamp": ...}}

Validation of a presented code is *not* an error: the OTP engine returns a
result with a reason. Only genuine faults (bad client input, storage trouble,
missing dependencies) are raised.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ErrorCodes:
    """Stable error codes exposed to API clients."""

    # Validation errors (400)
    INVALID_OTP_FORMAT = "INVALID_OTP_FORMAT"
    INVALID_PHONE_FORMAT = "INVALID_PHONE_FORMAT"
    INVALID_TIMESTAMP = "INVALID_TIMESTAMP"
    INVALID_DATE_FORMAT = "INVALID_DATE_FORMAT"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_LIMIT = "INVALID_LIMIT"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"

    # Storage errors
    DATABASE_CONNECTION_FAILED = "DATABASE_CONNECTION_FAILED"
    DATABASE_CONSTRAINT_VIOLATION = "DATABASE_CONSTRAINT_VIOLATION"
    DATABASE_READ_ONLY = "DATABASE_READ_ONLY"
    DATABASE_QUERY_FAILED = "DATABASE_QUERY_FAILED"

    # Service errors
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    OTP_SERVICE_ERROR = "OTP_SERVICE_ERROR"
    QR_GENERATION_FAILED = "QR_GENERATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppError(Exception):
    """Base application error with structured details."""

    status_code = 500
    default_code = ErrorCodes.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Render the error as a JSON-ready response body."""
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp,
                **self.details,
            },
        }


class ValidationError(AppError, ValueError):
    """Malformed client input. Never retried.

    Also a ``ValueError`` so Pydantic validators and plain ``except ValueError``
    call sites treat it as bad input.
    """

    status_code = 400
    default_code = ErrorCodes.INVALID_OTP_FORMAT


class ServiceUnavailableError(AppError):
    """A dependency (engine, store, renderer) was never initialized."""

    status_code = 503
    default_code = ErrorCodes.SERVICE_UNAVAILABLE


class OTPServiceError(AppError):
    """Unexpected failure inside code generation."""

    status_code = 500
    default_code = ErrorCodes.OTP_SERVICE_ERROR


class StorageError(AppError):
    """Base class for check-in store failures."""

    status_code = 500
    default_code = ErrorCodes.DATABASE_QUERY_FAILED


class StorageConnectivityError(StorageError):
    """The store stayed unreachable after the bounded retries."""

    status_code = 503
    default_code = ErrorCodes.DATABASE_CONNECTION_FAILED


class StorageQueryError(StorageError):
    """
    A query failed.

    ``kind`` tells client-caused failures (``constraint``) apart from
    store-caused ones (``read_only`` and ``failed``).
    """

    CONSTRAINT = "constraint"
    READ_ONLY = "read_only"
    FAILED = "failed"

    _KIND_DEFAULTS = {
        CONSTRAINT: (400, ErrorCodes.DATABASE_CONSTRAINT_VIOLATION),
        READ_ONLY: (503, ErrorCodes.DATABASE_READ_ONLY),
        FAILED: (500, ErrorCodes.DATABASE_QUERY_FAILED),
    }

    def __init__(
        self,
        message: str,
        kind: str = FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        if kind not in self._KIND_DEFAULTS:
            raise ValueError(f"Unknown storage error kind: {kind}")
        status_code, code = self._KIND_DEFAULTS[kind]
        super().__init__(message, code=code, status_code=status_code, details=details)
        self.kind = kind

    @property
    def client_caused(self) -> bool:
        return self.kind == self.CONSTRAINT
