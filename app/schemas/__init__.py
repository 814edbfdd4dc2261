"""Pydantic schemas for request/response validation."""
from app.schemas.auth import AdminLoginRequest
from app.schemas.checkin import (
    CheckinRequest,
    CheckinResponse,
    CheckInRecord,
    CheckinListResponse,
    CheckinStatsResponse,
    PurgeResponse,
)
from app.schemas.otp import (
    CurrentCodeResponse,
    QRCodeResponse,
    CurrentQRCodeResponse,
    DeliveryUrlsResponse,
    DeliveryConfigResponse,
)
from app.schemas.common import SuccessResponse, ErrorResponse, ErrorDetail

__all__ = [
    "AdminLoginRequest",
    "CheckinRequest",
    "CheckinResponse",
    "CheckInRecord",
    "CheckinListResponse",
    "CheckinStatsResponse",
    "PurgeResponse",
    "CurrentCodeResponse",
    "QRCodeResponse",
    "CurrentQRCodeResponse",
    "DeliveryUrlsResponse",
    "DeliveryConfigResponse",
    "SuccessResponse",
    "ErrorResponse",
    "ErrorDetail",
]
