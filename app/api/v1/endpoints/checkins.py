"""Check-in endpoints."""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, Response

from app.api.deps import get_checkin_service, verify_admin_token
from app.core import config
from app.core.constants import REASON_EXPIRED_OR_INVALID, REASON_SYSTEM_ERROR
from app.core.rate_limit import limiter, RATE_LIMITS
from app.schemas import (
    CheckinRequest,
    CheckinResponse,
    CheckinListResponse,
    CheckinStatsResponse,
    ErrorResponse,
    PurgeResponse,
)
from app.services import CheckInService

router = APIRouter()


def status_code_for(reason_code: str, accepted: bool) -> int:
    """HTTP status for a check-in outcome."""
    if accepted:
        return 200
    if reason_code == REASON_EXPIRED_OR_INVALID:
        return 410
    if reason_code == REASON_SYSTEM_ERROR:
        return 500
    return 400


@router.post(
    "",
    response_model=CheckinResponse,
    responses={
        400: {"model": CheckinResponse, "description": "Malformed code or code from the next window"},
        410: {"model": CheckinResponse, "description": "Code expired"},
        500: {"model": CheckinResponse, "description": "Attempt recorded as a system error"},
        503: {"model": ErrorResponse},
    },
)
@limiter.limit(RATE_LIMITS["check_in"])
def create_checkin(
    request: Request,
    response: Response,
    checkin_request: CheckinRequest,
    service: CheckInService = Depends(get_checkin_service),
):
    """
    Submit a check-in code.

    Every attempt that passes input validation is recorded, whether the code
    was accepted or not.

    Args:
        request: FastAPI Request (for rate limiting)
        response: Response whose status code reflects the outcome
        checkin_request: phone_number, otp and an optional ISO-8601 timestamp
        service: Check-in service (injected)

    Returns:
        CheckinResponse with the outcome and the record id

    Status codes:
        200: accepted (current or previous window)
        400: malformed code or code from the next window
        410: code expired or wrong
        500: attempt recorded with status "error"

    Rate Limit:
        10 requests per minute per IP

    Example:
        Request:
            POST /api/v1/checkins
            {
                "phone_number": "+15551234567",
                "otp": "A1B2C3"
            }

        Response (200):
            {
                "accepted": true,
                "reason_code": "CURRENT_WINDOW",
                "status": "valid",
                "record_id": "5f0c...",
                "timestamp": "2024-01-15T10:30:00+00:00",
                "message": "OTP is valid (current window)",
                "time_window": "current"
            }
    """
    outcome = service.check_in(
        checkin_request.phone_number,
        checkin_request.otp,
        checkin_request.timestamp,
    )
    response.status_code = status_code_for(outcome.reason_code, outcome.accepted)
    return CheckinResponse(**outcome.to_dict())


@router.get("", response_model=CheckinListResponse, dependencies=[Depends(verify_admin_token)])
@limiter.limit(RATE_LIMITS["admin_read"])
def list_checkins(
    request: Request,
    date: Optional[str] = Query(None, description="Single UTC day, YYYY-MM-DD"),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    phone: Optional[str] = Query(None, description="Subject phone number"),
    limit: Optional[int] = Query(None, description="Result cap for phone lookups (1-1000)"),
    service: CheckInService = Depends(get_checkin_service),
):
    """
    Query check-in history (admin only), newest first.

    Filters are tried in order: phone, date range, single date. Without
    any filter, today's check-ins are returned.
    """
    if phone:
        records = service.get_checkins_by_phone(phone, limit)
    elif start_date or end_date:
        records = service.get_checkins_by_date_range(start_date, end_date)
    elif date:
        records = service.get_checkins_by_date(date)
    else:
        records = service.get_todays_checkins()

    return CheckinListResponse(checkins=records, count=len(records))


@router.get("/stats", response_model=CheckinStatsResponse, dependencies=[Depends(verify_admin_token)])
@limiter.limit(RATE_LIMITS["admin_read"])
def checkin_stats(
    request: Request,
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    service: CheckInService = Depends(get_checkin_service),
):
    """Counts by status and unique subjects over a date range (admin only, defaults to today)."""
    return service.get_stats(start_date, end_date)


@router.delete("", response_model=PurgeResponse, dependencies=[Depends(verify_admin_token)])
@limiter.limit(RATE_LIMITS["admin_write"])
def purge_checkins(
    request: Request,
    older_than_days: Optional[int] = Query(None, description="Defaults to RETENTION_DAYS"),
    service: CheckInService = Depends(get_checkin_service),
):
    """Delete check-ins older than the given number of days (admin only)."""
    days = config.settings.RETENTION_DAYS if older_than_days is None else older_than_days
    deleted = service.purge_old_checkins(days)
    return PurgeResponse(deleted=deleted, older_than_days=days)
