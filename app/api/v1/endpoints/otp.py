"""Code display endpoints."""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request

from app.api.deps import get_checkin_service, get_renderer
from app.core import config
from app.core.rate_limit import limiter, RATE_LIMITS
from app.core.sanitization import sanitize_otp
from app.schemas import (
    CurrentCodeResponse,
    CurrentQRCodeResponse,
    DeliveryUrlsResponse,
    QRCodeResponse,
)
from app.services import CheckInService, DeliveryRenderer

router = APIRouter()


@router.get("/current", response_model=CurrentCodeResponse)
@limiter.limit(RATE_LIMITS["otp_read"])
def get_current_code(
    request: Request,
    service: CheckInService = Depends(get_checkin_service),
):
    """
    Current code, its expiry, and the code for the next window.

    Display screens poll this endpoint and refresh when ``expires_in_seconds``
    reaches zero.
    """
    return service.current_code().to_dict()


@router.get("/current/qr", response_model=CurrentQRCodeResponse)
@limiter.limit(RATE_LIMITS["otp_read"])
def get_current_qr(
    request: Request,
    fmt: str = Query("mobile", alias="format"),
    size: Optional[int] = Query(None),
    image_format: Optional[str] = Query(None),
    service: CheckInService = Depends(get_checkin_service),
    renderer: DeliveryRenderer = Depends(get_renderer),
):
    """Current code rendered as a delivery link and QR image."""
    current = service.current_code()
    payload = renderer.render(
        current.code,
        fmt=fmt,
        size=config.settings.QR_SIZE if size is None else size,
        image_format=image_format or config.settings.QR_IMAGE_FORMAT,
    )
    return CurrentQRCodeResponse(
        **payload.to_dict(),
        expires_at=current.expires_at,
        expires_in_seconds=current.expires_in_seconds,
    )


@router.get("/{code}/url", response_model=DeliveryUrlsResponse)
@limiter.limit(RATE_LIMITS["otp_read"])
def get_delivery_urls(
    request: Request,
    code: str,
    fmt: str = Query("mobile", alias="format", description="mobile, web or all"),
    qr_optimized: bool = Query(False),
    renderer: DeliveryRenderer = Depends(get_renderer),
):
    """Delivery links for an arbitrary code."""
    normalized = sanitize_otp(code)
    if fmt == "all":
        urls = renderer.all_formats(normalized, qr_optimized=qr_optimized)
    else:
        urls = {fmt: renderer.url_for(normalized, fmt, qr_optimized=qr_optimized)}
    return DeliveryUrlsResponse(code=normalized, format=fmt, urls=urls)


@router.get("/{code}/qr", response_model=QRCodeResponse)
@limiter.limit(RATE_LIMITS["otp_read"])
def get_code_qr(
    request: Request,
    code: str,
    fmt: str = Query("mobile", alias="format"),
    size: Optional[int] = Query(None),
    image_format: Optional[str] = Query(None),
    renderer: DeliveryRenderer = Depends(get_renderer),
):
    """QR image for an arbitrary code."""
    payload = renderer.render(
        code,
        fmt=fmt,
        size=config.settings.QR_SIZE if size is None else size,
        image_format=image_format or config.settings.QR_IMAGE_FORMAT,
    )
    return payload.to_dict()
