"""Shared API dependencies.

Services are built once in the application lifespan and stored on
``app.state``; endpoints receive them through these dependencies.
"""
from fastapi import Request

from app.core.exceptions import ServiceUnavailableError
from app.core.security import verify_admin_token
from app.services import CheckInService, DeliveryRenderer


def _from_state(request: Request, name: str, service: str):
    instance = getattr(request.app.state, name, None)
    if instance is None:
        raise ServiceUnavailableError(
            f"{service} not initialized",
            details={"service": name},
        )
    return instance


def get_checkin_service(request: Request) -> CheckInService:
    return _from_state(request, "checkin_service", "Check-in service")


def get_renderer(request: Request) -> DeliveryRenderer:
    return _from_state(request, "renderer", "Delivery renderer")


__all__ = ["get_checkin_service", "get_renderer", "verify_admin_token"]
