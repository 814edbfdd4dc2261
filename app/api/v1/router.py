"""Main API router for v1."""
from fastapi import APIRouter

from app.api.v1.endpoints import auth, checkins, delivery, otp

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(checkins.router, prefix="/checkins", tags=["Check-ins"])
api_router.include_router(otp.router, prefix="/otp", tags=["Codes"])
api_router.include_router(delivery.router, prefix="/delivery", tags=["Delivery"])
