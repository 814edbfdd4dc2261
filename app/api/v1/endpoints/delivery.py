"""Delivery configuration endpoint."""
from fastapi import APIRouter, Depends

from app.api.deps import get_renderer
from app.schemas import DeliveryConfigResponse
from app.services import DeliveryRenderer

router = APIRouter()


@router.get("/config", response_model=DeliveryConfigResponse)
def get_delivery_config(renderer: DeliveryRenderer = Depends(get_renderer)):
    """Target number and message template used for delivery links."""
    return renderer.get_config()
