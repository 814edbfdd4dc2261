"""Code and delivery schemas."""
from typing import Dict
from pydantic import BaseModel


class CurrentCodeResponse(BaseModel):
    code: str
    expires_at: str
    expires_in_seconds: int
    next_code: str
    generated_at: str


class QRCodeResponse(BaseModel):
    code: str
    url: str
    qr_data_url: str
    format: str
    size: int


class CurrentQRCodeResponse(QRCodeResponse):
    expires_at: str
    expires_in_seconds: int


class DeliveryUrlsResponse(BaseModel):
    code: str
    format: str
    urls: Dict[str, str]


class DeliveryConfigResponse(BaseModel):
    target_number: str
    message_template: str
