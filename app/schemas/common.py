"""Common response schemas."""
from pydantic import BaseModel, ConfigDict
from typing import Optional


class SuccessResponse(BaseModel):
    """Standard success response."""
    success: bool = True
    message: Optional[str] = None


class ErrorDetail(BaseModel):
    """Error detail structure; extra context fields are passed through."""
    model_config = ConfigDict(extra="allow")

    code: str
    message: str
    timestamp: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response for documentation."""
    success: bool = False
    error: ErrorDetail
