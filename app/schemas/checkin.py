"""Check-in schemas."""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class CheckinRequest(BaseModel):
    phone_number: str = Field(..., min_length=1, max_length=32)
    # Stored as presented (clipped); a wrong length is recorded as an invalid attempt
    otp: str
    timestamp: Optional[str] = Field(None, max_length=64)  # ISO-8601, defaults to server time

    @field_validator('phone_number')
    @classmethod
    def strip_phone_number(cls, v: str) -> str:
        return v.strip()


class CheckinResponse(BaseModel):
    accepted: bool
    reason_code: str
    status: str
    record_id: str
    timestamp: str
    message: str
    time_window: Optional[str] = None


class CheckInRecord(BaseModel):
    id: str
    phone_number: str
    otp: str
    validation_status: str
    timestamp: datetime
    created_at: Optional[datetime] = None


class CheckinListResponse(BaseModel):
    checkins: List[CheckInRecord]
    count: int


class CheckinStatsResponse(BaseModel):
    total: int
    counts_by_status: Dict[str, int]
    unique_subjects: int
    start_date: str
    end_date: str


class PurgeResponse(BaseModel):
    deleted: int
    older_than_days: int
