"""
Pydantic schemas for reservation request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.core.timeutils import as_utc


class ReservationCreate(BaseModel):
    space_id: int
    start_time: datetime
    end_time: datetime
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    attendees_count: int = Field(default=1, ge=1)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_to_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC
        return as_utc(value)


class ReservationUpdate(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    attendees_count: Optional[int] = Field(None, ge=1)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class ReservationCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ReservationResponse(BaseModel):
    id: int
    space_id: int
    user_id: int
    start_time: datetime
    end_time: datetime
    title: str
    description: Optional[str]
    attendees_count: int
    status: str
    created_by: Optional[int]
    cancelled_by: Optional[int]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    checked_in_by: Optional[int]
    checked_in_at: Optional[datetime]
    checked_out_by: Optional[int]
    checked_out_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse]
    total: int
    page: int
    page_size: int


class ReservationActionResponse(BaseModel):
    message: str
    reservation_id: int
    status: str
