"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_email, validate_phone

BookingAction = Literal["confirm", "cancel", "complete"]


class ClientInfo(BaseModel):
    """Identity of the person booking"""

    name: str = Field(min_length=1, max_length=255)
    email: str
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone_format(cls, v):
        if v:
            return validate_phone(v)
        return None


class BookingCreate(BaseModel):
    """Booking request against a previously listed slot"""

    service_id: int
    start_time: datetime
    end_time: Optional[datetime] = None  # Derived from the service duration when omitted
    client: ClientInfo
    notes: Optional[str] = Field(default=None, max_length=1000)


class RescheduleRequest(BaseModel):
    start_time: datetime
    end_time: Optional[datetime] = None


class BulkStatusRequest(BaseModel):
    booking_ids: list[int] = Field(min_length=1, max_length=500)
    action: BookingAction


class BookingResponse(BaseModel):
    id: int
    practitioner_id: int
    service_id: int
    client_id: Optional[int] = None
    client_name: str
    client_email: str
    client_phone: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    price: float
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    total: int
    page: int
    limit: int
    pages: int


class BulkStatusItem(BaseModel):
    id: int
    result: Literal["ok", "not_found", "invalid_transition", "transient_error"]
    status: Optional[str] = None
    message: Optional[str] = None


class BulkStatusResponse(BaseModel):
    action: BookingAction
    updated: int
    results: list[BulkStatusItem]


class BookingStatsResponse(BaseModel):
    total: int
    pending: int
    confirmed: int
    cancelled: int
    completed: int
    revenue: float
    average_booking_value: float
