"""Catalog domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_email


class PractitionerCreate(BaseModel):
    """Schema for registering a practitioner"""

    name: str = Field(min_length=1, max_length=255)
    email: Optional[str] = None
    slot_granularity_minutes: Optional[int] = Field(default=None, ge=5, le=240)
    buffer_minutes: Optional[int] = Field(default=None, ge=0, le=240)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        if v:
            return validate_email(v)
        return v


class PractitionerResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    slot_granularity_minutes: int
    buffer_minutes: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ServiceCreate(BaseModel):
    """Schema for creating a bookable service"""

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    duration_minutes: int = Field(gt=0, le=24 * 60)
    price: float = Field(default=0.0, ge=0)
    is_active: bool = True


class ServiceUpdate(BaseModel):
    """Schema for updating a service. Existing bookings keep their snapshot."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    price: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class ServiceResponse(BaseModel):
    id: int
    practitioner_id: int
    name: str
    description: Optional[str] = None
    duration_minutes: int
    price: float
    is_active: bool

    class Config:
        from_attributes = True
