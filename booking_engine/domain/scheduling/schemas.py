"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.intervals import parse_hhmm


class WorkingDay(BaseModel):
    """One recurring weekly window (day_of_week: 0 = Sunday ... 6 = Saturday)"""

    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    break_start: Optional[str] = None
    break_end: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_hours(cls, v, info):
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} is required")
        parse_hhmm(v)
        return v.strip()

    @field_validator("break_start", "break_end")
    @classmethod
    def validate_break(cls, v):
        # A blank break bound means "no break"
        if v is None or not v.strip():
            return None
        parse_hhmm(v)
        return v.strip()


class ScheduleReplaceRequest(BaseModel):
    """Full weekly schedule; replaces every recurring row of the practitioner"""

    working_days: list[WorkingDay]
    slot_granularity_minutes: Optional[int] = Field(default=None, ge=5, le=240)
    buffer_minutes: Optional[int] = Field(default=None, ge=0, le=240)


class WorkingDayResponse(BaseModel):
    id: int
    day_of_week: int
    start_time: str
    end_time: str
    break_start: Optional[str] = None
    break_end: Optional[str] = None

    class Config:
        from_attributes = True


class ScheduleResponse(BaseModel):
    practitioner_id: int
    slot_granularity_minutes: int
    buffer_minutes: int
    working_days: list[WorkingDayResponse]


class SlotResponse(BaseModel):
    start: datetime
    end: datetime


class AvailabilityResponse(BaseModel):
    practitioner_id: int
    service_id: int
    date_from: date
    date_to: date
    duration_minutes: int
    slots: list[SlotResponse]
