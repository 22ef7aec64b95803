"""Client domain schemas - Pydantic models for responses"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ClientResponse(BaseModel):
    """A practitioner's client with booking history totals"""

    id: int
    name: str
    email: str
    phone: Optional[str] = None
    total_bookings: int
    completed_bookings: int
    total_spent: float
    last_booking_at: Optional[datetime] = None
    days_since_last_booking: Optional[int] = None
    is_vip: bool
    risk_level: str
    created_at: Optional[datetime] = None
