"""Scheduling router - weekly schedule and availability endpoints"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...cache import Cache
from ...database import get_db
from ...dependencies import get_cache, get_clock
from .schemas import AvailabilityResponse, ScheduleReplaceRequest, ScheduleResponse
from .service import AvailabilityService, ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/practitioners", tags=["Scheduling"])


def get_schedule_service(db: Session = Depends(get_db)) -> ScheduleService:
    """Dependency injection for ScheduleService"""
    return ScheduleService(db)


def get_availability_service(
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    clock=Depends(get_clock),
) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db, cache=cache, clock=clock)


# ============================================================================
# WEEKLY SCHEDULE
# ============================================================================


@router.get("/{practitioner_id}/schedule", response_model=ScheduleResponse)
async def get_schedule(
    practitioner_id: int,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Get the practitioner's recurring weekly schedule"""
    return service.get_schedule(practitioner_id)


@router.put("/{practitioner_id}/schedule", response_model=ScheduleResponse)
async def replace_schedule(
    practitioner_id: int,
    data: ScheduleReplaceRequest,
    service: ScheduleService = Depends(get_schedule_service),
):
    """
    Replace the whole weekly schedule.
    Days not listed become days off. Existing bookings are not touched.
    """
    return service.replace_schedule(
        practitioner_id,
        data.working_days,
        slot_granularity_minutes=data.slot_granularity_minutes,
        buffer_minutes=data.buffer_minutes,
    )


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/{practitioner_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    practitioner_id: int,
    service_id: int = Query(...),
    date_from: date = Query(...),
    date_to: date = Query(...),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Open slots for a service over an inclusive date range"""
    return service.get_availability(practitioner_id, service_id, date_from, date_to)
