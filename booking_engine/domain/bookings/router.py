"""Bookings router - FastAPI endpoints for booking operations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ... import config
from ...database import get_db, get_session_factory
from ...dependencies import get_clock, get_discipline
from ...rate_limiter import create_rate_limiter
from .schemas import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingStatsResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    RescheduleRequest,
)
from .service import BookingQueryService, BookingTransactionManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Bookings"])

booking_rate_limit = create_rate_limiter(
    limit=config.BOOKING_RATE_LIMIT,
    window_seconds=config.BOOKING_RATE_LIMIT_WINDOW_SECONDS,
    key_prefix="booking_create",
)


def get_booking_manager(
    request: Request, discipline=Depends(get_discipline), clock=Depends(get_clock)
) -> BookingTransactionManager:
    """Dependency injection for BookingTransactionManager (one session per attempt)"""
    return BookingTransactionManager(get_session_factory(request), discipline=discipline, clock=clock)


def get_booking_queries(db: Session = Depends(get_db), clock=Depends(get_clock)) -> BookingQueryService:
    """Dependency injection for BookingQueryService"""
    return BookingQueryService(db, clock=clock)


# ============================================================================
# CREATE
# Write endpoints are sync so blocking lock waits run in the threadpool
# ============================================================================


@router.post(
    "/practitioners/{practitioner_id}/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    practitioner_id: int,
    data: BookingCreate,
    manager: BookingTransactionManager = Depends(get_booking_manager),
    _: None = Depends(booking_rate_limit),
):
    """
    Book a slot. The interval is re-validated and conflict-checked atomically;
    a listed slot that was taken in the meantime returns 409.
    """
    return manager.create_booking(
        practitioner_id,
        data.service_id,
        data.start_time,
        data.client,
        end_time=data.end_time,
        notes=data.notes,
    )


# ============================================================================
# READ
# ============================================================================


@router.get("/practitioners/{practitioner_id}/bookings", response_model=BookingListResponse)
async def list_bookings(
    practitioner_id: int,
    status: Optional[str] = Query(None),
    service_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    queries: BookingQueryService = Depends(get_booking_queries),
):
    """Paginated booking list, most recent start first"""
    return queries.list_bookings(
        practitioner_id,
        status=status,
        service_id=service_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )


@router.get("/practitioners/{practitioner_id}/bookings/upcoming", response_model=list[BookingResponse])
async def upcoming_bookings(
    practitioner_id: int,
    limit: int = Query(10, ge=1, le=100),
    queries: BookingQueryService = Depends(get_booking_queries),
):
    return queries.upcoming(practitioner_id, limit)


@router.get("/practitioners/{practitioner_id}/bookings/stats", response_model=BookingStatsResponse)
async def booking_stats(
    practitioner_id: int,
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    queries: BookingQueryService = Depends(get_booking_queries),
):
    return queries.stats(practitioner_id, date_from, date_to)


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    queries: BookingQueryService = Depends(get_booking_queries),
):
    return queries.get_booking(booking_id)


# ============================================================================
# STATUS TRANSITIONS
# ============================================================================


@router.post("/bookings/bulk-status", response_model=BulkStatusResponse)
def bulk_update_status(
    data: BulkStatusRequest,
    manager: BookingTransactionManager = Depends(get_booking_manager),
):
    """Apply one action to many bookings; each id succeeds or fails on its own"""
    results = manager.bulk_update_status(data.booking_ids, data.action)
    return {
        "action": data.action,
        "updated": sum(1 for r in results if r["result"] == "ok"),
        "results": results,
    }


@router.post("/bookings/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(
    booking_id: int,
    manager: BookingTransactionManager = Depends(get_booking_manager),
):
    return manager.confirm(booking_id)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    manager: BookingTransactionManager = Depends(get_booking_manager),
):
    """Cancel a booking; its interval is immediately free for others"""
    return manager.cancel(booking_id)


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
def complete_booking(
    booking_id: int,
    manager: BookingTransactionManager = Depends(get_booking_manager),
):
    return manager.complete(booking_id)


@router.post("/bookings/{booking_id}/reschedule", response_model=BookingResponse)
def reschedule_booking(
    booking_id: int,
    data: RescheduleRequest,
    manager: BookingTransactionManager = Depends(get_booking_manager),
):
    """Move an active booking; on conflict the original interval is kept"""
    return manager.reschedule(booking_id, data.start_time, end_time=data.end_time)
