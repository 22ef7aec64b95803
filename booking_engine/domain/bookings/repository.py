"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Booking, BookingStatus, Practitioner


class BookingRepository:
    """Repository for the Booking Store"""

    @staticmethod
    def get_booking(db: Session, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def lock_practitioner(db: Session, practitioner_id: int) -> Optional[Practitioner]:
        """Row-level lock on the practitioner; serializes writers of its booking set"""
        return (
            db.query(Practitioner)
            .filter(Practitioner.id == practitioner_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def get_active_in_window(
        db: Session,
        practitioner_id: int,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> list[Booking]:
        """PENDING/CONFIRMED bookings overlapping [window_start, window_end)"""
        query = db.query(Booking).filter(
            Booking.practitioner_id == practitioner_id,
            Booking.status.in_(BookingStatus.ACTIVE),
            Booking.start_time < window_end,
            Booking.end_time > window_start,
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_time.asc()).all()

    @staticmethod
    def add_booking(db: Session, **booking_data) -> Booking:
        """Stage a booking inside the caller's transaction (no commit)"""
        booking = Booking(**booking_data)
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def search_bookings(
        db: Session,
        practitioner_id: int,
        status: Optional[str] = None,
        service_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Booking], int]:
        """Filtered bookings for a practitioner, newest first, with total count"""
        query = db.query(Booking).filter(Booking.practitioner_id == practitioner_id)

        if status:
            query = query.filter(Booking.status == status)
        if service_id:
            query = query.filter(Booking.service_id == service_id)
        if date_from:
            query = query.filter(Booking.start_time >= date_from)
        if date_to:
            query = query.filter(Booking.start_time < date_to)

        total = query.count()
        items = (
            query.order_by(Booking.start_time.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def get_upcoming(db: Session, practitioner_id: int, now: datetime, limit: int = 10) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(
                Booking.practitioner_id == practitioner_id,
                Booking.start_time >= now,
                Booking.status.in_(BookingStatus.ACTIVE),
            )
            .order_by(Booking.start_time.asc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_booking_stats(
        db: Session,
        practitioner_id: int,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> dict:
        """Counts per status plus revenue from completed bookings"""
        filters = [Booking.practitioner_id == practitioner_id]
        if date_from:
            filters.append(Booking.start_time >= date_from)
        if date_to:
            filters.append(Booking.start_time < date_to)

        status_counts = dict(
            db.query(Booking.status, func.count(Booking.id))
            .filter(*filters)
            .group_by(Booking.status)
            .all()
        )

        revenue = (
            db.query(func.sum(Booking.price))
            .filter(*filters, Booking.status == BookingStatus.COMPLETED)
            .scalar()
            or 0
        )

        completed_count = status_counts.get(BookingStatus.COMPLETED, 0)
        return {
            "total": sum(status_counts.values()),
            "pending": status_counts.get(BookingStatus.PENDING, 0),
            "confirmed": status_counts.get(BookingStatus.CONFIRMED, 0),
            "cancelled": status_counts.get(BookingStatus.CANCELLED, 0),
            "completed": completed_count,
            "revenue": float(revenue),
            "average_booking_value": float(revenue) / completed_count if completed_count else 0.0,
        }
