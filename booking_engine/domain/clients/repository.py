"""Client repository - Database operations for clients"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Booking, BookingStatus, Client


class ClientRepository:
    """Repository for client database operations"""

    @staticmethod
    def get_client_by_email(db: Session, practitioner_id: int, email: str) -> Optional[Client]:
        return (
            db.query(Client)
            .filter(Client.practitioner_id == practitioner_id, Client.email == email)
            .first()
        )

    @staticmethod
    def get_clients_with_totals(db: Session, practitioner_id: int) -> list[tuple[Client, int, float]]:
        """Every client of the practitioner with their completed booking count and spend"""
        completed = (
            db.query(
                Booking.client_id.label("client_id"),
                func.count(Booking.id).label("completed_bookings"),
                func.sum(Booking.price).label("total_spent"),
            )
            .filter(
                Booking.practitioner_id == practitioner_id,
                Booking.status == BookingStatus.COMPLETED,
            )
            .group_by(Booking.client_id)
            .subquery()
        )
        return (
            db.query(
                Client,
                func.coalesce(completed.c.completed_bookings, 0),
                func.coalesce(completed.c.total_spent, 0.0),
            )
            .outerjoin(completed, completed.c.client_id == Client.id)
            .filter(Client.practitioner_id == practitioner_id)
            .all()
        )

    @staticmethod
    def get_or_create_client(
        db: Session, practitioner_id: int, name: str, email: str, phone: Optional[str] = None
    ) -> Client:
        """
        Find the practitioner's client by email or stage a new one.
        Runs inside the caller's transaction; nothing is committed here.
        """
        client = ClientRepository.get_client_by_email(db, practitioner_id, email)
        if client:
            if phone and not client.phone:
                client.phone = phone
            return client

        client = Client(
            practitioner_id=practitioner_id,
            name=name,
            email=email,
            phone=phone,
            total_bookings=0,
        )
        db.add(client)
        db.flush()
        return client

    @staticmethod
    def record_booking(client: Client, booked_at: datetime) -> None:
        client.total_bookings = (client.total_bookings or 0) + 1
        client.last_booking_at = booked_at
