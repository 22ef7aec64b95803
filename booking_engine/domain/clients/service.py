"""Client service - Business logic for the practitioner's client list"""

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from ...errors import NotFoundError
from ...models import Client
from ...shared.intervals import utcnow
from ..catalog.repository import CatalogRepository
from .repository import ClientRepository

logger = logging.getLogger(__name__)

VIP_TOTAL_SPENT = 500
VIP_TOTAL_BOOKINGS = 10
HIGH_RISK_AFTER_DAYS = 120
MEDIUM_RISK_AFTER_DAYS = 60


def risk_level(total_bookings: int, days_since_last_booking) -> str:
    """How likely the client is to have lapsed: low, medium or high"""
    if not total_bookings or days_since_last_booking is None:
        return "medium"
    if days_since_last_booking > HIGH_RISK_AFTER_DAYS:
        return "high"
    if days_since_last_booking > MEDIUM_RISK_AFTER_DAYS:
        return "medium"
    return "low"


class ClientService:
    """Service layer for client business logic"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.repo = ClientRepository()

    def get_clients(self, practitioner_id: int) -> list[dict]:
        """All clients of a practitioner, highest spend first"""
        if not CatalogRepository.get_practitioner(self.db, practitioner_id):
            raise NotFoundError("Practitioner", practitioner_id)

        now = self.clock()
        clients = [
            self._summary(client, completed, spent, now)
            for client, completed, spent in self.repo.get_clients_with_totals(self.db, practitioner_id)
        ]
        clients.sort(key=lambda c: (-c["total_spent"], c["id"]))
        logger.info(f"👥 Listed {len(clients)} clients for practitioner {practitioner_id}")
        return clients

    @staticmethod
    def _summary(client: Client, completed: int, spent: float, now: datetime) -> dict:
        total_bookings = client.total_bookings or 0
        days_since = (now - client.last_booking_at).days if client.last_booking_at else None
        return {
            "id": client.id,
            "name": client.name,
            "email": client.email,
            "phone": client.phone,
            "total_bookings": total_bookings,
            "completed_bookings": int(completed or 0),
            "total_spent": float(spent or 0),
            "last_booking_at": client.last_booking_at,
            "days_since_last_booking": days_since,
            "is_vip": float(spent or 0) >= VIP_TOTAL_SPENT or total_bookings >= VIP_TOTAL_BOOKINGS,
            "risk_level": risk_level(total_bookings, days_since),
            "created_at": client.created_at,
        }
