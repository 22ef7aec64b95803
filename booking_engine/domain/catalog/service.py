"""Catalog service - Business logic for practitioners and services"""

import logging

from sqlalchemy.orm import Session

from ... import config
from ...errors import NotFoundError, ValidationError
from ...models import Practitioner, Service
from ...utils.sanitization import sanitize_field
from .repository import CatalogRepository
from .schemas import PractitionerCreate, ServiceCreate, ServiceUpdate

logger = logging.getLogger(__name__)


class CatalogService:
    """Service layer for practitioner and service management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CatalogRepository()

    def get_practitioner(self, practitioner_id: int) -> Practitioner:
        practitioner = self.repo.get_practitioner(self.db, practitioner_id)
        if not practitioner:
            raise NotFoundError("Practitioner", practitioner_id)
        return practitioner

    def create_practitioner(self, data: PractitionerCreate) -> Practitioner:
        if data.email and self.repo.get_practitioner_by_email(self.db, data.email):
            raise ValidationError(
                f"Practitioner with email '{data.email}' already exists", {"field": "email"}
            )

        practitioner = self.repo.create_practitioner(
            self.db,
            name=sanitize_field(data.name, "name", 255),
            email=data.email,
            slot_granularity_minutes=(
                data.slot_granularity_minutes or config.DEFAULT_SLOT_GRANULARITY_MINUTES
            ),
            buffer_minutes=(
                data.buffer_minutes if data.buffer_minutes is not None else config.DEFAULT_BUFFER_MINUTES
            ),
        )
        logger.info(f"🆕 Practitioner {practitioner.id} created")
        return practitioner

    def get_services(self, practitioner_id: int, include_inactive: bool = False) -> list[Service]:
        self.get_practitioner(practitioner_id)
        return self.repo.get_services(self.db, practitioner_id, include_inactive)

    def get_service(self, service_id: int) -> Service:
        service = self.repo.get_service(self.db, service_id)
        if not service:
            raise NotFoundError("Service", service_id)
        return service

    def create_service(self, practitioner_id: int, data: ServiceCreate) -> Service:
        self.get_practitioner(practitioner_id)
        service = self.repo.create_service(
            self.db,
            practitioner_id,
            name=sanitize_field(data.name, "name", 255),
            description=sanitize_field(data.description, "description", 2000) or None,
            duration_minutes=data.duration_minutes,
            price=data.price,
            is_active=data.is_active,
        )
        logger.info(f"🆕 Service {service.id} ({service.duration_minutes} min) created for practitioner {practitioner_id}")
        return service

    def update_service(self, service_id: int, data: ServiceUpdate) -> Service:
        """Edits apply to future bookings only; existing bookings keep their snapshot"""
        service = self.get_service(service_id)

        updates = data.model_dump(exclude_unset=True)
        if updates.get("name") is not None:
            updates["name"] = sanitize_field(updates["name"], "name", 255)
        if updates.get("description") is not None:
            updates["description"] = sanitize_field(updates["description"], "description", 2000)

        return self.repo.update_service(self.db, service, **updates)

    def deactivate_service(self, service_id: int) -> Service:
        service = self.get_service(service_id)
        logger.info(f"🗑️ Service {service_id} deactivated")
        return self.repo.update_service(self.db, service, is_active=False)
