"""Catalog repository - Database operations for practitioners and services"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Practitioner, Service


class CatalogRepository:
    """Repository for practitioner and service rows"""

    @staticmethod
    def get_practitioner(db: Session, practitioner_id: int) -> Optional[Practitioner]:
        return db.query(Practitioner).filter(Practitioner.id == practitioner_id).first()

    @staticmethod
    def get_practitioner_by_email(db: Session, email: str) -> Optional[Practitioner]:
        return db.query(Practitioner).filter(Practitioner.email == email).first()

    @staticmethod
    def create_practitioner(db: Session, **data) -> Practitioner:
        practitioner = Practitioner(**data)
        db.add(practitioner)
        db.commit()
        db.refresh(practitioner)
        return practitioner

    @staticmethod
    def get_services(db: Session, practitioner_id: int, include_inactive: bool = False) -> list[Service]:
        query = db.query(Service).filter(Service.practitioner_id == practitioner_id)
        if not include_inactive:
            query = query.filter(Service.is_active.is_(True))
        return query.order_by(Service.name.asc()).all()

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def get_active_service(db: Session, service_id: int, practitioner_id: int) -> Optional[Service]:
        """Service that can currently be booked with this practitioner"""
        return (
            db.query(Service)
            .filter(
                Service.id == service_id,
                Service.practitioner_id == practitioner_id,
                Service.is_active.is_(True),
            )
            .first()
        )

    @staticmethod
    def create_service(db: Session, practitioner_id: int, **data) -> Service:
        service = Service(practitioner_id=practitioner_id, **data)
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    @staticmethod
    def update_service(db: Session, service: Service, **updates) -> Service:
        """Update a service with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(service, key):
                setattr(service, key, value)

        db.commit()
        db.refresh(service)
        return service
