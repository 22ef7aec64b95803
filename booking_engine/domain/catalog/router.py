"""Catalog router - FastAPI endpoints for practitioners and services"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import (
    PractitionerCreate,
    PractitionerResponse,
    ServiceCreate,
    ServiceResponse,
    ServiceUpdate,
)
from .service import CatalogService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Catalog"])


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    """Dependency injection for CatalogService"""
    return CatalogService(db)


# ============================================================================
# PRACTITIONERS
# ============================================================================


@router.post(
    "/practitioners", response_model=PractitionerResponse, status_code=status.HTTP_201_CREATED
)
async def create_practitioner(
    data: PractitionerCreate,
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_practitioner(data)


@router.get("/practitioners/{practitioner_id}", response_model=PractitionerResponse)
async def get_practitioner(
    practitioner_id: int,
    service: CatalogService = Depends(get_catalog_service),
):
    return service.get_practitioner(practitioner_id)


# ============================================================================
# SERVICES
# ============================================================================


@router.post(
    "/practitioners/{practitioner_id}/services",
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_service(
    practitioner_id: int,
    data: ServiceCreate,
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_service(practitioner_id, data)


@router.get("/practitioners/{practitioner_id}/services", response_model=list[ServiceResponse])
async def get_services(
    practitioner_id: int,
    include_inactive: bool = Query(False),
    service: CatalogService = Depends(get_catalog_service),
):
    """Services offered by a practitioner (active only unless asked otherwise)"""
    return service.get_services(practitioner_id, include_inactive)


@router.patch("/services/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    service: CatalogService = Depends(get_catalog_service),
):
    """Update a service. Bookings already made keep their duration and price."""
    return service.update_service(service_id, data)


@router.delete("/services/{service_id}", response_model=ServiceResponse)
async def deactivate_service(
    service_id: int,
    service: CatalogService = Depends(get_catalog_service),
):
    """Soft delete: the service stops being bookable, history is kept"""
    return service.deactivate_service(service_id)
