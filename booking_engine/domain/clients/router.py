"""Client router - FastAPI endpoints for client operations"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...dependencies import get_clock
from .schemas import ClientResponse
from .service import ClientService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Clients"])


def get_client_service(db: Session = Depends(get_db), clock=Depends(get_clock)) -> ClientService:
    """Dependency injection for ClientService"""
    return ClientService(db, clock=clock)


@router.get("/practitioners/{practitioner_id}/clients", response_model=list[ClientResponse])
async def get_clients(
    practitioner_id: int,
    service: ClientService = Depends(get_client_service),
):
    """Clients who have booked with the practitioner, with VIP and lapse indicators"""
    return service.get_clients(practitioner_id)
