"""Shared FastAPI dependencies for state owned by the running app"""

from datetime import datetime
from typing import Callable

from fastapi import Request

from .cache import Cache
from .shared.intervals import utcnow


def get_clock(request: Request) -> Callable[[], datetime]:
    return getattr(request.app.state, "clock", utcnow)


def get_cache(request: Request) -> Cache:
    cache = getattr(request.app.state, "cache", None)
    return cache if cache is not None else Cache()


def get_discipline(request: Request):
    return request.app.state.booking_discipline
