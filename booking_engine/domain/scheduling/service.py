"""Scheduling service - weekly schedule management and the availability read path"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ... import config
from ...cache import Cache, build_availability_key
from ...errors import InvalidIntervalError, InvalidScheduleError, NotFoundError
from ...models import Practitioner, WeeklyAvailability
from ...shared.intervals import parse_hhmm, utcnow
from ..bookings.conflicts import find_conflict
from ..bookings.repository import BookingRepository
from ..catalog.repository import CatalogRepository
from .repository import AvailabilityRepository
from .schemas import WorkingDay
from .slots import generate_slots

logger = logging.getLogger(__name__)


def validate_working_days(working_days: list[Union[WorkingDay, dict]]) -> list[WorkingDay]:
    """
    Check every schedule invariant before anything is written.

    - start_time < end_time
    - break given as both bounds or neither, break_start < break_end
    - break inside [start_time, end_time]
    - at most one row per day_of_week
    """
    validated: list[WorkingDay] = []
    seen_days: set[int] = set()

    for raw in working_days:
        try:
            day = raw if isinstance(raw, WorkingDay) else WorkingDay.model_validate(raw)
        except PydanticValidationError as e:
            raise InvalidScheduleError(
                "Invalid working day",
                {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
            ) from e

        def reject(reason: str):
            raise InvalidScheduleError(
                f"Invalid schedule for day {day.day_of_week}: {reason}",
                {"day_of_week": day.day_of_week, "reason": reason},
            )

        if day.day_of_week in seen_days:
            reject("day appears more than once")
        seen_days.add(day.day_of_week)

        opens, closes = parse_hhmm(day.start_time), parse_hhmm(day.end_time)
        if opens >= closes:
            reject("start_time must be before end_time")

        if bool(day.break_start) != bool(day.break_end):
            reject("break needs both break_start and break_end")
        if day.break_start:
            break_from, break_to = parse_hhmm(day.break_start), parse_hhmm(day.break_end)
            if break_from >= break_to:
                reject("break_start must be before break_end")
            if break_from < opens or break_to > closes:
                reject("break must lie within working hours")

        validated.append(day)

    return sorted(validated, key=lambda d: d.day_of_week)


class ScheduleService:
    """Schedule Definition Store operations"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AvailabilityRepository()

    def _practitioner(self, practitioner_id: int) -> Practitioner:
        practitioner = CatalogRepository.get_practitioner(self.db, practitioner_id)
        if not practitioner:
            raise NotFoundError("Practitioner", practitioner_id)
        return practitioner

    def get_schedule(self, practitioner_id: int) -> dict:
        practitioner = self._practitioner(practitioner_id)
        return self._schedule_view(practitioner, self.repo.get_schedule(self.db, practitioner_id))

    def replace_schedule(
        self,
        practitioner_id: int,
        working_days: list[Union[WorkingDay, dict]],
        slot_granularity_minutes: Optional[int] = None,
        buffer_minutes: Optional[int] = None,
    ) -> dict:
        """
        Replace the whole weekly schedule (delete-all-then-insert).
        Existing bookings are left untouched even if they now fall outside hours.
        """
        practitioner = self._practitioner(practitioner_id)
        days = validate_working_days(working_days)

        if slot_granularity_minutes is not None and slot_granularity_minutes <= 0:
            raise InvalidScheduleError("slot_granularity_minutes must be positive")
        if buffer_minutes is not None and buffer_minutes < 0:
            raise InvalidScheduleError("buffer_minutes cannot be negative")

        rows = self.repo.replace_schedule(
            self.db,
            practitioner,
            [day.model_dump() for day in days],
            slot_granularity_minutes,
            buffer_minutes,
        )
        logger.info(f"🗓️ Schedule replaced for practitioner {practitioner_id}: {len(rows)} working day(s)")
        return self._schedule_view(practitioner, rows)

    @staticmethod
    def _schedule_view(practitioner: Practitioner, rows: list[WeeklyAvailability]) -> dict:
        return {
            "practitioner_id": practitioner.id,
            "slot_granularity_minutes": practitioner.slot_granularity_minutes,
            "buffer_minutes": practitioner.buffer_minutes,
            "working_days": rows,
        }


class AvailabilityService:
    """Open slots = generated candidates minus those overlapping active bookings"""

    def __init__(
        self,
        db: Session,
        cache: Optional[Cache] = None,
        clock: Callable[[], datetime] = utcnow,
        cache_ttl: int = config.AVAILABILITY_CACHE_TTL_SECONDS,
    ):
        self.db = db
        self.cache = cache or Cache()
        self.clock = clock
        self.cache_ttl = cache_ttl

    def get_availability(
        self, practitioner_id: int, service_id: int, date_from: date, date_to: date
    ) -> dict:
        if date_from > date_to:
            raise InvalidIntervalError("date_from must not be after date_to")
        if (date_to - date_from).days + 1 > config.MAX_AVAILABILITY_RANGE_DAYS:
            raise InvalidIntervalError(
                f"date range cannot exceed {config.MAX_AVAILABILITY_RANGE_DAYS} days"
            )

        cache_key = build_availability_key(practitioner_id, service_id, date_from, date_to)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        practitioner = CatalogRepository.get_practitioner(self.db, practitioner_id)
        if not practitioner:
            raise NotFoundError("Practitioner", practitioner_id)
        service = CatalogRepository.get_active_service(self.db, service_id, practitioner_id)
        if not service:
            raise NotFoundError("Service", service_id)

        buffer_minutes = practitioner.buffer_minutes or 0
        schedule = AvailabilityRepository.get_schedule(self.db, practitioner_id)

        # Bookings that started the day before can still run into the range
        pad = timedelta(minutes=buffer_minutes)
        window_start = datetime.combine(date_from, time.min) - pad
        window_end = datetime.combine(date_to + timedelta(days=1), time.min) + pad
        bookings = BookingRepository.get_active_in_window(
            self.db, practitioner_id, window_start, window_end
        )

        candidates = generate_slots(
            schedule,
            service.duration_minutes,
            practitioner.slot_granularity_minutes or config.DEFAULT_SLOT_GRANULARITY_MINUTES,
            buffer_minutes,
            (date_from, date_to),
        )
        open_slots = [
            slot.to_dict()
            for slot in candidates.starting_from(self.clock())
            if find_conflict(slot, bookings, buffer_minutes) is None
        ]

        result = {
            "practitioner_id": practitioner_id,
            "service_id": service_id,
            "date_from": date_from.isoformat(),
            "date_to": date_to.isoformat(),
            "duration_minutes": service.duration_minutes,
            "slots": open_slots,
        }
        self.cache.set(cache_key, result, self.cache_ttl)
        logger.debug(
            f"📆 {len(open_slots)} open slot(s) for practitioner {practitioner_id}, service {service_id}"
        )
        return result
