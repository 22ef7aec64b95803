"""
Booking service - the only component allowed to mutate booking state.

``BookingTransactionManager`` wraps "check conflict + write" in a single
atomicity boundary (see ``locking.py``) and owns the booking state machine:

    PENDING   --confirm-->  CONFIRMED
    PENDING   --cancel--->  CANCELLED
    CONFIRMED --cancel--->  CANCELLED
    CONFIRMED --complete->  COMPLETED

CANCELLED and COMPLETED are terminal. ``BookingQueryService`` serves the
read-only views.
"""

import logging
import math
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from ...errors import (
    BookingEngineError,
    ConflictError,
    InvalidIntervalError,
    InvalidTransitionError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from ...models import Booking, BookingStatus
from ...shared.intervals import Interval, to_canonical, utcnow
from ...utils.sanitization import sanitize_field
from ..catalog.repository import CatalogRepository
from ..clients.repository import ClientRepository
from ..scheduling.repository import AvailabilityRepository
from ..scheduling.slots import fits_schedule
from .conflicts import conflict_window, find_conflict
from .locking import LockDiscipline, LocalLockManager
from .repository import BookingRepository
from .schemas import ClientInfo

logger = logging.getLogger(__name__)

TRANSITIONS = {
    "confirm": ((BookingStatus.PENDING,), BookingStatus.CONFIRMED),
    "cancel": ((BookingStatus.PENDING, BookingStatus.CONFIRMED), BookingStatus.CANCELLED),
    "complete": ((BookingStatus.CONFIRMED,), BookingStatus.COMPLETED),
}

SERIALIZATION_FAILURES = {"40001", "40P01"}
EXCLUSION_VIOLATION = "23P01"


def _sqlstate(error: Exception) -> Optional[str]:
    orig = getattr(error, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@contextmanager
def store_errors(context: str):
    """Turn store outages raised inside the block into ``TransientError``"""
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError) as e:
        logger.error(f"❌ Booking store unavailable during {context}: {e}")
        raise TransientError() from e
    except DBAPIError as e:
        if not e.connection_invalidated:
            raise
        logger.error(f"❌ Booking store connection lost during {context}: {e}")
        raise TransientError() from e


class BookingTransactionManager:
    """Creates, reschedules and transitions bookings atomically"""

    def __init__(
        self,
        session_factory: sessionmaker,
        discipline=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.discipline = discipline or LockDiscipline(LocalLockManager())
        self.clock = clock
        self.repo = BookingRepository()

    # ------------------------------------------------------------------
    # Validation (steps 1 and 2, outside the critical section)
    # ------------------------------------------------------------------

    def _validate_interval(
        self, start: datetime, end: Optional[datetime], duration_minutes: int
    ) -> Interval:
        start = to_canonical(start)
        expected_end = start + timedelta(minutes=duration_minutes)
        if end is not None:
            end = to_canonical(end)
            if start >= end:
                raise InvalidIntervalError("start must be before end", start, end)
            if end != expected_end:
                raise InvalidIntervalError(
                    f"interval must last exactly {duration_minutes} minutes", start, end
                )

        if start < self.clock():
            raise InvalidIntervalError("cannot book in the past", start, expected_end)

        return Interval(start, expected_end)

    def _validate_working_hours(
        self, db: Session, practitioner_id: int, candidate: Interval, buffer_minutes: int
    ) -> None:
        schedule = AvailabilityRepository.get_schedule(db, practitioner_id)
        if not fits_schedule(schedule, candidate, buffer_minutes):
            raise InvalidIntervalError("outside working hours", candidate.start, candidate.end)

    @staticmethod
    def _client_info(client_info: Union[ClientInfo, dict]) -> ClientInfo:
        if isinstance(client_info, ClientInfo):
            return client_info
        try:
            return ClientInfo.model_validate(client_info)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid client information",
                {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
            ) from e

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _run(self, practitioner_id: Optional[int], work: Callable[[Session], Booking]):
        """
        Run ``work`` in its own transaction. With a practitioner id the work
        runs inside that practitioner's critical section and commits before
        the section is left. Either everything commits or nothing does.
        """
        attempts = self.discipline.max_attempts if practitioner_id is not None else 1
        for attempt in range(1, attempts + 1):
            db = self.session_factory()
            try:
                if practitioner_id is None:
                    result = work(db)
                    db.commit()
                    return result

                self.discipline.begin(db)
                with self.discipline.critical_section(db, practitioner_id) as lease:
                    try:
                        result = work(db)
                        if not lease.held():
                            raise TransientError("Practitioner lock expired before commit; retry the request")
                        db.commit()
                    except Exception:
                        # Roll back while the section is still held
                        db.rollback()
                        raise
                return result
            except BookingEngineError:
                db.rollback()
                raise
            except IntegrityError as e:
                db.rollback()
                if _sqlstate(e) == EXCLUSION_VIOLATION:
                    # The store-level guard caught an overlap the check did not see
                    logger.warning(f"🛡️ Exclusion constraint rejected overlap for practitioner {practitioner_id}")
                    raise ConflictError(None) from e
                raise
            except OperationalError as e:
                db.rollback()
                if _sqlstate(e) in SERIALIZATION_FAILURES and attempt < attempts:
                    logger.warning(
                        f"🔁 Serialization failure for practitioner {practitioner_id}, retry {attempt}/{attempts - 1}"
                    )
                    continue
                logger.error(f"❌ Booking store error: {e}")
                raise TransientError() from e
            except (InterfaceError, PoolTimeoutError) as e:
                db.rollback()
                logger.error(f"❌ Booking store unavailable: {e}")
                raise TransientError() from e
            except DBAPIError as e:
                db.rollback()
                if not e.connection_invalidated:
                    raise
                logger.error(f"❌ Booking store connection lost: {e}")
                raise TransientError() from e
            finally:
                db.close()

        raise TransientError("Could not serialize booking transaction; retry the request")

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_booking(
        self,
        practitioner_id: int,
        service_id: int,
        start_time: datetime,
        client_info: Union[ClientInfo, dict],
        end_time: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Book ``service_id`` with the practitioner starting at ``start_time``.

        Raises:
            NotFoundError: unknown practitioner, or service inactive/not theirs
            InvalidIntervalError: malformed, past or out-of-hours interval
            ConflictError: an active booking overlaps (carries its id)
            TransientError: store or lock unavailable; nothing was written
        """
        client = self._client_info(client_info)
        client_name = sanitize_field(client.name, "client.name", 255)
        clean_notes = sanitize_field(notes, "notes", 1000) if notes else None

        with self.session_factory() as db, store_errors("booking validation"):
            practitioner = CatalogRepository.get_practitioner(db, practitioner_id)
            if not practitioner:
                raise NotFoundError("Practitioner", practitioner_id)
            service = CatalogRepository.get_active_service(db, service_id, practitioner_id)
            if not service:
                raise NotFoundError("Service", service_id)

            duration_minutes = service.duration_minutes
            price = service.price
            buffer_minutes = practitioner.buffer_minutes or 0

            candidate = self._validate_interval(start_time, end_time, duration_minutes)
            self._validate_working_hours(db, practitioner_id, candidate, buffer_minutes)

        def insert(db: Session) -> Booking:
            window = conflict_window(candidate, buffer_minutes)
            existing = self.repo.get_active_in_window(db, practitioner_id, window.start, window.end)
            conflict = find_conflict(candidate, existing, buffer_minutes)
            if conflict:
                logger.info(
                    f"⛔ Conflict for practitioner {practitioner_id} at {candidate.start.isoformat()}: "
                    f"booking {conflict.id} holds {conflict.start_time.isoformat()}-{conflict.end_time.isoformat()}"
                )
                raise ConflictError(conflict.id, candidate.start, candidate.end)

            now = self.clock()
            client_row = ClientRepository.get_or_create_client(
                db, practitioner_id, client_name, client.email, client.phone
            )
            ClientRepository.record_booking(client_row, now)

            return self.repo.add_booking(
                db,
                practitioner_id=practitioner_id,
                service_id=service_id,
                client_id=client_row.id,
                client_name=client_name,
                client_email=client.email,
                client_phone=client.phone,
                start_time=candidate.start,
                end_time=candidate.end,
                duration_minutes=duration_minutes,
                price=price,
                status=BookingStatus.PENDING,
                notes=clean_notes,
                created_at=now,
                updated_at=now,
            )

        try:
            booking = self._run(practitioner_id, insert)
        except ConflictError as e:
            if e.conflicting_booking_id is None:
                raise self._conflict_from_store(practitioner_id, candidate, buffer_minutes) from e
            raise

        logger.info(
            f"✅ Booking {booking.id} created (PENDING) for practitioner {practitioner_id}: "
            f"{booking.start_time.isoformat()}-{booking.end_time.isoformat()}"
        )
        return booking

    def _conflict_from_store(
        self, practitioner_id: int, candidate: Interval, buffer_minutes: int, exclude_booking_id: Optional[int] = None
    ) -> ConflictError:
        """Resolve which booking won when the exclusion constraint fired"""
        with self.session_factory() as db, store_errors("conflict lookup"):
            window = conflict_window(candidate, buffer_minutes)
            existing = self.repo.get_active_in_window(
                db, practitioner_id, window.start, window.end, exclude_booking_id
            )
            conflict = find_conflict(candidate, existing, buffer_minutes)
        return ConflictError(conflict.id if conflict else None, candidate.start, candidate.end)

    # ------------------------------------------------------------------
    # Reschedule
    # ------------------------------------------------------------------

    def reschedule(
        self, booking_id: int, start_time: datetime, end_time: Optional[datetime] = None
    ) -> Booking:
        """
        Move an active booking. The new interval keeps the booking's
        snapshotted duration and goes through full validation against every
        other booking; on any failure the booking is left untouched.
        """
        with self.session_factory() as db, store_errors("reschedule validation"):
            booking = self.repo.get_booking(db, booking_id)
            if not booking:
                raise NotFoundError("Booking", booking_id)
            if booking.status not in BookingStatus.ACTIVE:
                raise InvalidTransitionError(booking_id, booking.status, "reschedule")

            practitioner_id = booking.practitioner_id
            practitioner = CatalogRepository.get_practitioner(db, practitioner_id)
            buffer_minutes = practitioner.buffer_minutes or 0

            candidate = self._validate_interval(start_time, end_time, booking.duration_minutes)
            self._validate_working_hours(db, practitioner_id, candidate, buffer_minutes)

        def move(db: Session) -> Booking:
            current = (
                db.query(Booking).populate_existing().filter(Booking.id == booking_id).first()
            )
            if not current:
                raise NotFoundError("Booking", booking_id)
            if current.status not in BookingStatus.ACTIVE:
                raise InvalidTransitionError(booking_id, current.status, "reschedule")

            window = conflict_window(candidate, buffer_minutes)
            others = self.repo.get_active_in_window(
                db, practitioner_id, window.start, window.end, exclude_booking_id=booking_id
            )
            conflict = find_conflict(candidate, others, buffer_minutes)
            if conflict:
                raise ConflictError(conflict.id, candidate.start, candidate.end)

            current.start_time = candidate.start
            current.end_time = candidate.end
            current.updated_at = self.clock()
            db.flush()
            return current

        try:
            booking = self._run(practitioner_id, move)
        except ConflictError as e:
            if e.conflicting_booking_id is None:
                raise self._conflict_from_store(
                    practitioner_id, candidate, buffer_minutes, exclude_booking_id=booking_id
                ) from e
            raise

        logger.info(f"📅 Booking {booking_id} rescheduled to {candidate.start.isoformat()}")
        return booking

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def transition(self, booking_id: int, action: str) -> Booking:
        """Apply a state-machine action with a conditional, status-only update"""
        if action not in TRANSITIONS:
            raise ValidationError(f"Unknown booking action '{action}'", {"action": action})
        allowed, target = TRANSITIONS[action]

        def apply(db: Session) -> Booking:
            updated = (
                db.query(Booking)
                .filter(Booking.id == booking_id, Booking.status.in_(allowed))
                .update(
                    {Booking.status: target, Booking.updated_at: self.clock()},
                    synchronize_session=False,
                )
            )
            booking = db.query(Booking).populate_existing().filter(Booking.id == booking_id).first()
            if not booking:
                raise NotFoundError("Booking", booking_id)
            if not updated:
                raise InvalidTransitionError(booking_id, booking.status, action)
            return booking

        booking = self._run(None, apply)
        logger.info(f"🔄 Booking {booking_id} -> {target}")
        return booking

    def confirm(self, booking_id: int) -> Booking:
        return self.transition(booking_id, "confirm")

    def cancel(self, booking_id: int) -> Booking:
        return self.transition(booking_id, "cancel")

    def complete(self, booking_id: int) -> Booking:
        return self.transition(booking_id, "complete")

    def bulk_update_status(self, booking_ids: list[int], action: str) -> list[dict]:
        """
        Apply the same transition to each id as an independent unit of work.
        A failing id is reported and never rolls back the others.
        """
        if action not in TRANSITIONS:
            raise ValidationError(f"Unknown booking action '{action}'", {"action": action})

        results = []
        for booking_id in booking_ids:
            try:
                booking = self.transition(booking_id, action)
                results.append({"id": booking_id, "result": "ok", "status": booking.status})
            except NotFoundError as e:
                results.append({"id": booking_id, "result": "not_found", "message": e.message})
            except InvalidTransitionError as e:
                results.append(
                    {
                        "id": booking_id,
                        "result": "invalid_transition",
                        "status": e.current_status,
                        "message": e.message,
                    }
                )
            except TransientError as e:
                results.append({"id": booking_id, "result": "transient_error", "message": e.message})

        updated = sum(1 for r in results if r["result"] == "ok")
        logger.info(f"📦 Bulk {action}: {updated}/{len(booking_ids)} bookings updated")
        return results


class BookingQueryService:
    """Read-only booking views"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.repo = BookingRepository()

    def _require_practitioner(self, practitioner_id: int) -> None:
        if not CatalogRepository.get_practitioner(self.db, practitioner_id):
            raise NotFoundError("Practitioner", practitioner_id)

    def get_booking(self, booking_id: int) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    def list_bookings(
        self,
        practitioner_id: int,
        status: Optional[str] = None,
        service_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        self._require_practitioner(practitioner_id)
        if status and status not in BookingStatus.ALL:
            raise ValidationError(f"Invalid status '{status}'", {"allowed": list(BookingStatus.ALL)})

        items, total = self.repo.search_bookings(
            self.db,
            practitioner_id,
            status=status,
            service_id=service_id,
            date_from=to_canonical(date_from) if date_from else None,
            date_to=to_canonical(date_to) if date_to else None,
            page=page,
            limit=limit,
        )
        return {
            "bookings": items,
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0,
        }

    def upcoming(self, practitioner_id: int, limit: int = 10) -> list[Booking]:
        self._require_practitioner(practitioner_id)
        return self.repo.get_upcoming(self.db, practitioner_id, self.clock(), limit)

    def stats(
        self,
        practitioner_id: int,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> dict:
        self._require_practitioner(practitioner_id)
        return self.repo.get_booking_stats(
            self.db,
            practitioner_id,
            to_canonical(date_from) if date_from else None,
            to_canonical(date_to) if date_to else None,
        )
