from contextlib import contextmanager
from datetime import date, datetime
from types import SimpleNamespace

import pytest

from booking_engine.database import Base, create_db_engine, create_session_factory
from booking_engine.domain.bookings.locking import LocalLease, LocalLockManager, LockDiscipline
from booking_engine.domain.bookings.service import BookingTransactionManager
from booking_engine.models import Booking, BookingStatus, Practitioner, Service, WeeklyAvailability

# 2030-01-01 is a Tuesday; 2030-01-06 a Sunday; 2030-01-07 a Monday
NOW = datetime(2030, 1, 1, 8, 0)
SUNDAY = date(2030, 1, 6)
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)

CLIENT = {"name": "Grace Hopper", "email": "grace@example.com", "phone": "+1 555 010 0000"}


def fixed_clock(moment: datetime = NOW):
    return lambda: moment


def row(day_of_week, start_time, end_time, break_start=None, break_end=None):
    """Schedule row stand-in for pure slot tests"""
    return SimpleNamespace(
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        break_start=break_start,
        break_end=break_end,
    )


class ExpiringLockManager:
    """Grants the lock but the lease is already gone by commit time"""

    @contextmanager
    def hold(self, key):
        yield LocalLease(0)


class DriverError(Exception):
    """DBAPI-level error carrying a PostgreSQL SQLSTATE, as psycopg raises them"""

    def __init__(self, sqlstate=None):
        super().__init__(f"driver error (sqlstate {sqlstate})")
        self.sqlstate = sqlstate


class FakeRedisLock:
    def __init__(self, name, acquired=True, acquire_error=None, release_error=None):
        self.name = name
        self.acquired = acquired
        self.acquire_error = acquire_error
        self.release_error = release_error
        self.release_calls = 0

    def acquire(self):
        if self.acquire_error:
            raise self.acquire_error
        return self.acquired

    def owned(self):
        return self.acquired

    def release(self):
        self.release_calls += 1
        if self.release_error:
            raise self.release_error


class LockingRedis:
    """Redis client stand-in whose ``lock()`` hands out scripted locks"""

    def __init__(self, **behaviour):
        self.behaviour = behaviour
        self.locks = []

    def lock(self, name, timeout=None, blocking_timeout=None):
        lock = FakeRedisLock(name, **self.behaviour)
        self.locks.append(lock)
        return lock


class FakeRedis:
    """Just enough of the redis client surface for Cache and RateLimiter"""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def set(self, key, value, ex=None):
        self.store[key] = str(value)
        if ex:
            self.ttls[key] = ex

    def ttl(self, key):
        return self.ttls.get(key, -2) if key in self.store else -2

    def delete(self, key):
        self.store.pop(key, None)
        self.ttls.pop(key, None)


@pytest.fixture
def engine(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'bookings.db'}")
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(session_factory):
    """Practitioner working Mon-Fri 09:00-17:00 with a 12:00-13:00 break"""
    with session_factory() as session:
        practitioner = Practitioner(
            name="Dr. Ada Lovelace",
            email="ada@example.com",
            slot_granularity_minutes=30,
            buffer_minutes=0,
        )
        session.add(practitioner)
        session.flush()

        for day in range(1, 6):
            session.add(
                WeeklyAvailability(
                    practitioner_id=practitioner.id,
                    day_of_week=day,
                    start_time="09:00",
                    end_time="17:00",
                    break_start="12:00",
                    break_end="13:00",
                    is_recurring=True,
                )
            )

        consultation = Service(
            practitioner_id=practitioner.id, name="Consultation", duration_minutes=45, price=80.0
        )
        massage = Service(practitioner_id=practitioner.id, name="Massage", duration_minutes=60, price=100.0)
        retired = Service(
            practitioner_id=practitioner.id,
            name="Retired",
            duration_minutes=30,
            price=10.0,
            is_active=False,
        )
        session.add_all([consultation, massage, retired])
        session.commit()

        return SimpleNamespace(
            practitioner_id=practitioner.id,
            consultation_id=consultation.id,
            massage_id=massage.id,
            retired_id=retired.id,
        )


@pytest.fixture
def manager(session_factory):
    return BookingTransactionManager(
        session_factory, LockDiscipline(LocalLockManager()), clock=fixed_clock()
    )


@pytest.fixture
def set_buffer(session_factory, seed):
    def apply(minutes):
        with session_factory() as session:
            practitioner = session.get(Practitioner, seed.practitioner_id)
            practitioner.buffer_minutes = minutes
            session.commit()

    return apply


@pytest.fixture
def insert_booking(session_factory, seed):
    """Write a booking row directly, bypassing validation"""

    def insert(start, end, status=BookingStatus.CONFIRMED, service_id=None):
        with session_factory() as session:
            booking = Booking(
                practitioner_id=seed.practitioner_id,
                service_id=service_id or seed.consultation_id,
                client_name="Walk In",
                client_email="walkin@example.com",
                start_time=start,
                end_time=end,
                duration_minutes=int((end - start).total_seconds() // 60),
                price=0.0,
                status=status,
                created_at=NOW,
                updated_at=NOW,
            )
            session.add(booking)
            session.commit()
            return booking.id

    return insert
