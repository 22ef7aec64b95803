from sqlalchemy import (
    DDL,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class BookingStatus:
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    ALL = (PENDING, CONFIRMED, CANCELLED, COMPLETED)
    # Only these hold time on the practitioner's calendar
    ACTIVE = (PENDING, CONFIRMED)


class Practitioner(Base):
    __tablename__ = "practitioners"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    slot_granularity_minutes = Column(Integer, default=30, nullable=False)
    buffer_minutes = Column(Integer, default=0, nullable=False)  # Gap enforced after each booking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    availabilities = relationship(
        "WeeklyAvailability", back_populates="practitioner", cascade="all, delete-orphan"
    )
    services = relationship("Service", back_populates="practitioner", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="practitioner")


class WeeklyAvailability(Base):
    __tablename__ = "weekly_availabilities"
    __table_args__ = (
        UniqueConstraint("practitioner_id", "day_of_week", "is_recurring", name="uq_availability_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    practitioner_id = Column(Integer, ForeignKey("practitioners.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
    break_start = Column(String(5), nullable=True)
    break_end = Column(String(5), nullable=True)
    is_recurring = Column(Boolean, default=True, nullable=False)

    practitioner = relationship("Practitioner", back_populates="availabilities")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    practitioner_id = Column(Integer, ForeignKey("practitioners.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Float, default=0.0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    practitioner = relationship("Practitioner", back_populates="services")


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (UniqueConstraint("practitioner_id", "email", name="uq_client_email"),)

    id = Column(Integer, primary_key=True, index=True)
    practitioner_id = Column(Integer, ForeignKey("practitioners.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    total_bookings = Column(Integer, default=0, nullable=False)
    last_booking_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_practitioner_window", "practitioner_id", "start_time", "end_time"),)

    id = Column(Integer, primary_key=True, index=True)
    practitioner_id = Column(Integer, ForeignKey("practitioners.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)
    client_phone = Column(String(50), nullable=True)
    start_time = Column(DateTime, nullable=False)  # Canonical UTC, naive
    end_time = Column(DateTime, nullable=False)
    # Snapshotted from the service at creation; later service edits never touch these
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Float, default=0.0, nullable=False)
    status = Column(String(20), default=BookingStatus.PENDING, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    practitioner = relationship("Practitioner", back_populates="bookings")
    service = relationship("Service")
    client = relationship("Client")


# Last-resort guard on PostgreSQL: the store itself rejects overlapping active
# bookings for one practitioner (see migrations/add_booking_overlap_constraint.py)
BOOKING_OVERLAP_CONSTRAINT = "bookings_no_active_overlap"

event.listen(
    Booking.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE bookings ADD CONSTRAINT {BOOKING_OVERLAP_CONSTRAINT} "
        "EXCLUDE USING gist (practitioner_id WITH =, tsrange(start_time, end_time, '[)') WITH &&) "
        "WHERE (status IN ('PENDING', 'CONFIRMED'))"
    ).execute_if(dialect="postgresql"),
)
