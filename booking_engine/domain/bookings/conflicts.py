"""
Conflict Detection

Intervals are half-open [start, end): two intervals conflict iff
candidate.start < other.end and candidate.end > other.start. A candidate that
ends exactly when an existing booking starts does not conflict.

Callers must pass only PENDING/CONFIRMED bookings of the same practitioner,
fetched over a window that overlaps the candidate (never an exact-day filter:
a booking started the previous day can run into the checked day).
"""

from datetime import timedelta
from typing import Iterable

from ...shared.intervals import Interval


def has_conflict(candidate: Interval, existing: Iterable[Interval]) -> bool:
    return any(candidate.start < other.end and candidate.end > other.start for other in existing)


def booking_interval(booking) -> Interval:
    return Interval(booking.start_time, booking.end_time)


def find_conflict(candidate: Interval, bookings: Iterable, buffer_minutes: int = 0):
    """
    First booking overlapping the candidate, or None.

    Buffer time is appended after both intervals: a booking blocks its own
    buffer, and the candidate's buffer must not run into the next booking.
    """
    padded = candidate.extended(buffer_minutes)
    for booking in bookings:
        if has_conflict(padded, [booking_interval(booking).extended(buffer_minutes)]):
            return booking
    return None


def conflict_window(candidate: Interval, buffer_minutes: int = 0) -> Interval:
    """Widest range an active booking must overlap to possibly conflict with the candidate"""
    pad = timedelta(minutes=buffer_minutes)
    return Interval(candidate.start - pad, candidate.end + pad)
