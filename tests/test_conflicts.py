from datetime import datetime, time, timedelta
from types import SimpleNamespace

import pytest

from booking_engine.errors import InvalidIntervalError
from booking_engine.domain.bookings.conflicts import conflict_window, find_conflict, has_conflict
from booking_engine.shared.intervals import Interval

from conftest import MONDAY


def at(hour, minute=0, day=MONDAY):
    return datetime.combine(day, time(hour, minute))


def booking(booking_id, start, end):
    return SimpleNamespace(id=booking_id, start_time=start, end_time=end)


EXISTING = Interval(at(10), at(10, 45))


@pytest.mark.parametrize(
    "start,end,expected",
    [
        (at(10, 30), at(11, 15), True),  # overlaps the tail
        (at(10, 45), at(11, 30), False),  # starts exactly at its end
        (at(9, 15), at(10), False),  # ends exactly at its start
        (at(9, 14), at(9, 59), False),
        (at(9, 16), at(10, 1), True),  # one minute into it
        (at(10, 10), at(10, 20), True),  # inside
        (at(9), at(12), True),  # swallows it
    ],
)
def test_half_open_overlap(start, end, expected):
    assert has_conflict(Interval(start, end), [EXISTING]) is expected


def test_no_existing_bookings_means_no_conflict():
    assert has_conflict(EXISTING, []) is False
    assert find_conflict(EXISTING, []) is None


def test_find_conflict_returns_the_blocking_booking():
    bookings = [booking(1, at(9), at(9, 45)), booking(2, at(10), at(10, 45))]

    assert find_conflict(Interval(at(10, 30), at(11, 15)), bookings).id == 2
    assert find_conflict(Interval(at(9, 45), at(10)), bookings) is None


def test_buffer_is_appended_after_both_intervals():
    bookings = [booking(7, at(10), at(10, 45))]

    # Existing booking blocks its own buffer
    assert find_conflict(Interval(at(10, 45), at(11, 30)), bookings, buffer_minutes=15).id == 7
    assert find_conflict(Interval(at(11), at(11, 45)), bookings, buffer_minutes=15) is None
    # Candidate's buffer may not run into the next booking
    assert find_conflict(Interval(at(9, 15), at(10)), bookings, buffer_minutes=15).id == 7
    assert find_conflict(Interval(at(9), at(9, 45)), bookings, buffer_minutes=15) is None


def test_booking_from_previous_day_conflicts():
    overnight = booking(3, at(23, day=MONDAY - timedelta(days=1)), at(9, 30))

    assert find_conflict(Interval(at(9), at(9, 45)), [overnight]).id == 3


def test_conflict_window_pads_both_sides():
    window = conflict_window(Interval(at(10), at(10, 45)), buffer_minutes=15)

    assert window == Interval(at(9, 45), at(11))
    assert conflict_window(EXISTING) == EXISTING


@pytest.mark.parametrize("start,end", [(at(10), at(10)), (at(11), at(10))])
def test_empty_or_inverted_interval_is_rejected(start, end):
    with pytest.raises(InvalidIntervalError):
        Interval(start, end)
