"""
Slot Generation

Turns a recurring weekly schedule into discrete candidate intervals:
- one walk per working window, stepping by the slot granularity
- a candidate [t, t + duration) is kept when it, plus the buffer appended
  after it, fits before closing time and it does not touch the break
- days without a schedule row are days off

Pure functions only; no database access.
"""

from datetime import date, datetime, timedelta
from itertools import islice
from typing import Iterable, Iterator, Optional

from ...errors import InvalidIntervalError
from ...shared.intervals import Interval, at, day_of_week, daterange


class SlotSequence:
    """Lazy, restartable, finite sequence of candidate slots.

    Each iteration re-walks the schedule from the first day, so the same
    inputs always yield the same ordered candidates.
    """

    def __init__(
        self,
        schedule: Iterable,
        duration_minutes: int,
        slot_granularity_minutes: int,
        buffer_minutes: int,
        date_range: tuple[date, date],
    ):
        if duration_minutes is None or duration_minutes <= 0:
            raise InvalidIntervalError("service duration must be positive")
        if slot_granularity_minutes is None or slot_granularity_minutes <= 0:
            raise InvalidIntervalError("slot granularity must be positive")
        if buffer_minutes is None or buffer_minutes < 0:
            raise InvalidIntervalError("buffer cannot be negative")

        start_day, end_day = date_range
        if start_day > end_day:
            raise InvalidIntervalError("date range start must not be after its end")

        self.schedule = list(schedule)
        self.duration = timedelta(minutes=duration_minutes)
        self.step = timedelta(minutes=slot_granularity_minutes)
        self.buffer = timedelta(minutes=buffer_minutes)
        self.date_range = (start_day, end_day)

    def __iter__(self) -> Iterator[Interval]:
        start_day, end_day = self.date_range
        for day in daterange(start_day, end_day):
            rows = sorted(
                (row for row in self.schedule if row.day_of_week == day_of_week(day)),
                key=lambda row: row.start_time,
            )
            for row in rows:
                yield from self._walk_day(day, row)

    def _walk_day(self, day: date, row) -> Iterator[Interval]:
        open_at = at(day, row.start_time)
        close_at = at(day, row.end_time)
        break_window: Optional[Interval] = None
        if row.break_start and row.break_end:
            break_window = Interval(at(day, row.break_start), at(day, row.break_end))

        current = open_at
        while current + self.duration + self.buffer <= close_at:
            candidate = Interval(current, current + self.duration)
            if break_window is None or not candidate.overlaps(break_window):
                yield candidate
            current += self.step

    def take(self, n: int) -> list[Interval]:
        """First ``n`` candidates without generating the rest"""
        return list(islice(iter(self), n))

    def starting_from(self, moment: datetime) -> Iterator[Interval]:
        """Candidates whose start is at or after ``moment``"""
        return (slot for slot in self if slot.start >= moment)


def generate_slots(
    schedule: Iterable,
    duration_minutes: int,
    slot_granularity_minutes: int,
    buffer_minutes: int,
    date_range: tuple[date, date],
) -> SlotSequence:
    """
    Generate candidate slots for every day in ``date_range`` (inclusive).

    Args:
        schedule: rows exposing day_of_week (0 = Sunday), start_time, end_time,
            break_start and break_end as HH:MM strings
        duration_minutes: length of each candidate
        slot_granularity_minutes: step between consecutive candidate starts
        buffer_minutes: gap that must still fit before closing time
        date_range: (first_day, last_day)

    Returns:
        SlotSequence: ordered, lazily produced candidate intervals
    """
    return SlotSequence(
        schedule, duration_minutes, slot_granularity_minutes, buffer_minutes, date_range
    )


def fits_schedule(schedule: Iterable, candidate: Interval, buffer_minutes: int = 0) -> bool:
    """True when the candidate (plus buffer) lies inside a working window of its day and outside its break"""
    day = candidate.start.date()
    padded_end = candidate.end + timedelta(minutes=buffer_minutes)
    for row in schedule:
        if row.day_of_week != day_of_week(day):
            continue
        open_at = at(day, row.start_time)
        close_at = at(day, row.end_time)
        if candidate.start < open_at or padded_end > close_at:
            continue
        if row.break_start and row.break_end:
            if candidate.overlaps(Interval(at(day, row.break_start), at(day, row.break_end))):
                continue
        return True
    return False
