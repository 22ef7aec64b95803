"""Half-open time intervals and wall-clock helpers shared by the scheduling domains"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from ..errors import InvalidIntervalError

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True, order=True)
class Interval:
    """A half-open time range [start, end). Empty or inverted ranges are rejected."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidIntervalError("start must be before end", self.start, self.end)

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and self.end > other.start

    def extended(self, minutes: int) -> "Interval":
        """Same interval with ``minutes`` appended after its end"""
        if not minutes:
            return self
        return Interval(self.start, self.end + timedelta(minutes=minutes))

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def parse_hhmm(value: str) -> time:
    """Parse a 24h ``HH:MM`` wall-clock time"""
    if not isinstance(value, str):
        raise ValueError("Time must be a string in HH:MM format")
    match = HHMM_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time '{value}'. Expected HH:MM (24h)")
    return time(int(match.group(1)), int(match.group(2)))


def day_of_week(day: date) -> int:
    """Day index with 0 = Sunday ... 6 = Saturday"""
    return (day.weekday() + 1) % 7


def at(day: date, hhmm: str) -> datetime:
    return datetime.combine(day, parse_hhmm(hhmm))


def to_canonical(value: datetime) -> datetime:
    """Normalize to the canonical storage form: naive UTC"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def daterange(start: date, end: date):
    """Yield each calendar day from start to end inclusive"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
