"""Interval Model

Pure helpers for half-open [start, end) time ranges on a single calendar date.
Times travel through the system as zero-padded "HH:MM" strings and are parsed
to ``datetime.time`` before any arithmetic.
"""
import re
from datetime import date, datetime, time, timezone, tzinfo
from decimal import Decimal
from typing import Union

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

MINUTES_PER_HOUR = Decimal(60)

TimeLike = Union[str, time]


def parse_time(value: TimeLike) -> time:
    """Parse an "HH:MM" wall-clock string (hour 0-23, minute 0-59)"""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if not isinstance(value, str):
        raise ValueError("Invalid time format, expected HH:MM")
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time format: {value!r}, expected HH:MM")
    return time(hour=int(match.group(1)), minute=int(match.group(2)))


def format_time(value: TimeLike) -> str:
    """Normalize to zero-padded "HH:MM" so lexicographic and temporal order agree"""
    parsed = parse_time(value)
    return f"{parsed.hour:02d}:{parsed.minute:02d}"


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """Half-open overlap test; touching intervals do not overlap"""
    return a_start < b_end and a_end > b_start


def duration_hours(start: TimeLike, end: TimeLike) -> Decimal:
    """Length of [start, end) in hours on a time-of-day basis"""
    start_t = parse_time(start)
    end_t = parse_time(end)
    minutes = (end_t.hour * 60 + end_t.minute) - (start_t.hour * 60 + start_t.minute)
    return Decimal(minutes) / MINUTES_PER_HOUR


def combine(on_date: date, at: TimeLike, tz: tzinfo = timezone.utc) -> datetime:
    """Aware instant for a wall-clock time on a date in the venue's zone"""
    return datetime.combine(on_date, parse_time(at), tzinfo=tz)


def is_past(on_date: date, at: TimeLike, now: datetime, tz: tzinfo = timezone.utc) -> bool:
    """True if date+time is at or before ``now``"""
    return combine(on_date, at, tz) <= now


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
