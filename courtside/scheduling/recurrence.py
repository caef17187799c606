"""
Recurrence generator for special bookings.

An authoring intent is exactly one of three shapes: a single date, a weekly
day pattern repeated for N weeks, or an inclusive date range. Expansion is
deterministic: the same intent always yields the same sorted, de-duplicated
list of dates, and invalid input is rejected before any date is produced.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple, Union
from uuid import UUID

import pytz

from courtside.core.config import settings
from courtside.scheduling.errors import InvalidRecurrence
from courtside.scheduling.types import Slot

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


@dataclass(frozen=True)
class SingleDate:
    day: date


@dataclass(frozen=True)
class WeeklyPattern:
    anchor: date
    weekdays: Tuple[str, ...]
    weeks: int


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


RecurrenceIntent = Union[SingleDate, WeeklyPattern, DateRange]


def parse_weekday(value) -> int:
    """Monday=0 index for a weekday name ("monday", "Mon") or index."""
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise InvalidRecurrence(f"Weekday index out of range: {value}")
    name = str(value).strip().lower()
    for index, full in enumerate(WEEKDAYS):
        if name == full or (len(name) >= 3 and full.startswith(name)):
            return index
    raise InvalidRecurrence(f"Unknown weekday: {value!r}")


def intent_from_authoring(
    anchor: date,
    weekdays: Optional[Iterable] = None,
    weeks: Optional[int] = None,
    end_date: Optional[date] = None,
) -> RecurrenceIntent:
    """
    Build the intent from loose form input.

    An end date always selects range mode, even when a weekday pattern was
    also supplied; weekdays without an end date select weekly mode.
    """
    if end_date is not None:
        return DateRange(start=anchor, end=end_date)
    days = tuple(weekdays or ())
    if days:
        return WeeklyPattern(anchor=anchor, weekdays=days, weeks=weeks if weeks is not None else 1)
    return SingleDate(day=anchor)


def _weekly(pattern: WeeklyPattern, limit: int) -> List[date]:
    if pattern.weeks < 1:
        raise InvalidRecurrence("A weekly pattern needs at least one week")
    indexes = sorted({parse_weekday(d) for d in pattern.weekdays})
    if not indexes:
        raise InvalidRecurrence("A weekly pattern needs at least one weekday")
    if len(indexes) * pattern.weeks > limit:
        raise InvalidRecurrence(f"Pattern expands to more than {limit} occurrences")

    anchor_weekday = pattern.anchor.weekday()
    days = set()
    for weekday in indexes:
        # Same weekday as the anchor starts on the anchor itself,
        # any other weekday starts on its next occurrence after it
        first = pattern.anchor + timedelta(days=(weekday - anchor_weekday) % 7)
        for week in range(pattern.weeks):
            days.add(first + timedelta(weeks=week))
    return sorted(days)


def _date_range(span: DateRange, limit: int) -> List[date]:
    if span.end < span.start:
        raise InvalidRecurrence("The end date must not be before the start date")
    count = (span.end - span.start).days + 1
    if count > limit:
        raise InvalidRecurrence(f"Range covers more than {limit} days")

    days = []
    current = span.start
    while current <= span.end:
        days.append(current)
        current += timedelta(days=1)
    return days


def expand(intent: RecurrenceIntent, limit: Optional[int] = None) -> List[date]:
    limit = limit or settings.MAX_RECURRENCE_OCCURRENCES
    if isinstance(intent, DateRange):
        return _date_range(intent, limit)
    if isinstance(intent, WeeklyPattern):
        return _weekly(intent, limit)
    if isinstance(intent, SingleDate):
        return [intent.day]
    raise InvalidRecurrence(f"Unsupported recurrence intent: {type(intent).__name__}")


def occurrence_slots(
    days: Iterable[date],
    court_id: UUID,
    start_hour: int,
    end_hour: int,
    tz: pytz.BaseTzInfo,
) -> List[Tuple[date, Slot]]:
    """Pair each date with the slot spanning the authored hours on it."""
    if not (0 <= start_hour < end_hour <= 24):
        raise InvalidRecurrence(f"Invalid hours: {start_hour}:00 to {end_hour}:00")

    pairs = []
    for day in days:
        start = tz.localize(datetime.combine(day, time(start_hour)))
        end = tz.localize(datetime.combine(day, time.min) + timedelta(hours=end_hour))
        pairs.append((day, Slot(court_id, start.astimezone(pytz.utc), end.astimezone(pytz.utc))))
    return pairs
