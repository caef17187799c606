"""Slot calendar: the hour grid of a court and the interval arithmetic on it.

Instants are stored and compared in UTC. Wall-clock questions ("what day is
it", "which hours is the court open") are answered in the facility timezone,
never in the caller's local zone.
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional
from uuid import UUID

import pytz

from courtside.scheduling.types import CourtRecord, Interval, Slot


def overlaps(a, b) -> bool:
    """Half-open overlap test; touching endpoints do not overlap."""
    return a.start < b.end and b.start < a.end


def to_utc(instant: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Naive datetimes are read as facility wall-clock time."""
    if instant.tzinfo is None:
        instant = tz.localize(instant)
    return instant.astimezone(pytz.utc)


def local_date(instant: datetime, tz: pytz.BaseTzInfo) -> date:
    return instant.astimezone(tz).date()


def is_same_day(a: datetime, b: datetime, tz: pytz.BaseTzInfo) -> bool:
    return local_date(a, tz) == local_date(b, tz)


def _local_midnight(day: date, tz: pytz.BaseTzInfo) -> datetime:
    return tz.localize(datetime.combine(day, time.min))


def day_bounds(day: date, tz: pytz.BaseTzInfo) -> Interval:
    """The facility day `day` as a UTC interval."""
    start = _local_midnight(day, tz)
    end = _local_midnight(day + timedelta(days=1), tz)
    return Interval(start.astimezone(pytz.utc), end.astimezone(pytz.utc))


def end_of_day(instant: datetime, tz: pytz.BaseTzInfo) -> datetime:
    return day_bounds(local_date(instant, tz), tz).end


def local_instant(day: date, at: time, tz: pytz.BaseTzInfo) -> datetime:
    return tz.localize(datetime.combine(day, at)).astimezone(pytz.utc)


def slot_at(
    court_id: UUID,
    day: date,
    hour: int,
    tz: pytz.BaseTzInfo,
    minutes: int = 60,
) -> Slot:
    start = local_instant(day, time(hour), tz)
    return Slot(court_id, start, start + timedelta(minutes=minutes))


def normalize_slot_start(instant: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Align an instant to the top of its facility-local hour, in UTC."""
    local = to_utc(instant, tz).astimezone(tz)
    floored = tz.normalize(local.replace(minute=0, second=0, microsecond=0))
    return floored.astimezone(pytz.utc)


def make_slot(
    court_id: UUID,
    start: datetime,
    tz: pytz.BaseTzInfo,
    minutes: int = 60,
) -> Slot:
    aligned = normalize_slot_start(start, tz)
    return Slot(court_id, aligned, aligned + timedelta(minutes=minutes))


def _opening_window(court: CourtRecord, day: date) -> Optional[tuple]:
    if court.operating_hours_start is None or court.operating_hours_end is None:
        return None
    if court.operating_days is not None and day.weekday() not in court.operating_days:
        return None
    opens = datetime.combine(day, court.operating_hours_start)
    closes = datetime.combine(day, court.operating_hours_end)
    if court.operating_hours_end == time(0):
        # "00:00" closing means midnight at the end of the day
        closes += timedelta(days=1)
    if closes <= opens:
        return None
    return opens, closes


def enumerate_slots(
    court: CourtRecord,
    day: date,
    tz: pytz.BaseTzInfo,
    minutes: int = 60,
) -> List[Slot]:
    """
    Every bookable slot of `court` on facility day `day`, in start order.

    Empty when the court has no defined hours or does not open that weekday.
    """
    window = _opening_window(court, day)
    if window is None:
        return []
    opens, closes = window
    step = timedelta(minutes=minutes)

    slots = []
    cursor = opens
    while cursor + step <= closes:
        start = tz.localize(cursor).astimezone(pytz.utc)
        end = tz.localize(cursor + step).astimezone(pytz.utc)
        slots.append(Slot(court.id, start, end))
        cursor += step
    return slots


def is_within_operating_hours(court: CourtRecord, slot, tz: pytz.BaseTzInfo) -> bool:
    """True when `slot` sits entirely inside the court's opening window."""
    day = local_date(slot.start, tz)
    window = _opening_window(court, day)
    if window is None:
        return False
    opens, closes = window
    local_start = slot.start.astimezone(tz).replace(tzinfo=None)
    local_end = slot.end.astimezone(tz).replace(tzinfo=None)
    return opens <= local_start and local_end <= closes
