from datetime import datetime, timezone
from functools import lru_cache
from typing import Protocol

import pytz

from courtside.core.config import settings


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@lru_cache(maxsize=None)
def facility_timezone(name: str = "") -> pytz.BaseTzInfo:
    """The single timezone all wall-clock day boundaries are computed in."""
    return pytz.timezone(name or settings.FACILITY_TIMEZONE)


system_clock = SystemClock()
