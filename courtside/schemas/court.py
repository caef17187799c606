from typing import Optional, List
from pydantic import BaseModel, UUID4
from datetime import date, datetime, time

from courtside.scheduling.types import SportType


# Court: list item (GET /courts)
class Court(BaseModel):
    id: UUID4
    name: str
    sport_type: SportType
    operating_hours_start: Optional[time] = None
    operating_hours_end: Optional[time] = None
    is_active: bool = True


# One hour on the availability map
class SlotStatus(BaseModel):
    start_time: datetime
    end_time: datetime
    available: bool
    reason: Optional[str] = None     # why the slot cannot be booked


# Response for GET /courts/{id}/availability
class CourtAvailability(BaseModel):
    court_id: UUID4
    date: date
    slots: List[SlotStatus]


# Response for GET /courts?sport_type=
class CourtList(BaseModel):
    courts: List[Court]
    preselected_court_id: Optional[UUID4] = None   # set when only one court of the sport is open
