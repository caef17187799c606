from typing import Optional, List
from pydantic import BaseModel, UUID4, model_validator
from datetime import datetime

from courtside.scheduling.closures import ClosureResolution
from courtside.schemas.booking import Booking
from courtside.schemas.court import Court


# Maintenance window: DB response
class MaintenanceWindow(BaseModel):
    id: UUID4
    court_id: Optional[UUID4] = None
    all_courts: bool
    start_time: datetime
    end_time: datetime
    reason: str
    is_active: bool
    is_emergency: bool
    expected_reopening: Optional[datetime] = None


# Closure: request (POST /admin/closures)
class ClosureCreate(BaseModel):
    court_id: Optional[UUID4] = None      # omit to close every court
    start_time: datetime
    end_time: datetime
    reason: str

    @model_validator(mode="after")
    def check_interval(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


# Closure: resolve a conflicting request (POST /admin/closures/resolve)
class ClosureResolve(ClosureCreate):
    resolution: ClosureResolution
    booking_ids: List[UUID4] = []         # conflicts the operator was shown
    target_court_id: Optional[UUID4] = None


# Closure: emergency (POST /admin/closures/emergency)
class EmergencyClosureCreate(BaseModel):
    court_id: Optional[UUID4] = None
    reason: str
    expected_reopening: Optional[datetime] = None


# Closure: reopen (POST /admin/closures/reopen)
class ClosureReopen(BaseModel):
    window_ids: List[UUID4] = []
    court_id: Optional[UUID4] = None


class FailedBooking(BaseModel):
    booking_id: UUID4
    reason: str


class ClosureOutcome(BaseModel):
    status: str
    window: Optional[MaintenanceWindow] = None
    conflicts: List[Booking] = []
    transfer_options: List[Court] = []
    cancelled: List[Booking] = []
    transferred: List[Booking] = []
    failed: List[FailedBooking] = []
    affected_count: int = 0
