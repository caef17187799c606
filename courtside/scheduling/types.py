"""Value types shared by every part of the scheduling engine.

The engine never touches ORM rows directly: the store adapter converts rows
into these records and back, so the calendar and resolver code can be run
against plain data.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import FrozenSet, List, Optional


class SportType(str, enum.Enum):
    tennis = "tennis"
    padel = "padel"


class BookingStatus(str, enum.Enum):
    pending_payment = "pending_payment"
    paid = "paid"
    cancelled = "cancelled"


class ActorRole(str, enum.Enum):
    user = "user"
    operator = "operator"
    supervisor = "supervisor"
    admin = "admin"


class RejectReason(str, enum.Enum):
    court_under_maintenance = "court_under_maintenance"
    slot_taken = "slot_taken"
    in_past = "in_past"
    outside_operating_hours = "outside_operating_hours"
    below_advance_notice = "below_advance_notice"
    beyond_horizon = "beyond_horizon"
    active_booking_cap_reached = "active_booking_cap_reached"
    adjacency_violation = "adjacency_violation"
    gap_violation = "gap_violation"


class CheckMode(str, enum.Enum):
    # standard: every check; bypass: advance notice and horizon skipped;
    # privileged: all four rule predicates skipped (staff-authored bookings)
    standard = "standard"
    bypass = "bypass"
    privileged = "privileged"


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Slot:
    court_id: uuid.UUID
    start: datetime
    end: datetime

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)


@dataclass(frozen=True)
class CourtRecord:
    id: uuid.UUID
    name: str
    sport_type: SportType
    operating_hours_start: Optional[time] = None
    operating_hours_end: Optional[time] = None
    # ISO weekday numbers (Monday=0); None means every day
    operating_days: Optional[FrozenSet[int]] = None
    is_active: bool = True


@dataclass(frozen=True)
class BookingRecord:
    id: uuid.UUID
    court_id: uuid.UUID
    user_id: Optional[uuid.UUID]
    start: datetime
    end: datetime
    status: BookingStatus
    booking_number: str = ""
    expires_at: Optional[datetime] = None
    payment_ref: Optional[str] = None
    processed_by: Optional[uuid.UUID] = None
    is_special: bool = False
    title: Optional[str] = None
    recurrence_tag: Optional[uuid.UUID] = None

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    def is_expired(self, now: datetime) -> bool:
        return (
            self.status == BookingStatus.pending_payment
            and self.expires_at is not None
            and self.expires_at <= now
        )

    def is_live(self, now: datetime) -> bool:
        if self.status == BookingStatus.paid:
            return True
        return self.status == BookingStatus.pending_payment and not self.is_expired(now)


@dataclass
class BookingDraft:
    court_id: uuid.UUID
    user_id: Optional[uuid.UUID]
    start: datetime
    end: datetime
    status: BookingStatus = BookingStatus.pending_payment
    expires_at: Optional[datetime] = None
    payment_ref: Optional[str] = None
    processed_by: Optional[uuid.UUID] = None
    is_special: bool = False
    title: Optional[str] = None
    description: Optional[str] = None
    event_type: Optional[str] = None
    recurrence_tag: Optional[uuid.UUID] = None
    created_by: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class ClosureWindow:
    id: Optional[uuid.UUID]
    court_id: Optional[uuid.UUID]
    start: datetime
    end: datetime
    reason: str
    all_courts: bool = False
    is_active: bool = True
    is_emergency: bool = False
    expected_reopening: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None

    def applies_to(self, court_id: uuid.UUID) -> bool:
        return self.all_courts or self.court_id == court_id

    def blocks(self, interval: Interval) -> bool:
        if not self.is_active:
            return False
        if self.is_emergency:
            # Closed from its start until an operator reopens it
            return self.start < interval.end
        return self.start < interval.end and interval.start < self.end


@dataclass(frozen=True)
class AffectedLink:
    id: uuid.UUID
    booking_id: uuid.UUID
    maintenance_id: uuid.UUID
    rescheduled: bool = False
    rescheduled_at: Optional[datetime] = None
    can_reschedule: bool = True


@dataclass(frozen=True)
class Actor:
    user_id: uuid.UUID
    role: ActorRole = ActorRole.user

    @property
    def is_staff(self) -> bool:
        return self.role != ActorRole.user

    @property
    def is_supervisor(self) -> bool:
        return self.role in (ActorRole.supervisor, ActorRole.admin)


@dataclass(frozen=True)
class Decision:
    admitted: bool
    reason: Optional[RejectReason] = None

    @classmethod
    def admit(cls) -> "Decision":
        return cls(admitted=True)

    @classmethod
    def reject(cls, reason: RejectReason) -> "Decision":
        return cls(admitted=False, reason=reason)


@dataclass
class FailedOccurrence:
    day: date
    reason: str


@dataclass
class SeriesResult:
    recurrence_tag: uuid.UUID
    created: List[BookingRecord] = field(default_factory=list)
    failed: List[FailedOccurrence] = field(default_factory=list)
