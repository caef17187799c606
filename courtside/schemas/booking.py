from typing import Optional, List
from pydantic import BaseModel, UUID4, field_validator
from datetime import date, datetime


# Booking: Create (POST /bookings)
class BookingCreate(BaseModel):
    court_id: UUID4
    start_time: datetime     # naive values are read as facility time


# Booking: Cash booking at the desk (POST /admin/bookings/cash)
class CashBookingCreate(BookingCreate):
    user_id: UUID4
    payment_ref: Optional[str] = None


# Payment callback (POST /bookings/{id}/confirm-payment)
class PaymentConfirm(BaseModel):
    payment_ref: str
    gateway: Optional[str] = None

    @field_validator("payment_ref")
    @classmethod
    def ref_not_blank(cls, v):
        if not v.strip():
            raise ValueError("payment_ref must not be blank")
        return v.strip()


# Reschedule (PATCH /bookings/{id}/reschedule)
class BookingReschedule(BaseModel):
    start_time: datetime
    court_id: Optional[UUID4] = None


# Booking: Full response
class Booking(BaseModel):
    id: UUID4
    booking_number: str
    court_id: UUID4
    user_id: Optional[UUID4] = None
    start_time: datetime
    end_time: datetime
    status: str
    expires_at: Optional[datetime] = None
    payment_ref: Optional[str] = None
    is_special: bool = False
    title: Optional[str] = None
    recurrence_tag: Optional[UUID4] = None


class BookingCancelResponse(BaseModel):
    id: UUID4
    booking_number: str
    status: str


# Booking hit by an emergency closure (GET /bookings/affected)
class AffectedBooking(BaseModel):
    id: UUID4
    booking_id: UUID4
    maintenance_id: UUID4
    can_reschedule: bool
    rescheduled: bool
    booking: Optional[Booking] = None


# Special booking: Create (POST /admin/special-bookings)
class SpecialBookingCreate(BaseModel):
    court_id: UUID4
    title: str
    event_type: str                       # tournament, class, event, ...
    description: Optional[str] = None
    reference_user_id: Optional[UUID4] = None
    start_date: date
    start_hour: int
    end_hour: int
    weekdays: List[str] = []              # weekly mode: ["monday", "wednesday"]
    weeks: Optional[int] = None
    end_date: Optional[date] = None       # range mode; wins over weekdays


class FailedOccurrence(BaseModel):
    date: date
    reason: str


class SpecialBookingResult(BaseModel):
    recurrence_tag: UUID4
    created: List[Booking]
    failed: List[FailedOccurrence]


class SweepResult(BaseModel):
    deleted: int
