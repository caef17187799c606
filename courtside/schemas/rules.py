from pydantic import BaseModel, Field

from courtside.scheduling.types import SportType


# Booking rules: GET/PUT /admin/booking-rules/{sport_type}
class BookingRuleUpdate(BaseModel):
    min_advance_notice_minutes: int = Field(ge=0)
    max_days_ahead: int = Field(ge=0)
    max_active_bookings_per_user: int = Field(ge=1)
    allow_consecutive_bookings: bool = True
    min_gap_minutes: int = Field(default=0, ge=0)
    allow_cancellation: bool = True
    min_cancellation_minutes: int = Field(default=0, ge=0)
    allow_rescheduling: bool = True
    min_rescheduling_minutes: int = Field(default=0, ge=0)


class BookingRule(BookingRuleUpdate):
    sport_type: SportType
    is_default: bool = False     # no row stored, documented defaults apply
