from courtside.schemas.common import PaginatedResponse, ErrorResponse, BookingRejectedError, RetryableError
from courtside.schemas.user import TokenPayload
from courtside.schemas.court import Court, CourtList, CourtAvailability, SlotStatus
from courtside.schemas.booking import (
    Booking, BookingCreate, CashBookingCreate, PaymentConfirm, BookingReschedule,
    BookingCancelResponse, AffectedBooking,
    SpecialBookingCreate, SpecialBookingResult, FailedOccurrence, SweepResult,
)
from courtside.schemas.closure import (
    MaintenanceWindow, ClosureCreate, ClosureResolve, EmergencyClosureCreate,
    ClosureReopen, ClosureOutcome, FailedBooking,
)
from courtside.schemas.rules import BookingRule, BookingRuleUpdate
