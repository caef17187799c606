from typing import Optional, Sequence
from uuid import UUID

from courtside.scheduling.types import RejectReason


class SchedulingError(Exception):
    """Base class for every error raised by the scheduling engine."""

    retryable = False


class BookingRejected(SchedulingError):
    """A validation reject: an expected, user-facing outcome."""

    def __init__(self, reason: RejectReason, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or f"Booking rejected: {reason.value}")


class SlotConflict(SchedulingError):
    """The store refused a slot claim because another live booking holds it."""

    retryable = True


class StoreUnavailable(SchedulingError):
    """Persistence timed out or could not be reached. Safe to try again."""

    retryable = True


class InvalidRecurrence(SchedulingError):
    """Contradictory authoring input, rejected before any occurrence exists."""


class BookingNotFound(SchedulingError):
    def __init__(self, booking_id: UUID):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class CourtNotFound(SchedulingError):
    def __init__(self, court_id: UUID):
        self.court_id = court_id
        super().__init__(f"Court {court_id} not found or disabled")


class ClosureNotFound(SchedulingError):
    def __init__(self, window_id: UUID):
        self.window_id = window_id
        super().__init__(f"Maintenance window {window_id} not found")


class InvalidTransition(SchedulingError):
    """The booking state machine does not allow the requested move."""


class PaymentReferenceMismatch(InvalidTransition):
    """A paid booking was confirmed again with a different payment reference."""


class BookingExpired(InvalidTransition):
    """Payment arrived for a pending booking whose hold already lapsed."""


class NotBookingOwner(SchedulingError):
    pass


class CancellationNotAllowed(SchedulingError):
    pass


class ReschedulingNotAllowed(SchedulingError):
    pass


class TransferNotAllowed(SchedulingError):
    """Transfer was requested where no same-sport alternate court exists."""


class TransferRejected(SchedulingError):
    """At least one conflicting booking does not fit on the destination court."""

    def __init__(self, rejected: Sequence[tuple]):
        # (booking_id, RejectReason) pairs
        self.rejected = list(rejected)
        super().__init__(
            f"{len(self.rejected)} booking(s) cannot be moved to the selected court"
        )


class InvalidClosure(SchedulingError):
    """A closure request whose interval is empty or inverted."""


class ClosurePlanChanged(SchedulingError):
    """The conflicts under a closure differ from the set the operator reviewed."""

    def __init__(self, added: Sequence[UUID], removed: Sequence[UUID]):
        self.added = list(added)
        self.removed = list(removed)
        super().__init__(
            f"Conflicts changed since review: {len(self.added)} new, {len(self.removed)} gone"
        )
