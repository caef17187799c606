"""
Collaborator interfaces the engine is written against.

`BookingStore` is the persistence port: every call is transactional on its
own. `RuleSource` is the configuration port. `Notifier` is fire-and-forget:
the engine logs and isolates its failures.
"""

import logging
from datetime import datetime
from typing import List, Optional, Protocol, Sequence
from uuid import UUID

from courtside.scheduling.rules import RuleSet
from courtside.scheduling.types import (
    AffectedLink,
    BookingDraft,
    BookingRecord,
    BookingStatus,
    ClosureWindow,
    CourtRecord,
    Interval,
    SportType,
)

logger = logging.getLogger(__name__)


class BookingStore(Protocol):
    def get_court(self, court_id: UUID) -> Optional[CourtRecord]: ...

    def list_courts(self, sport_type: Optional[SportType] = None) -> List[CourtRecord]: ...

    def get_booking(self, booking_id: UUID) -> Optional[BookingRecord]: ...

    def get_bookings(self, booking_ids: Sequence[UUID]) -> List[BookingRecord]: ...

    def list_live_bookings(
        self, court_id: UUID, window: Interval, now: datetime
    ) -> List[BookingRecord]: ...

    def list_user_live_bookings(
        self, user_id: UUID, now: datetime, court_id: Optional[UUID] = None
    ) -> List[BookingRecord]: ...

    def count_user_active_bookings(self, user_id: UUID, now: datetime) -> int: ...

    def insert_booking(self, draft: BookingDraft, now: datetime) -> BookingRecord:
        """Insert and claim the booking's slots atomically; raises SlotConflict."""
        ...

    def move_booking(
        self,
        booking_id: UUID,
        court_id: UUID,
        start: datetime,
        end: datetime,
        now: datetime,
    ) -> BookingRecord:
        """Release the old claim and take the new one atomically; raises SlotConflict."""
        ...

    def update_booking_status(
        self,
        booking_id: UUID,
        status: BookingStatus,
        now: datetime,
        payment_ref: Optional[str] = None,
        payment_gateway: Optional[str] = None,
        processed_by: Optional[UUID] = None,
        expected: Optional[BookingStatus] = None,
    ) -> BookingRecord:
        """Cancelling releases the slot claim. With `expected`, the update only
        applies while the row is still in that status, else InvalidTransition."""
        ...

    def find_paid_bookings(
        self, court_ids: Sequence[UUID], window: Interval
    ) -> List[BookingRecord]: ...

    def delete_expired_pending(self, now: datetime) -> int: ...

    def list_maintenance_windows(
        self,
        now: datetime,
        court_id: Optional[UUID] = None,
        emergency_only: bool = False,
    ) -> List[ClosureWindow]: ...

    def get_maintenance_window(self, window_id: UUID) -> Optional[ClosureWindow]: ...

    def insert_maintenance_window(self, window: ClosureWindow) -> ClosureWindow: ...

    def update_maintenance_window(
        self, window_id: UUID, is_active: bool, now: datetime
    ) -> ClosureWindow: ...

    def deactivate_elapsed_windows(self, now: datetime) -> int: ...

    def insert_affected_bookings(
        self, maintenance_id: UUID, booking_ids: Sequence[UUID]
    ) -> List[AffectedLink]: ...

    def get_affected_booking(self, booking_id: UUID) -> Optional[AffectedLink]: ...

    def list_affected_for_user(self, user_id: UUID) -> List[AffectedLink]: ...

    def mark_affected_rescheduled(self, link_id: UUID, now: datetime) -> None: ...


class RuleSource(Protocol):
    def get_rule_set(self, sport_type: SportType) -> Optional[RuleSet]: ...


class Notifier(Protocol):
    def booking_paid(self, booking: BookingRecord) -> None: ...

    def closure_created(
        self, window: ClosureWindow, affected: Sequence[BookingRecord]
    ) -> None: ...


def notify(notifier: Optional[Notifier], event: str, *args) -> bool:
    """
    Deliver one notification without letting its failure reach the caller.

    Booking and closure state is already committed when this runs; a failed
    dispatch is logged for follow-up and never retried here.
    """
    if notifier is None:
        return True
    try:
        getattr(notifier, event)(*args)
    except Exception:
        logger.exception("Notification %r failed; state change is kept.", event)
        return False
    return True
