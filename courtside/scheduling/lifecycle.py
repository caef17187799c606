"""
Booking lifecycle controller.

    pending_payment --confirm_paid--> paid
    pending_payment --cancel / expiry sweep--> cancelled (expired rows are deleted)
    paid --cancel / closure resolution--> cancelled

Creation and moves only ever reach the store after the availability
resolver admitted the slot; the store's claim constraint then settles the
race between two requests that both passed the in-process check.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

import pytz

from courtside.core.clock import Clock, facility_timezone, system_clock
from courtside.core.config import settings
from courtside.scheduling import calendar, rules
from courtside.scheduling.availability import AvailabilityResolver
from courtside.scheduling.errors import (
    BookingExpired,
    BookingNotFound,
    BookingRejected,
    CancellationNotAllowed,
    InvalidTransition,
    NotBookingOwner,
    PaymentReferenceMismatch,
    ReschedulingNotAllowed,
    SlotConflict,
    StoreUnavailable,
)
from courtside.scheduling.ports import notify
from courtside.scheduling.recurrence import RecurrenceIntent, expand, occurrence_slots
from courtside.scheduling.types import (
    Actor,
    BookingDraft,
    BookingRecord,
    BookingStatus,
    CheckMode,
    CourtRecord,
    Decision,
    FailedOccurrence,
    RejectReason,
    SeriesResult,
    Slot,
)

logger = logging.getLogger(__name__)


class BookingLifecycle:
    def __init__(
        self,
        store,
        rule_source,
        notifier=None,
        clock: Clock = system_clock,
        tz: Optional[pytz.BaseTzInfo] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.tz = tz or facility_timezone()
        self.resolver = AvailabilityResolver(store, rule_source, clock, self.tz)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, booking_id: UUID) -> BookingRecord:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    def _slot(self, court_id: UUID, start: datetime) -> Slot:
        return calendar.make_slot(court_id, start, self.tz, settings.SLOT_MINUTES)

    def _admit(
        self,
        slot: Slot,
        user_id: Optional[UUID],
        mode: CheckMode,
        exclude_booking_id: Optional[UUID] = None,
        court: Optional[CourtRecord] = None,
    ) -> None:
        decision = self.resolver.check(slot, user_id, mode, exclude_booking_id, court)
        if not decision.admitted:
            raise BookingRejected(decision.reason)

    def _insert(self, draft: BookingDraft) -> BookingRecord:
        try:
            return self.store.insert_booking(draft, self.clock.now())
        except SlotConflict:
            # Passed the in-process check but lost the claim to a concurrent request
            logger.warning(
                "Slot %s on court %s was claimed concurrently.",
                draft.start.isoformat(), draft.court_id,
            )
            raise BookingRejected(RejectReason.slot_taken)

    def _move(self, booking: BookingRecord, court_id: UUID, slot: Slot) -> BookingRecord:
        try:
            return self.store.move_booking(
                booking.id, court_id, slot.start, slot.end, self.clock.now()
            )
        except SlotConflict:
            logger.warning(
                "Move of booking %s to %s was beaten by a concurrent claim.",
                booking.booking_number or booking.id, slot.start.isoformat(),
            )
            raise BookingRejected(RejectReason.slot_taken)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_pending(self, user_id: UUID, court_id: UUID, start: datetime) -> BookingRecord:
        """Self-service booking: held in pending_payment until paid or expired."""
        slot = self._slot(court_id, start)
        self._admit(slot, user_id, CheckMode.standard)

        now = self.clock.now()
        booking = self._insert(BookingDraft(
            court_id=court_id,
            user_id=user_id,
            start=slot.start,
            end=slot.end,
            status=BookingStatus.pending_payment,
            expires_at=now + timedelta(minutes=settings.PENDING_PAYMENT_MINUTES),
        ))
        logger.info("Booking %s held until %s.", booking.booking_number, booking.expires_at)
        return booking

    def create_paid(
        self,
        user_id: UUID,
        court_id: UUID,
        start: datetime,
        operator: Actor,
        payment_ref: Optional[str] = None,
    ) -> BookingRecord:
        """Cash payment taken at the desk: the booking starts out paid."""
        slot = self._slot(court_id, start)
        self._admit(slot, user_id, CheckMode.bypass)

        booking = self._insert(BookingDraft(
            court_id=court_id,
            user_id=user_id,
            start=slot.start,
            end=slot.end,
            status=BookingStatus.paid,
            payment_ref=payment_ref,
            processed_by=operator.user_id,
        ))
        notify(self.notifier, "booking_paid", booking)
        return booking

    def create_series(
        self,
        intent: RecurrenceIntent,
        court_id: UUID,
        start_hour: int,
        end_hour: int,
        title: str,
        event_type: str,
        created_by: Actor,
        description: Optional[str] = None,
        reference_user_id: Optional[UUID] = None,
    ) -> SeriesResult:
        """
        Materialize a special booking, one paid row per occurrence.

        Occurrences are claimed independently: a conflict on one day is
        reported and the remaining days are still booked.
        """
        days = expand(intent)
        court = self.resolver.load_court(court_id)
        pairs = occurrence_slots(days, court_id, start_hour, end_hour, self.tz)

        result = SeriesResult(recurrence_tag=uuid.uuid4())
        for day, slot in pairs:
            decision = self.resolver.check(slot, None, CheckMode.privileged, court=court)
            if not decision.admitted:
                result.failed.append(FailedOccurrence(day=day, reason=decision.reason.value))
                continue
            try:
                booking = self._insert(BookingDraft(
                    court_id=court_id,
                    user_id=reference_user_id,
                    start=slot.start,
                    end=slot.end,
                    status=BookingStatus.paid,
                    is_special=True,
                    title=title,
                    description=description,
                    event_type=event_type,
                    recurrence_tag=result.recurrence_tag,
                    created_by=created_by.user_id,
                ))
            except BookingRejected as exc:
                result.failed.append(FailedOccurrence(day=day, reason=exc.reason.value))
                continue
            except StoreUnavailable:
                logger.exception("Store unavailable while booking %s of series %s.", day, result.recurrence_tag)
                result.failed.append(FailedOccurrence(day=day, reason="store_unavailable"))
                continue
            result.created.append(booking)

        logger.info(
            "Special booking %r: %d created, %d failed (series %s).",
            title, len(result.created), len(result.failed), result.recurrence_tag,
        )
        return result

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def confirm_paid(
        self,
        booking_id: UUID,
        payment_ref: str,
        gateway: Optional[str] = None,
    ) -> BookingRecord:
        """
        Mark a pending booking paid. Payment callbacks can arrive more than
        once, so repeating a confirmation with the same reference is a no-op.
        """
        booking = self._load(booking_id)
        if booking.status == BookingStatus.paid:
            return self._repeat_confirmation(booking, payment_ref)
        if booking.status == BookingStatus.cancelled:
            raise InvalidTransition(f"Booking {booking.booking_number} is cancelled")
        if booking.is_expired(self.clock.now()):
            raise BookingExpired(f"Booking {booking.booking_number} expired before payment")

        try:
            paid = self.store.update_booking_status(
                booking.id,
                BookingStatus.paid,
                self.clock.now(),
                payment_ref=payment_ref,
                payment_gateway=gateway,
                expected=BookingStatus.pending_payment,
            )
        except InvalidTransition:
            # A duplicate callback won the update in between
            return self._repeat_confirmation(self._load(booking_id), payment_ref)

        logger.info("Booking %s paid (ref %s).", paid.booking_number, payment_ref)
        notify(self.notifier, "booking_paid", paid)
        return paid

    def _repeat_confirmation(self, booking: BookingRecord, payment_ref: str) -> BookingRecord:
        if booking.is_expired(self.clock.now()):
            raise BookingExpired(f"Booking {booking.booking_number} expired before payment")
        if booking.status != BookingStatus.paid:
            raise InvalidTransition(f"Booking {booking.booking_number} is {booking.status.value}")
        if booking.payment_ref != payment_ref:
            raise PaymentReferenceMismatch(
                f"Booking {booking.booking_number} is already paid under another reference"
            )
        return booking

    # ------------------------------------------------------------------
    # Reschedule
    # ------------------------------------------------------------------

    def reschedule(
        self,
        booking_id: UUID,
        new_start: datetime,
        actor: Actor,
        court_id: Optional[UUID] = None,
    ) -> BookingRecord:
        """
        Move a live booking to a new slot, optionally on another court.

        Supervisors get the bypass path for same-day bookings and for
        bookings hit by a closure: advance-notice and horizon are skipped,
        conflict, past and maintenance checks still apply.
        """
        booking = self._load(booking_id)
        now = self.clock.now()
        if not booking.is_live(now):
            raise InvalidTransition(
                f"Booking {booking.booking_number} is {booking.status.value} and cannot be moved"
            )

        affected = self.store.get_affected_booking(booking.id)
        bypass = actor.is_supervisor and (
            calendar.is_same_day(booking.start, now, self.tz) or affected is not None
        )

        target_court = self.resolver.load_court(court_id or booking.court_id)
        if not actor.is_staff:
            if booking.user_id != actor.user_id:
                raise NotBookingOwner("Only the booking owner can reschedule it")
            rule = self.resolver.rule_for(target_court.sport_type)
            if not rules.can_reschedule(now, booking.start, rule):
                raise ReschedulingNotAllowed(
                    f"Booking {booking.booking_number} can no longer be rescheduled"
                )

        slot = self._slot(target_court.id, new_start)
        mode = CheckMode.bypass if bypass else CheckMode.standard
        self._admit(slot, booking.user_id, mode, exclude_booking_id=booking.id, court=target_court)

        moved = self._move(booking, target_court.id, slot)
        if affected is not None and not affected.rescheduled:
            self.store.mark_affected_rescheduled(affected.id, self.clock.now())
        logger.info(
            "Booking %s moved to %s by %s%s.",
            moved.booking_number, slot.start.isoformat(), actor.role.value,
            " (bypass)" if bypass else "",
        )
        return moved

    # ------------------------------------------------------------------
    # Closure transfers
    # ------------------------------------------------------------------

    def check_transfer(self, booking: BookingRecord, court: CourtRecord) -> Decision:
        """Re-validate a booking as if it were booked fresh on `court`."""
        slot = Slot(court.id, booking.start, booking.end)
        return self.resolver.check(
            slot, booking.user_id, CheckMode.bypass, exclude_booking_id=booking.id, court=court
        )

    def transfer(self, booking: BookingRecord, court: CourtRecord) -> BookingRecord:
        decision = self.check_transfer(booking, court)
        if not decision.admitted:
            raise BookingRejected(decision.reason)
        return self._move(booking, court.id, Slot(court.id, booking.start, booking.end))

    # ------------------------------------------------------------------
    # Cancellation and expiry
    # ------------------------------------------------------------------

    def cancel(self, booking_id: UUID, actor: Optional[Actor] = None) -> BookingRecord:
        """Release the slot. Cancelling an already cancelled booking is a no-op."""
        booking = self._load(booking_id)
        if booking.status == BookingStatus.cancelled:
            return booking

        now = self.clock.now()
        if actor is not None and not actor.is_staff:
            if booking.user_id != actor.user_id:
                raise NotBookingOwner("Only the booking owner can cancel it")
            if booking.status == BookingStatus.paid:
                court = self.store.get_court(booking.court_id)
                rule = self.resolver.rule_for(court.sport_type)
                if not rules.can_cancel(now, booking.start, rule):
                    raise CancellationNotAllowed(
                        f"Booking {booking.booking_number} can no longer be cancelled"
                    )

        cancelled = self.store.update_booking_status(booking.id, BookingStatus.cancelled, now)
        logger.info("Booking %s cancelled.", cancelled.booking_number)
        return cancelled

    def sweep_expired(self) -> int:
        """Delete pending bookings whose payment hold lapsed."""
        count = self.store.delete_expired_pending(self.clock.now())
        if count:
            logger.info("Removed %d expired pending booking(s).", count)
        return count
