"""
Availability resolver: admits or rejects one candidate slot.

Every path that creates or moves a booking (self-service booking, cash
entry at the desk, special bookings, reschedules and closure transfers)
goes through `evaluate`, so there is exactly one definition of "bookable".
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Sequence
from uuid import UUID

import pytz

from courtside.core.clock import Clock, facility_timezone
from courtside.core.config import settings
from courtside.scheduling import calendar, rules
from courtside.scheduling.errors import CourtNotFound
from courtside.scheduling.rules import RuleSet
from courtside.scheduling.types import (
    BookingRecord,
    CheckMode,
    ClosureWindow,
    CourtRecord,
    Decision,
    RejectReason,
    Slot,
    SportType,
)

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityContext:
    now: datetime
    tz: pytz.BaseTzInfo
    rule: RuleSet
    live_bookings: Sequence[BookingRecord] = ()
    # The requesting user's live bookings on the candidate's court
    user_bookings: Sequence[BookingRecord] = ()
    user_active_count: int = 0
    closures: Sequence[ClosureWindow] = ()
    court: Optional[CourtRecord] = None
    mode: CheckMode = CheckMode.standard
    exclude_booking_id: Optional[UUID] = None


@dataclass(frozen=True)
class SlotAvailability:
    slot: Slot
    decision: Decision

    @property
    def available(self) -> bool:
        return self.decision.admitted


def is_slot_free(slot: Slot, live_bookings: Sequence[BookingRecord], exclude_booking_id: Optional[UUID] = None) -> bool:
    for booking in live_bookings:
        if booking.id == exclude_booking_id or booking.court_id != slot.court_id:
            continue
        if calendar.overlaps(slot, booking):
            return False
    return True


def is_slot_in_future(slot: Slot, now: datetime) -> bool:
    return slot.start > now


def is_under_maintenance(slot: Slot, closures: Sequence[ClosureWindow]) -> bool:
    return any(w.applies_to(slot.court_id) and w.blocks(slot.interval) for w in closures)


def evaluate(candidate: Slot, ctx: AvailabilityContext) -> Decision:
    """
    Run the checks in their fixed order and stop at the first failure.

    Maintenance, slot-taken and in-the-past are never skipped; the bypass
    mode only drops the advance-notice and horizon predicates.
    """
    if is_under_maintenance(candidate, ctx.closures):
        return Decision.reject(RejectReason.court_under_maintenance)

    if not is_slot_free(candidate, ctx.live_bookings, ctx.exclude_booking_id):
        return Decision.reject(RejectReason.slot_taken)

    if not is_slot_in_future(candidate, ctx.now):
        return Decision.reject(RejectReason.in_past)

    if ctx.court is not None and not calendar.is_within_operating_hours(ctx.court, candidate, ctx.tz):
        return Decision.reject(RejectReason.outside_operating_hours)

    if ctx.mode == CheckMode.privileged:
        return Decision.admit()

    if ctx.mode == CheckMode.standard:
        if not rules.is_within_advance_window(ctx.now, candidate.start, ctx.rule):
            return Decision.reject(RejectReason.below_advance_notice)

        today = calendar.local_date(ctx.now, ctx.tz)
        slot_day = calendar.local_date(candidate.start, ctx.tz)
        if not rules.is_within_horizon(today, slot_day, ctx.rule):
            return Decision.reject(RejectReason.beyond_horizon)

    if not rules.under_active_booking_cap(ctx.user_active_count, ctx.rule):
        return Decision.reject(RejectReason.active_booking_cap_reached)

    own = [b for b in ctx.user_bookings if b.id != ctx.exclude_booking_id]
    reason = rules.adjacency_violation(candidate, own, ctx.rule)
    if reason is not None:
        return Decision.reject(reason)

    return Decision.admit()


def availability_map(court: CourtRecord, day: date, ctx: AvailabilityContext, minutes: int = 60) -> List[SlotAvailability]:
    return [
        SlotAvailability(slot=slot, decision=evaluate(slot, ctx))
        for slot in calendar.enumerate_slots(court, day, ctx.tz, minutes)
    ]


def single_available_court(courts: Sequence[CourtRecord]) -> Optional[CourtRecord]:
    """The court to pre-select when a sport type has exactly one active court."""
    active = [c for c in courts if c.is_active]
    if len(active) == 1:
        return active[0]
    return None


class AvailabilityResolver:
    """Loads the live state a decision needs from the store, then evaluates."""

    def __init__(self, store, rule_source, clock: Clock, tz: Optional[pytz.BaseTzInfo] = None, slot_minutes: Optional[int] = None):
        self.store = store
        self.rule_source = rule_source
        self.clock = clock
        self.tz = tz or facility_timezone()
        self.slot_minutes = slot_minutes or settings.SLOT_MINUTES

    def rule_for(self, sport_type: SportType) -> RuleSet:
        return rules.resolve_rule_set(self.rule_source, sport_type)

    def load_court(self, court_id: UUID) -> CourtRecord:
        court = self.store.get_court(court_id)
        if court is None or not court.is_active:
            raise CourtNotFound(court_id)
        return court

    def build_context(
        self,
        court: CourtRecord,
        window,
        user_id: Optional[UUID] = None,
        mode: CheckMode = CheckMode.standard,
        exclude_booking_id: Optional[UUID] = None,
    ) -> AvailabilityContext:
        now = self.clock.now()
        user_bookings: List[BookingRecord] = []
        active_count = 0
        if user_id is not None and mode != CheckMode.privileged:
            user_bookings = self.store.list_user_live_bookings(user_id, now, court_id=court.id)
            active_count = self.store.count_user_active_bookings(user_id, now)
            if exclude_booking_id is not None:
                moving = self.store.get_booking(exclude_booking_id)
                if moving and moving.user_id == user_id and moving.is_live(now) and moving.end > now:
                    # A booking being moved does not count against its own cap
                    active_count -= 1

        return AvailabilityContext(
            now=now,
            tz=self.tz,
            rule=self.rule_for(court.sport_type),
            live_bookings=self.store.list_live_bookings(court.id, window, now),
            user_bookings=user_bookings,
            user_active_count=active_count,
            closures=[
                w for w in self.store.list_maintenance_windows(now, court_id=court.id)
                if w.applies_to(court.id)
            ],
            court=court,
            mode=mode,
            exclude_booking_id=exclude_booking_id,
        )

    def check(
        self,
        slot: Slot,
        user_id: Optional[UUID] = None,
        mode: CheckMode = CheckMode.standard,
        exclude_booking_id: Optional[UUID] = None,
        court: Optional[CourtRecord] = None,
    ) -> Decision:
        court = court or self.load_court(slot.court_id)
        ctx = self.build_context(court, slot.interval, user_id, mode, exclude_booking_id)
        decision = evaluate(slot, ctx)
        if not decision.admitted:
            logger.info(
                "Slot %s on court %s rejected: %s",
                slot.start.isoformat(), court.name, decision.reason.value,
            )
        return decision

    def day_map(self, court_id: UUID, day: date, user_id: Optional[UUID] = None) -> List[SlotAvailability]:
        court = self.load_court(court_id)
        ctx = self.build_context(court, calendar.day_bounds(day, self.tz), user_id)
        return availability_map(court, day, ctx, self.slot_minutes)
