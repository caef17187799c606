"""
Closure conflict resolver.

A planned closure is decided in two steps: `request_closure` snapshots the
paid bookings it would hit, and `resolve` applies the operator's decision
to exactly that snapshot. The maintenance window is committed last, so new
bookings only start failing the maintenance check once it exists.

Emergency closures skip the decision: they take effect immediately and link
every hit booking to the window for a later, relaxed reschedule.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID

import pytz

from courtside.core.clock import Clock, facility_timezone, system_clock
from courtside.scheduling import calendar
from courtside.scheduling.errors import (
    BookingRejected,
    ClosureNotFound,
    ClosurePlanChanged,
    CourtNotFound,
    InvalidClosure,
    StoreUnavailable,
    TransferNotAllowed,
    TransferRejected,
)
from courtside.scheduling.lifecycle import BookingLifecycle
from courtside.scheduling.ports import notify
from courtside.scheduling.types import (
    AffectedLink,
    BookingRecord,
    BookingStatus,
    ClosureWindow,
    CourtRecord,
    Interval,
)

logger = logging.getLogger(__name__)


class ClosureResolution(str, enum.Enum):
    cancel_all = "cancel_all"
    transfer = "transfer"
    abort = "abort"


class ClosureStatus(str, enum.Enum):
    created = "created"
    needs_resolution = "needs_resolution"
    aborted = "aborted"


@dataclass(frozen=True)
class ClosureRequest:
    # None closes every court
    court_id: Optional[UUID]
    start: datetime
    end: datetime
    reason: str
    created_by: Optional[UUID] = None

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @property
    def all_courts(self) -> bool:
        return self.court_id is None


@dataclass
class ClosurePlan:
    request: ClosureRequest
    conflicts: List[BookingRecord] = field(default_factory=list)
    transfer_options: List[CourtRecord] = field(default_factory=list)

    @property
    def can_transfer(self) -> bool:
        return bool(self.conflicts) and bool(self.transfer_options)


@dataclass
class ClosureOutcome:
    status: ClosureStatus
    window: Optional[ClosureWindow] = None
    plan: Optional[ClosurePlan] = None
    cancelled: List[BookingRecord] = field(default_factory=list)
    transferred: List[BookingRecord] = field(default_factory=list)
    # (booking, reason) pairs that could not be applied
    failed: List[tuple] = field(default_factory=list)
    affected: List[AffectedLink] = field(default_factory=list)


class ClosureResolver:
    def __init__(
        self,
        store,
        lifecycle: BookingLifecycle,
        notifier=None,
        clock: Clock = system_clock,
        tz: Optional[pytz.BaseTzInfo] = None,
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.notifier = notifier
        self.clock = clock
        self.tz = tz or facility_timezone()

    def affected_courts(self, court_id: Optional[UUID]) -> List[CourtRecord]:
        if court_id is None:
            return [c for c in self.store.list_courts() if c.is_active]
        court = self.store.get_court(court_id)
        if court is None:
            raise CourtNotFound(court_id)
        return [court]

    def find_conflicts(self, court_id: Optional[UUID], interval: Interval) -> List[BookingRecord]:
        """Paid bookings on the closed court(s) starting inside the interval."""
        court_ids = [c.id for c in self.affected_courts(court_id)]
        if not court_ids:
            return []
        bookings = self.store.find_paid_bookings(court_ids, interval)
        conflicts = [
            b for b in bookings
            if b.status == BookingStatus.paid and interval.start <= b.start < interval.end
        ]
        return sorted(conflicts, key=lambda b: (b.start, str(b.court_id)))

    def transfer_options(self, court_id: Optional[UUID]) -> List[CourtRecord]:
        """Active courts of the same sport type a closed court's bookings can move to."""
        if court_id is None:
            return []
        court = self.store.get_court(court_id)
        if court is None:
            raise CourtNotFound(court_id)
        return [
            c for c in self.store.list_courts(sport_type=court.sport_type)
            if c.id != court.id and c.is_active
        ]

    def plan(self, request: ClosureRequest, reviewed: Optional[Sequence[UUID]] = None) -> ClosurePlan:
        """
        Conflicts and transfer options for `request`.

        With `reviewed`, the ids the operator was shown, the current conflict
        set must match it exactly; otherwise ClosurePlanChanged is raised and
        the operator has to review the new set.
        """
        if request.start >= request.end:
            raise InvalidClosure("A closure must end after it starts")
        plan = ClosurePlan(
            request=request,
            conflicts=self.find_conflicts(request.court_id, request.interval),
            transfer_options=self.transfer_options(request.court_id),
        )
        if reviewed is not None:
            current = {b.id for b in plan.conflicts}
            seen = set(reviewed)
            if current != seen:
                logger.info(
                    "Closure on %s changed since review: %d new, %d gone.",
                    request.court_id or "all courts", len(current - seen), len(seen - current),
                )
                raise ClosurePlanChanged(sorted(current - seen, key=str), sorted(seen - current, key=str))
        return plan

    # ------------------------------------------------------------------
    # Planned closures
    # ------------------------------------------------------------------

    def request_closure(self, request: ClosureRequest) -> ClosureOutcome:
        plan = self.plan(request)
        if not plan.conflicts:
            return ClosureOutcome(status=ClosureStatus.created, window=self._commit(request), plan=plan)

        logger.info(
            "Closure on %s needs a decision: %d conflicting booking(s).",
            request.court_id or "all courts", len(plan.conflicts),
        )
        return ClosureOutcome(status=ClosureStatus.needs_resolution, plan=plan)

    def resolve(
        self,
        plan: ClosurePlan,
        resolution: ClosureResolution,
        target_court_id: Optional[UUID] = None,
    ) -> ClosureOutcome:
        """
        Apply the operator's decision to the plan's snapshot of conflicts.

        Transfers are checked up front as fresh bookings on the target court;
        if any booking does not fit, nothing is moved and no window is created.
        """
        if resolution == ClosureResolution.abort:
            logger.info("Closure on %s aborted by operator.", plan.request.court_id or "all courts")
            return ClosureOutcome(status=ClosureStatus.aborted, plan=plan)

        outcome = ClosureOutcome(status=ClosureStatus.created, plan=plan)

        if resolution == ClosureResolution.cancel_all:
            for booking in plan.conflicts:
                try:
                    outcome.cancelled.append(self.lifecycle.cancel(booking.id))
                except StoreUnavailable:
                    logger.exception("Could not cancel booking %s for closure.", booking.booking_number)
                    outcome.failed.append((booking, "store_unavailable"))

        elif resolution == ClosureResolution.transfer:
            target = self._transfer_target(plan, target_court_id)
            rejected = []
            for booking in plan.conflicts:
                decision = self.lifecycle.check_transfer(booking, target)
                if not decision.admitted:
                    rejected.append((booking.id, decision.reason))
            if rejected:
                raise TransferRejected(rejected)

            for booking in plan.conflicts:
                try:
                    outcome.transferred.append(self.lifecycle.transfer(booking, target))
                except BookingRejected as exc:
                    outcome.failed.append((booking, exc.reason.value))
                except StoreUnavailable:
                    logger.exception("Could not transfer booking %s for closure.", booking.booking_number)
                    outcome.failed.append((booking, "store_unavailable"))

        outcome.window = self._commit(plan.request)
        notify(self.notifier, "closure_created", outcome.window, outcome.cancelled + outcome.transferred)
        return outcome

    def _transfer_target(self, plan: ClosurePlan, target_court_id: Optional[UUID]) -> CourtRecord:
        if not plan.transfer_options:
            raise TransferNotAllowed("No other court of the same sport type is available")
        if target_court_id is None and len(plan.transfer_options) == 1:
            return plan.transfer_options[0]
        for court in plan.transfer_options:
            if court.id == target_court_id:
                return court
        raise TransferNotAllowed(f"Court {target_court_id} is not a valid transfer target")

    def _commit(self, request: ClosureRequest) -> ClosureWindow:
        window = self.store.insert_maintenance_window(ClosureWindow(
            id=None,
            court_id=request.court_id,
            start=request.start,
            end=request.end,
            reason=request.reason,
            all_courts=request.all_courts,
            created_by=request.created_by,
        ))
        logger.info(
            "Maintenance window %s created on %s from %s to %s.",
            window.id, request.court_id or "all courts",
            request.start.isoformat(), request.end.isoformat(),
        )
        return window

    # ------------------------------------------------------------------
    # Emergency closures
    # ------------------------------------------------------------------

    def emergency_closure(
        self,
        court_id: Optional[UUID],
        reason: str,
        created_by: Optional[UUID] = None,
        expected_reopening: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ClosureOutcome:
        """
        Close now until explicitly reopened. Bookings inside the expected
        closure (end of today unless given) are linked, not cancelled.
        """
        now = self.clock.now()
        end = end or expected_reopening or calendar.end_of_day(now, self.tz)
        if end <= now:
            raise InvalidClosure("An emergency closure must reach into the future")

        conflicts = self.find_conflicts(court_id, Interval(now, end))
        window = self.store.insert_maintenance_window(ClosureWindow(
            id=None,
            court_id=court_id,
            start=now,
            end=end,
            reason=reason,
            all_courts=court_id is None,
            is_emergency=True,
            expected_reopening=expected_reopening,
            created_by=created_by,
        ))
        links = self.store.insert_affected_bookings(window.id, [b.id for b in conflicts])
        logger.warning(
            "Emergency closure %s on %s: %d booking(s) affected.",
            window.id, court_id or "all courts", len(links),
        )
        notify(self.notifier, "closure_created", window, conflicts)
        return ClosureOutcome(status=ClosureStatus.created, window=window, affected=links)

    def reopen(
        self,
        window_ids: Optional[Sequence[UUID]] = None,
        court_id: Optional[UUID] = None,
    ) -> List[ClosureWindow]:
        """
        Deactivate emergency windows: the given ids, or every active one
        (optionally only those covering `court_id`).
        """
        now = self.clock.now()
        if window_ids:
            targets = []
            for window_id in window_ids:
                window = self.store.get_maintenance_window(window_id)
                if window is None or not window.is_emergency:
                    raise ClosureNotFound(window_id)
                targets.append(window)
        else:
            targets = self.store.list_maintenance_windows(now, court_id=court_id, emergency_only=True)
            if court_id is not None:
                targets = [w for w in targets if w.applies_to(court_id)]

        reopened = [
            self.store.update_maintenance_window(w.id, False, now)
            for w in targets if w.is_active
        ]
        logger.info("Reopened %d emergency closure(s).", len(reopened))
        return reopened

    def deactivate_elapsed(self) -> int:
        """Planned windows expire on their own; emergency ones never do."""
        count = self.store.deactivate_elapsed_windows(self.clock.now())
        if count:
            logger.info("Deactivated %d elapsed maintenance window(s).", count)
        return count

    def active_windows(self, court_id: Optional[UUID] = None) -> List[ClosureWindow]:
        windows = self.store.list_maintenance_windows(self.clock.now(), court_id=court_id)
        if court_id is not None:
            windows = [w for w in windows if w.applies_to(court_id)]
        return windows
