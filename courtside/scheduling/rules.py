"""Per-sport booking policy and the pure predicates built on it."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from courtside.core.config import settings
from courtside.scheduling.calendar import overlaps
from courtside.scheduling.types import RejectReason, SportType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleSet:
    sport_type: SportType
    min_advance_notice: timedelta
    max_days_ahead: int
    max_active_bookings_per_user: int
    allow_consecutive_bookings: bool
    min_gap_between_bookings: timedelta
    allow_cancellation: bool = True
    min_cancellation_notice: timedelta = timedelta(0)
    allow_rescheduling: bool = True
    min_rescheduling_notice: timedelta = timedelta(0)


def default_rule_set(sport_type: SportType) -> RuleSet:
    return RuleSet(
        sport_type=sport_type,
        min_advance_notice=timedelta(minutes=settings.DEFAULT_MIN_ADVANCE_NOTICE_MINUTES),
        max_days_ahead=settings.DEFAULT_MAX_DAYS_AHEAD,
        max_active_bookings_per_user=settings.DEFAULT_MAX_ACTIVE_BOOKINGS,
        allow_consecutive_bookings=settings.DEFAULT_ALLOW_CONSECUTIVE_BOOKINGS,
        min_gap_between_bookings=timedelta(minutes=settings.DEFAULT_MIN_GAP_MINUTES),
        allow_cancellation=settings.DEFAULT_ALLOW_CANCELLATION,
        min_cancellation_notice=timedelta(minutes=settings.DEFAULT_MIN_CANCELLATION_MINUTES),
        allow_rescheduling=settings.DEFAULT_ALLOW_RESCHEDULING,
        min_rescheduling_notice=timedelta(minutes=settings.DEFAULT_MIN_RESCHEDULING_MINUTES),
    )


def resolve_rule_set(source, sport_type: SportType) -> RuleSet:
    """
    Effective policy for a sport type.

    A missing configuration row is a valid state: the documented defaults
    apply instead of refusing the booking.
    """
    rule = source.get_rule_set(sport_type) if source is not None else None
    if rule is None:
        logger.debug("No booking rules configured for %s, using defaults.", sport_type.value)
        return default_rule_set(sport_type)
    return rule


def is_within_advance_window(now: datetime, slot_start: datetime, rule: RuleSet) -> bool:
    return slot_start >= now + rule.min_advance_notice


def is_within_horizon(today: date, slot_date: date, rule: RuleSet) -> bool:
    return slot_date <= today + timedelta(days=rule.max_days_ahead)


def under_active_booking_cap(user_active_count: int, rule: RuleSet) -> bool:
    return user_active_count < rule.max_active_bookings_per_user


def adjacency_violation(candidate, existing: Iterable, rule: RuleSet) -> Optional[RejectReason]:
    """
    Which adjacency rule `candidate` breaks against the same user's bookings
    on the same court, if any.

    Overlapping bookings are skipped here; the availability check has
    already rejected those as taken.
    """
    for other in existing:
        if overlaps(candidate, other):
            continue
        touches = candidate.start == other.end or candidate.end == other.start
        if touches and not rule.allow_consecutive_bookings:
            return RejectReason.adjacency_violation
        if rule.min_gap_between_bookings > timedelta(0):
            if candidate.start >= other.end:
                gap = candidate.start - other.end
            else:
                gap = other.start - candidate.end
            if gap < rule.min_gap_between_bookings:
                return RejectReason.gap_violation
    return None


def violates_adjacency(candidate, existing: Iterable, rule: RuleSet) -> bool:
    return adjacency_violation(candidate, existing, rule) is not None


def can_cancel(now: datetime, booking_start: datetime, rule: RuleSet) -> bool:
    return rule.allow_cancellation and booking_start - now >= rule.min_cancellation_notice


def can_reschedule(now: datetime, booking_start: datetime, rule: RuleSet) -> bool:
    return rule.allow_rescheduling and booking_start - now >= rule.min_rescheduling_notice
