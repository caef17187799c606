import threading
from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from courtside.db.base import Base
from courtside.db.store import SqlBookingStore, SqlRuleSource
from courtside.models.booking import Booking, SlotClaim
from courtside.models.booking_rule import BookingRule
from courtside.models.court import Court
from courtside.models.notification import Notification
from courtside.scheduling.errors import (
    BookingExpired,
    BookingRejected,
    CancellationNotAllowed,
    InvalidTransition,
    NotBookingOwner,
    PaymentReferenceMismatch,
    StoreUnavailable,
)
from courtside.scheduling.lifecycle import BookingLifecycle
from courtside.scheduling.recurrence import DateRange, WeeklyPattern
from courtside.scheduling.types import BookingStatus, RejectReason, SportType
from courtside.services.notifications import NotificationDispatcher

from conftest import TODAY, TZ, FrozenClock, local


def _paid(lifecycle, seed, user, court, start):
    return lifecycle.create_paid(seed[user], seed[court], start, operator=seed["actors"]["operator"])


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


def test_create_pending_holds_the_slot(lifecycle, seed, clock):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))

    assert booking.status == BookingStatus.pending_payment
    assert booking.booking_number.startswith("CRT-")
    assert booking.start == local(1, 10)
    assert booking.end == local(1, 11)
    assert booking.expires_at == clock.now() + timedelta(minutes=10)

    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["bob"], seed["tennis1"], local(1, 10))
    assert exc.value.reason == RejectReason.slot_taken


def test_start_inside_the_hour_is_aligned(lifecycle, seed):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10, 45))
    assert booking.start == local(1, 10)


def test_reject_reason_is_surfaced_unchanged(lifecycle, seed):
    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["alice"], seed["tennis1"], local(0, 9))
    assert exc.value.reason == RejectReason.below_advance_notice

    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["alice"], seed["tennis1"], local(9, 10))
    assert exc.value.reason == RejectReason.beyond_horizon


def test_expired_hold_frees_the_slot(lifecycle, seed, clock):
    first = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    clock.advance(minutes=11)

    second = lifecycle.create_pending(seed["bob"], seed["tennis1"], local(1, 10))
    assert second.user_id == seed["bob"]

    with pytest.raises(BookingExpired):
        lifecycle.confirm_paid(first.id, "pay-1")


def test_active_booking_cap(lifecycle, seed):
    for hour in (10, 11, 12, 13):
        lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, hour))
    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["alice"], seed["tennis2"], local(2, 10))
    assert exc.value.reason == RejectReason.active_booking_cap_reached


def test_configured_rules_replace_defaults(lifecycle, seed, session_factory):
    db = session_factory()
    db.add(BookingRule(
        sport_type=SportType.tennis,
        min_advance_notice_minutes=0,
        max_days_ahead=30,
        max_active_bookings_per_user=2,
        allow_consecutive_bookings=False,
        min_gap_minutes=0,
    ))
    db.commit()
    db.close()

    lifecycle.create_pending(seed["alice"], seed["tennis1"], local(20, 10))
    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["alice"], seed["tennis1"], local(20, 11))
    assert exc.value.reason == RejectReason.adjacency_violation

    # Padel has no row and keeps the two-hour default
    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["alice"], seed["padel1"], local(0, 9))
    assert exc.value.reason == RejectReason.below_advance_notice


def test_cash_booking_is_paid_immediately(lifecycle, seed, notifier):
    booking = lifecycle.create_paid(
        seed["alice"], seed["tennis1"], local(0, 9),
        operator=seed["actors"]["operator"], payment_ref="cash-17",
    )
    assert booking.status == BookingStatus.paid
    assert booking.processed_by == seed["operator"]
    assert booking.expires_at is None
    assert notifier.events == [("booking_paid", booking.id)]


# ---------------------------------------------------------------------------
# Concurrent claims
# ---------------------------------------------------------------------------


def test_claim_race_becomes_slot_taken(lifecycle, seed, store, session_factory, monkeypatch):
    lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))

    # Both requests passed the in-process check; only the claim decides
    monkeypatch.setattr(store, "list_live_bookings", lambda *args, **kwargs: [])
    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["bob"], seed["tennis1"], local(1, 10))
    assert exc.value.reason == RejectReason.slot_taken

    db = session_factory()
    assert db.query(Booking).count() == 1
    assert db.query(SlotClaim).count() == 1
    db.close()


def test_concurrent_requests_for_one_slot(tmp_path, seed):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = factory()
    court = Court(name="Race Court", sport_type=SportType.tennis)
    db.add(court)
    db.commit()
    court_id = court.id
    db.close()

    clock = FrozenClock(local(0, 8))
    lifecycle = BookingLifecycle(SqlBookingStore(factory), SqlRuleSource(factory), clock=clock, tz=TZ)
    users = [seed[name] for name in ("alice", "bob", "carol", "dave")]
    barrier = threading.Barrier(len(users))
    successes, failures = [], []

    def attempt(user_id):
        barrier.wait()
        try:
            successes.append(lifecycle.create_pending(user_id, court_id, local(1, 10)))
        except (BookingRejected, StoreUnavailable) as exc:
            failures.append(exc)

    threads = [threading.Thread(target=attempt, args=(u,)) for u in users]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(successes) == 1
    assert len(failures) == len(users) - 1
    db = factory()
    assert db.query(Booking).filter(Booking.court_id == court_id).count() == 1
    db.close()
    engine.dispose()


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


def test_confirm_paid_is_idempotent(lifecycle, seed, notifier):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))

    first = lifecycle.confirm_paid(booking.id, "pay-1", gateway="stripe")
    second = lifecycle.confirm_paid(booking.id, "pay-1", gateway="stripe")

    assert first.status == second.status == BookingStatus.paid
    assert second.payment_ref == "pay-1"
    assert first.expires_at is None
    assert notifier.events == [("booking_paid", booking.id)]


def test_confirm_paid_with_another_reference_is_refused(lifecycle, seed):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    lifecycle.confirm_paid(booking.id, "pay-1")
    with pytest.raises(PaymentReferenceMismatch):
        lifecycle.confirm_paid(booking.id, "pay-2")


def test_paid_booking_does_not_expire(lifecycle, seed, clock):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    lifecycle.confirm_paid(booking.id, "pay-1")
    clock.advance(minutes=30)

    assert lifecycle.sweep_expired() == 0
    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["bob"], seed["tennis1"], local(1, 10))
    assert exc.value.reason == RejectReason.slot_taken


def test_confirming_a_cancelled_booking_fails(lifecycle, seed):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    lifecycle.cancel(booking.id)
    with pytest.raises(InvalidTransition):
        lifecycle.confirm_paid(booking.id, "pay-1")


def test_notifier_failure_keeps_the_payment(lifecycle, seed):
    class BrokenNotifier:
        def booking_paid(self, booking):
            raise RuntimeError("mail server down")

    lifecycle.notifier = BrokenNotifier()
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    paid = lifecycle.confirm_paid(booking.id, "pay-1")
    assert paid.status == BookingStatus.paid
    assert lifecycle.store.get_booking(booking.id).status == BookingStatus.paid


def test_dispatcher_writes_in_app_notification(lifecycle, seed, session_factory):
    lifecycle.notifier = NotificationDispatcher(session_factory)
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    lifecycle.confirm_paid(booking.id, "pay-1")

    db = session_factory()
    rows = db.query(Notification).filter(Notification.user_id == seed["alice"]).all()
    assert [(r.type, r.reference_id) for r in rows] == [("booking_paid", booking.id)]
    assert booking.booking_number in rows[0].message
    db.close()


# ---------------------------------------------------------------------------
# Cancel and expiry
# ---------------------------------------------------------------------------


def test_cancel_releases_the_slot_and_repeats_as_no_op(lifecycle, seed):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    cancelled = lifecycle.cancel(booking.id, seed["actors"]["alice"])
    again = lifecycle.cancel(booking.id, seed["actors"]["alice"])

    assert cancelled.status == again.status == BookingStatus.cancelled
    assert lifecycle.create_pending(seed["bob"], seed["tennis1"], local(1, 10)).user_id == seed["bob"]


def test_only_the_owner_or_staff_can_cancel(lifecycle, seed):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    with pytest.raises(NotBookingOwner):
        lifecycle.cancel(booking.id, seed["actors"]["bob"])
    assert lifecycle.cancel(booking.id, seed["actors"]["operator"]).status == BookingStatus.cancelled


def test_cancellation_notice_applies_to_players_only(lifecycle, seed, session_factory):
    db = session_factory()
    db.add(BookingRule(
        sport_type=SportType.tennis,
        min_advance_notice_minutes=0,
        max_days_ahead=7,
        max_active_bookings_per_user=4,
        allow_consecutive_bookings=True,
        min_gap_minutes=0,
        allow_cancellation=True,
        min_cancellation_minutes=24 * 60,
    ))
    db.commit()
    db.close()

    booking = _paid(lifecycle, seed, "alice", "tennis1", local(0, 12))
    with pytest.raises(CancellationNotAllowed):
        lifecycle.cancel(booking.id, seed["actors"]["alice"])
    assert lifecycle.cancel(booking.id, seed["actors"]["supervisor"]).status == BookingStatus.cancelled


def test_sweep_deletes_lapsed_holds(lifecycle, seed, clock, store):
    expired = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    clock.advance(minutes=5)
    fresh = lifecycle.create_pending(seed["bob"], seed["tennis1"], local(1, 11))
    clock.advance(minutes=6)

    assert lifecycle.sweep_expired() == 1
    assert store.get_booking(expired.id) is None
    assert store.get_booking(fresh.id).status == BookingStatus.pending_payment


# ---------------------------------------------------------------------------
# Reschedule
# ---------------------------------------------------------------------------


def test_owner_reschedules_to_a_free_slot(lifecycle, seed):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    moved = lifecycle.reschedule(booking.id, local(1, 15), seed["actors"]["alice"])

    assert moved.id == booking.id
    assert moved.start == local(1, 15)
    # The old hour is free again
    lifecycle.create_pending(seed["bob"], seed["tennis1"], local(1, 10))


def test_reschedule_within_the_same_slot_range_does_not_conflict_with_itself(lifecycle, seed):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    moved = lifecycle.reschedule(booking.id, local(1, 10), seed["actors"]["alice"], court_id=seed["tennis2"])
    assert moved.court_id == seed["tennis2"]


def test_player_reschedule_keeps_timing_rules(lifecycle, seed):
    booking = _paid(lifecycle, seed, "alice", "tennis1", local(0, 12))
    with pytest.raises(BookingRejected) as exc:
        lifecycle.reschedule(booking.id, local(10, 12), seed["actors"]["alice"])
    assert exc.value.reason == RejectReason.beyond_horizon

    with pytest.raises(NotBookingOwner):
        lifecycle.reschedule(booking.id, local(1, 12), seed["actors"]["bob"])


def test_supervisor_bypass_for_same_day_booking(lifecycle, seed):
    booking = _paid(lifecycle, seed, "alice", "tennis1", local(0, 12))
    moved = lifecycle.reschedule(booking.id, local(10, 12), seed["actors"]["supervisor"])
    assert moved.start == local(10, 12)

    # Operators are staff but do not get the bypass
    other = _paid(lifecycle, seed, "bob", "tennis1", local(0, 13))
    with pytest.raises(BookingRejected) as exc:
        lifecycle.reschedule(other.id, local(10, 13), seed["actors"]["operator"])
    assert exc.value.reason == RejectReason.beyond_horizon


def test_emergency_bypass_still_checks_conflicts(lifecycle, closures, seed, store):
    booking = _paid(lifecycle, seed, "alice", "tennis1", local(1, 14))
    blocker = _paid(lifecycle, seed, "bob", "tennis2", local(1, 16))
    outcome = closures.emergency_closure(seed["tennis1"], "flooding", end=local(2, 0))
    assert [link.booking_id for link in outcome.affected] == [booking.id]

    supervisor = seed["actors"]["supervisor"]
    with pytest.raises(BookingRejected) as exc:
        lifecycle.reschedule(booking.id, blocker.start, supervisor, court_id=seed["tennis2"])
    assert exc.value.reason == RejectReason.slot_taken

    # Beyond the horizon, on the open court
    moved = lifecycle.reschedule(booking.id, local(12, 14), supervisor, court_id=seed["tennis2"])
    assert moved.start == local(12, 14)
    assert moved.court_id == seed["tennis2"]
    assert store.get_affected_booking(booking.id).rescheduled


def test_bypass_never_skips_maintenance(lifecycle, closures, seed):
    booking = _paid(lifecycle, seed, "alice", "tennis1", local(0, 14))
    closures.emergency_closure(seed["tennis1"], "flooding")
    with pytest.raises(BookingRejected) as exc:
        lifecycle.reschedule(booking.id, local(3, 14), seed["actors"]["supervisor"])
    assert exc.value.reason == RejectReason.court_under_maintenance


def test_cancelled_booking_cannot_be_moved(lifecycle, seed):
    booking = lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    lifecycle.cancel(booking.id)
    with pytest.raises(InvalidTransition):
        lifecycle.reschedule(booking.id, local(1, 12), seed["actors"]["alice"])


def test_store_refuses_to_move_a_cancelled_booking(lifecycle, seed, store, session_factory):
    booking = _paid(lifecycle, seed, "alice", "tennis1", local(0, 12))
    lifecycle.cancel(booking.id)

    with pytest.raises(InvalidTransition):
        store.move_booking(booking.id, seed["tennis1"], local(0, 15), local(0, 16), local(0, 8))

    db = session_factory()
    try:
        assert db.query(SlotClaim).filter(SlotClaim.booking_id == booking.id).count() == 0
    finally:
        db.close()
    assert store.get_booking(booking.id).start == local(0, 12)


def test_move_after_concurrent_cancel_leaves_target_free(lifecycle, seed, monkeypatch):
    booking = _paid(lifecycle, seed, "alice", "tennis1", local(0, 12))
    # Reschedule works from a read taken before the cancel committed
    monkeypatch.setattr(lifecycle, "_load", lambda booking_id: booking)
    lifecycle.cancel(booking.id)

    with pytest.raises(InvalidTransition):
        lifecycle.reschedule(booking.id, local(0, 15), seed["actors"]["supervisor"])

    monkeypatch.undo()
    other = _paid(lifecycle, seed, "bob", "tennis1", local(0, 15))
    assert other.status == BookingStatus.paid


# ---------------------------------------------------------------------------
# Special bookings
# ---------------------------------------------------------------------------


def test_series_reports_partial_success(lifecycle, seed):
    taken = _paid(lifecycle, seed, "alice", "tennis1", local(1, 18))
    start_day = TODAY + timedelta(days=1)

    result = lifecycle.create_series(
        DateRange(start_day, start_day + timedelta(days=2)),
        seed["tennis1"], 18, 20,
        title="Club ladder", event_type="tournament",
        created_by=seed["actors"]["operator"],
    )

    assert [b.start for b in result.created] == [local(2, 18), local(3, 18)]
    assert [(f.day, f.reason) for f in result.failed] == [(start_day, "slot_taken")]
    assert all(b.recurrence_tag == result.recurrence_tag for b in result.created)
    assert all(b.is_special and b.status == BookingStatus.paid for b in result.created)
    assert all(b.end - b.start == timedelta(hours=2) for b in result.created)
    assert taken.status == BookingStatus.paid


def test_series_ignores_horizon_and_claims_every_hour(lifecycle, seed):
    result = lifecycle.create_series(
        WeeklyPattern(date(2026, 3, 4), ("wednesday",), 6),
        seed["padel1"], 9, 11,
        title="Coaching", event_type="class",
        created_by=seed["actors"]["operator"],
    )
    assert len(result.created) == 6
    assert result.failed == []

    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["alice"], seed["padel1"], local(7, 10))
    assert exc.value.reason == RejectReason.slot_taken
