import uuid

import pytest

from courtside.scheduling.closures import ClosureRequest, ClosureResolution, ClosureStatus
from courtside.scheduling.errors import (
    BookingRejected,
    ClosureNotFound,
    ClosurePlanChanged,
    InvalidClosure,
    TransferNotAllowed,
    TransferRejected,
)
from courtside.scheduling.types import BookingStatus, RejectReason

from conftest import local


def _paid(lifecycle, seed, user, court, start):
    return lifecycle.create_paid(seed[user], seed[court], start, operator=seed["actors"]["operator"])


def _request(seed, court, start, end):
    return ClosureRequest(
        court_id=seed[court] if court else None,
        start=start,
        end=end,
        reason="net replacement",
        created_by=seed["operator"],
    )


@pytest.fixture
def three_bookings(lifecycle, seed):
    return [
        _paid(lifecycle, seed, "alice", "tennis1", local(1, 9)),
        _paid(lifecycle, seed, "bob", "tennis1", local(1, 11)),
        _paid(lifecycle, seed, "carol", "tennis1", local(1, 14)),
    ]


def test_closure_without_conflicts_is_created(closures, lifecycle, seed):
    outcome = closures.request_closure(_request(seed, "tennis1", local(1, 8), local(1, 12)))

    assert outcome.status == ClosureStatus.created
    assert outcome.window.court_id == seed["tennis1"]
    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 10))
    assert exc.value.reason == RejectReason.court_under_maintenance
    # Outside the window the court stays bookable
    lifecycle.create_pending(seed["alice"], seed["tennis1"], local(1, 12))


def test_conflicts_are_paid_bookings_starting_inside_the_window(closures, lifecycle, seed, three_bookings):
    lifecycle.create_pending(seed["dave"], seed["tennis1"], local(1, 10))
    _paid(lifecycle, seed, "dave", "tennis1", local(1, 16))

    conflicts = closures.find_conflicts(seed["tennis1"], _request(seed, "tennis1", local(1, 9), local(1, 16)).interval)
    assert [b.id for b in conflicts] == [b.id for b in three_bookings]


def test_conflicting_request_needs_a_decision(closures, store, seed, three_bookings):
    outcome = closures.request_closure(_request(seed, "tennis1", local(1, 0), local(2, 0)))

    assert outcome.status == ClosureStatus.needs_resolution
    assert outcome.window is None
    assert len(outcome.plan.conflicts) == 3
    assert [c.id for c in outcome.plan.transfer_options] == [seed["tennis2"]]
    assert store.list_maintenance_windows(local(0, 8)) == []


def test_cancel_all(closures, store, seed, three_bookings, notifier):
    plan = closures.plan(_request(seed, "tennis1", local(1, 0), local(2, 0)))
    outcome = closures.resolve(plan, ClosureResolution.cancel_all)

    assert outcome.status == ClosureStatus.created
    assert outcome.window is not None
    assert len(outcome.cancelled) == 3
    for booking in three_bookings:
        assert store.get_booking(booking.id).status == BookingStatus.cancelled
        assert store.get_affected_booking(booking.id) is None
    assert notifier.events[-1] == ("closure_created", outcome.window.id, [b.id for b in three_bookings])


def test_abort_leaves_everything_untouched(closures, store, seed, three_bookings):
    plan = closures.plan(_request(seed, "tennis1", local(1, 0), local(2, 0)))
    outcome = closures.resolve(plan, ClosureResolution.abort)

    assert outcome.status == ClosureStatus.aborted
    assert outcome.window is None
    assert store.list_maintenance_windows(local(0, 8)) == []
    for booking in three_bookings:
        assert store.get_booking(booking.id).status == BookingStatus.paid


def test_transfer_moves_bookings_to_sibling_court(closures, store, seed, three_bookings):
    plan = closures.plan(_request(seed, "tennis1", local(1, 0), local(2, 0)))
    assert plan.can_transfer
    outcome = closures.resolve(plan, ClosureResolution.transfer, target_court_id=seed["tennis2"])

    assert len(outcome.transferred) == 3
    assert outcome.failed == []
    for original in three_bookings:
        moved = store.get_booking(original.id)
        assert moved.court_id == seed["tennis2"]
        assert (moved.start, moved.end) == (original.start, original.end)
        assert moved.status == BookingStatus.paid


def test_transfer_refused_without_same_sport_court(closures, lifecycle, store, seed):
    booking = _paid(lifecycle, seed, "alice", "padel1", local(1, 9))
    plan = closures.plan(_request(seed, "padel1", local(1, 0), local(2, 0)))

    assert plan.transfer_options == []
    assert not plan.can_transfer
    with pytest.raises(TransferNotAllowed):
        closures.resolve(plan, ClosureResolution.transfer)
    assert store.get_booking(booking.id).court_id == seed["padel1"]
    assert store.list_maintenance_windows(local(0, 8)) == []


def test_transfer_to_a_court_of_another_sport_is_refused(closures, seed, three_bookings):
    plan = closures.plan(_request(seed, "tennis1", local(1, 0), local(2, 0)))
    with pytest.raises(TransferNotAllowed):
        closures.resolve(plan, ClosureResolution.transfer, target_court_id=seed["padel1"])


def test_transfer_is_all_or_nothing(closures, lifecycle, store, seed, three_bookings):
    _paid(lifecycle, seed, "dave", "tennis2", local(1, 11))
    plan = closures.plan(_request(seed, "tennis1", local(1, 0), local(2, 0)))

    with pytest.raises(TransferRejected) as exc:
        closures.resolve(plan, ClosureResolution.transfer, target_court_id=seed["tennis2"])
    assert exc.value.rejected == [(three_bookings[1].id, RejectReason.slot_taken)]
    for booking in three_bookings:
        assert store.get_booking(booking.id).court_id == seed["tennis1"]
    assert store.list_maintenance_windows(local(0, 8)) == []


def test_all_courts_closure_has_no_transfer_target(closures, lifecycle, seed, three_bookings):
    padel = _paid(lifecycle, seed, "dave", "padel1", local(1, 10))
    plan = closures.plan(_request(seed, None, local(1, 0), local(2, 0)))

    assert {b.id for b in plan.conflicts} == {b.id for b in three_bookings} | {padel.id}
    assert plan.transfer_options == []

    outcome = closures.resolve(plan, ClosureResolution.cancel_all)
    assert outcome.window.all_courts
    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["alice"], seed["tennis2"], local(1, 18))
    assert exc.value.reason == RejectReason.court_under_maintenance


def test_plan_must_match_the_reviewed_conflicts(closures, lifecycle, seed, three_bookings):
    request = _request(seed, "tennis1", local(1, 0), local(2, 0))
    reviewed = [b.id for b in closures.plan(request).conflicts]
    late = _paid(lifecycle, seed, "dave", "tennis1", local(1, 18))

    with pytest.raises(ClosurePlanChanged) as exc:
        closures.plan(request, reviewed=reviewed)
    assert exc.value.added == [late.id]
    assert exc.value.removed == []

    assert len(closures.plan(request, reviewed=reviewed + [late.id]).conflicts) == 4


def test_inverted_interval_is_rejected(closures, seed):
    with pytest.raises(InvalidClosure):
        closures.request_closure(_request(seed, "tennis1", local(1, 12), local(1, 10)))


# ---------------------------------------------------------------------------
# Emergency closures
# ---------------------------------------------------------------------------


def test_emergency_closure_links_instead_of_cancelling(closures, store, seed, lifecycle):
    today = _paid(lifecycle, seed, "alice", "tennis1", local(0, 15))
    tomorrow = _paid(lifecycle, seed, "bob", "tennis1", local(1, 15))

    outcome = closures.emergency_closure(seed["tennis1"], "storm damage", created_by=seed["supervisor"])

    assert outcome.window.is_emergency
    assert outcome.window.start == local(0, 8)
    assert outcome.window.end == local(1, 0)
    assert [link.booking_id for link in outcome.affected] == [today.id]
    assert store.get_booking(today.id).status == BookingStatus.paid
    assert store.get_affected_booking(tomorrow.id) is None
    assert [link.booking_id for link in store.list_affected_for_user(seed["alice"])] == [today.id]


def test_emergency_closure_stays_until_reopened(closures, lifecycle, clock, seed):
    window = closures.emergency_closure(seed["tennis1"], "storm damage").window
    clock.advance(days=2)

    assert closures.deactivate_elapsed() == 0
    with pytest.raises(BookingRejected) as exc:
        lifecycle.create_pending(seed["alice"], seed["tennis1"], local(3, 12))
    assert exc.value.reason == RejectReason.court_under_maintenance

    reopened = closures.reopen(court_id=seed["tennis1"])
    assert [w.id for w in reopened] == [window.id]
    assert not reopened[0].is_active
    lifecycle.create_pending(seed["alice"], seed["tennis1"], local(3, 12))


def test_reopen_unknown_window(closures):
    with pytest.raises(ClosureNotFound):
        closures.reopen(window_ids=[uuid.uuid4()])


def test_planned_window_expires_on_its_own(closures, clock, seed):
    closures.request_closure(_request(seed, "tennis1", local(0, 9), local(0, 12)))
    assert len(closures.active_windows(seed["tennis1"])) == 1

    clock.advance(hours=5)
    assert closures.deactivate_elapsed() == 1
    assert closures.active_windows(seed["tennis1"]) == []
