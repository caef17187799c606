"""Engine records to response schemas, shared by public and admin routers."""

from courtside.scheduling.closures import ClosureOutcome
from courtside.scheduling.types import AffectedLink, BookingRecord, ClosureWindow, CourtRecord
from courtside.schemas.booking import AffectedBooking as AffectedBookingSchema
from courtside.schemas.booking import Booking as BookingSchema
from courtside.schemas.closure import ClosureOutcome as ClosureOutcomeSchema
from courtside.schemas.closure import FailedBooking, MaintenanceWindow as MaintenanceWindowSchema
from courtside.schemas.court import Court as CourtSchema


def serialize_court(court: CourtRecord) -> CourtSchema:
    return CourtSchema(
        id=court.id,
        name=court.name,
        sport_type=court.sport_type,
        operating_hours_start=court.operating_hours_start,
        operating_hours_end=court.operating_hours_end,
        is_active=court.is_active,
    )


def serialize_booking(booking: BookingRecord) -> BookingSchema:
    return BookingSchema(
        id=booking.id,
        booking_number=booking.booking_number,
        court_id=booking.court_id,
        user_id=booking.user_id,
        start_time=booking.start,
        end_time=booking.end,
        status=booking.status.value,
        expires_at=booking.expires_at,
        payment_ref=booking.payment_ref,
        is_special=booking.is_special,
        title=booking.title,
        recurrence_tag=booking.recurrence_tag,
    )


def serialize_window(window: ClosureWindow) -> MaintenanceWindowSchema:
    return MaintenanceWindowSchema(
        id=window.id,
        court_id=window.court_id,
        all_courts=window.all_courts,
        start_time=window.start,
        end_time=window.end,
        reason=window.reason,
        is_active=window.is_active,
        is_emergency=window.is_emergency,
        expected_reopening=window.expected_reopening,
    )


def serialize_link(link: AffectedLink, booking: BookingRecord = None) -> AffectedBookingSchema:
    return AffectedBookingSchema(
        id=link.id,
        booking_id=link.booking_id,
        maintenance_id=link.maintenance_id,
        can_reschedule=link.can_reschedule,
        rescheduled=link.rescheduled,
        booking=serialize_booking(booking) if booking else None,
    )


def serialize_outcome(outcome: ClosureOutcome) -> ClosureOutcomeSchema:
    plan = outcome.plan
    return ClosureOutcomeSchema(
        status=outcome.status.value,
        window=serialize_window(outcome.window) if outcome.window else None,
        conflicts=[serialize_booking(b) for b in plan.conflicts] if plan else [],
        transfer_options=[serialize_court(c) for c in plan.transfer_options] if plan else [],
        cancelled=[serialize_booking(b) for b in outcome.cancelled],
        transferred=[serialize_booking(b) for b in outcome.transferred],
        failed=[FailedBooking(booking_id=b.id, reason=reason) for b, reason in outcome.failed],
        affected_count=len(outcome.affected),
    )
