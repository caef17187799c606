"""In-app notifications written after payments and closures."""

import logging
from typing import Sequence

from courtside.core.clock import facility_timezone
from courtside.db.session import SessionLocal
from courtside.models.notification import Notification
from courtside.scheduling.types import BookingRecord, ClosureWindow

logger = logging.getLogger(__name__)


def _local(instant, fmt="%d %b %H:%M"):
    return instant.astimezone(facility_timezone()).strftime(fmt)


class NotificationDispatcher:
    """Implements the engine's notifier port on top of the notifications table."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def _write(self, rows) -> None:
        if not rows:
            return
        db = self.session_factory()
        try:
            db.add_all(rows)
            db.commit()
        finally:
            db.close()

    def booking_paid(self, booking: BookingRecord) -> None:
        if booking.user_id is None:
            return
        self._write([Notification(
            user_id=booking.user_id,
            title="Booking Confirmed",
            message=(
                f"Your court booking on {_local(booking.start)} is confirmed! "
                f"Ref: {booking.booking_number}"
            ),
            type="booking_paid",
            reference_id=booking.id,
        )])

    def closure_created(self, window: ClosureWindow, affected: Sequence[BookingRecord]) -> None:
        if window.is_emergency:
            title, kind = "Court Closed", "court_closed"
            message = "Your booking on {when} is affected by an emergency closure. You can reschedule it."
        else:
            title, kind = "Booking Updated", "court_maintenance"
            message = "Your booking on {when} was changed due to scheduled court maintenance."

        rows = [
            Notification(
                user_id=b.user_id,
                title=title,
                message=message.format(when=_local(b.start)) + f" Ref: {b.booking_number}",
                type=kind,
                reference_id=b.id,
            )
            for b in affected if b.user_id is not None
        ]
        self._write(rows)
        logger.info("Sent %d closure notification(s) for window %s.", len(rows), window.id)
