"""
SQLAlchemy adapter for the scheduling engine's persistence and rule ports.

Each public method runs in its own session and transaction. Double booking
is prevented by `slot_claims`: every live booking owns one row per hour it
covers, and UNIQUE(court_id, slot_start) lets at most one booking hold an
hour. Expired pending claims are swept inside the claiming transaction, so
a lapsed payment hold never blocks a new booking.
"""

import logging
import random
import string
from contextlib import contextmanager
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from courtside.core.config import settings
from courtside.db.session import SessionLocal
from courtside.models.booking import Booking, SlotClaim
from courtside.models.booking_rule import BookingRule
from courtside.models.court import Court, CourtTypeSettings
from courtside.models.maintenance import AffectedBooking, MaintenanceWindow
from courtside.scheduling.errors import (
    BookingNotFound,
    ClosureNotFound,
    InvalidTransition,
    SlotConflict,
    StoreUnavailable,
)
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

CLAIM_CONSTRAINT = "uq_slot_claims_court_slot"


# ---------------------------------------------------------------------------
# Row <-> record mapping
# ---------------------------------------------------------------------------


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive values; everything is stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_operating_days(value: Optional[str]):
    if not value:
        return None
    return frozenset(int(part) for part in value.split(",") if part.strip())


def court_record(court: Court, type_settings: Optional[CourtTypeSettings] = None) -> CourtRecord:
    opens, closes = court.operating_hours_start, court.operating_hours_end
    if (opens is None or closes is None) and type_settings is not None:
        opens, closes = type_settings.operating_hours_start, type_settings.operating_hours_end
    if opens is None or closes is None:
        opens = time(settings.DEFAULT_OPERATING_HOURS_START)
        closes = time(settings.DEFAULT_OPERATING_HOURS_END % 24)
    return CourtRecord(
        id=court.id,
        name=court.name,
        sport_type=SportType(court.sport_type),
        operating_hours_start=opens,
        operating_hours_end=closes,
        operating_days=parse_operating_days(type_settings.operating_days) if type_settings else None,
        is_active=bool(court.is_active),
    )


def booking_record(booking: Booking) -> BookingRecord:
    return BookingRecord(
        id=booking.id,
        court_id=booking.court_id,
        user_id=booking.user_id,
        start=_utc(booking.start_time),
        end=_utc(booking.end_time),
        status=BookingStatus(booking.status),
        booking_number=booking.booking_number,
        expires_at=_utc(booking.expires_at),
        payment_ref=booking.payment_ref,
        processed_by=booking.processed_by,
        is_special=bool(booking.is_special),
        title=booking.title,
        recurrence_tag=booking.recurrence_tag,
    )


def window_record(window: MaintenanceWindow) -> ClosureWindow:
    return ClosureWindow(
        id=window.id,
        court_id=window.court_id,
        start=_utc(window.start_time),
        end=_utc(window.end_time),
        reason=window.reason,
        all_courts=bool(window.all_courts),
        is_active=bool(window.is_active),
        is_emergency=bool(window.is_emergency),
        expected_reopening=_utc(window.expected_reopening),
        created_by=window.created_by,
    )


def link_record(link: AffectedBooking) -> AffectedLink:
    return AffectedLink(
        id=link.id,
        booking_id=link.booking_id,
        maintenance_id=link.maintenance_id,
        rescheduled=bool(link.rescheduled),
        rescheduled_at=_utc(link.rescheduled_at),
        can_reschedule=bool(link.can_reschedule),
    )


def rule_record(rule: BookingRule) -> RuleSet:
    return RuleSet(
        sport_type=SportType(rule.sport_type),
        min_advance_notice=timedelta(minutes=rule.min_advance_notice_minutes),
        max_days_ahead=rule.max_days_ahead,
        max_active_bookings_per_user=rule.max_active_bookings_per_user,
        allow_consecutive_bookings=rule.allow_consecutive_bookings,
        min_gap_between_bookings=timedelta(minutes=rule.min_gap_minutes),
        allow_cancellation=rule.allow_cancellation,
        min_cancellation_notice=timedelta(minutes=rule.min_cancellation_minutes),
        allow_rescheduling=rule.allow_rescheduling,
        min_rescheduling_notice=timedelta(minutes=rule.min_rescheduling_minutes),
    )


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def _generate_booking_number(db: Session) -> str:
    """Generate a unique 'CRT-XXXXXXXX' booking reference."""
    chars = string.ascii_uppercase + string.digits
    while True:
        number = "CRT-" + "".join(random.choices(chars, k=8))
        if not db.query(Booking).filter(Booking.booking_number == number).first():
            return number


def _live_filter(now: datetime):
    return or_(
        Booking.status == BookingStatus.paid.value,
        (Booking.status == BookingStatus.pending_payment.value) & (Booking.expires_at > now),
    )


def _is_claim_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return CLAIM_CONSTRAINT in message or "slot_claims" in message


class SqlBookingStore:
    def __init__(self, session_factory=SessionLocal, slot_minutes: Optional[int] = None):
        self.session_factory = session_factory
        self.slot_minutes = slot_minutes or settings.SLOT_MINUTES

    @contextmanager
    def _session(self):
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if _is_claim_conflict(exc):
                raise SlotConflict("Slot already claimed by another booking") from exc
            raise
        except (OperationalError, PoolTimeoutError) as exc:
            db.rollback()
            logger.exception("Booking store unavailable.")
            raise StoreUnavailable("The booking store did not respond, try again") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _claim_starts(self, start: datetime, end: datetime) -> List[datetime]:
        step = timedelta(minutes=self.slot_minutes)
        starts = []
        cursor = start
        while cursor < end:
            starts.append(cursor)
            cursor += step
        return starts

    def _claim(self, db: Session, booking: Booking, now: datetime) -> None:
        # Lapsed payment holds give their hours back before the new claim
        db.query(SlotClaim).filter(
            SlotClaim.court_id == booking.court_id,
            SlotClaim.expires_at.isnot(None),
            SlotClaim.expires_at <= now,
        ).delete(synchronize_session=False)
        for slot_start in self._claim_starts(_utc(booking.start_time), _utc(booking.end_time)):
            db.add(SlotClaim(
                booking_id=booking.id,
                court_id=booking.court_id,
                slot_start=slot_start,
                expires_at=booking.expires_at,
            ))
        db.flush()

    def _release(self, db: Session, booking_ids: Sequence[UUID]) -> None:
        if booking_ids:
            db.query(SlotClaim).filter(SlotClaim.booking_id.in_(list(booking_ids))).delete(
                synchronize_session=False
            )

    def _type_settings(self, db: Session) -> dict:
        return {SportType(s.sport_type): s for s in db.query(CourtTypeSettings).all()}

    # ------------------------------------------------------------------
    # Courts
    # ------------------------------------------------------------------

    def get_court(self, court_id: UUID) -> Optional[CourtRecord]:
        with self._session() as db:
            court = db.query(Court).filter(Court.id == court_id).first()
            if court is None:
                return None
            return court_record(court, self._type_settings(db).get(SportType(court.sport_type)))

    def list_courts(self, sport_type: Optional[SportType] = None) -> List[CourtRecord]:
        with self._session() as db:
            query = db.query(Court)
            if sport_type is not None:
                query = query.filter(Court.sport_type == sport_type)
            type_settings = self._type_settings(db)
            return [
                court_record(c, type_settings.get(SportType(c.sport_type)))
                for c in query.order_by(Court.name).all()
            ]

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: UUID) -> Optional[BookingRecord]:
        with self._session() as db:
            booking = db.query(Booking).filter(Booking.id == booking_id).first()
            return booking_record(booking) if booking else None

    def get_bookings(self, booking_ids: Sequence[UUID]) -> List[BookingRecord]:
        if not booking_ids:
            return []
        with self._session() as db:
            rows = db.query(Booking).filter(Booking.id.in_(list(booking_ids))).all()
            return [booking_record(b) for b in rows]

    def list_live_bookings(self, court_id: UUID, window: Interval, now: datetime) -> List[BookingRecord]:
        with self._session() as db:
            rows = (
                db.query(Booking)
                .filter(
                    Booking.court_id == court_id,
                    _live_filter(_utc(now)),
                    Booking.start_time < _utc(window.end),
                    Booking.end_time > _utc(window.start),
                )
                .order_by(Booking.start_time)
                .all()
            )
            return [booking_record(b) for b in rows]

    def list_user_live_bookings(
        self, user_id: UUID, now: datetime, court_id: Optional[UUID] = None
    ) -> List[BookingRecord]:
        with self._session() as db:
            query = db.query(Booking).filter(
                Booking.user_id == user_id,
                _live_filter(_utc(now)),
                Booking.end_time > _utc(now),
            )
            if court_id is not None:
                query = query.filter(Booking.court_id == court_id)
            return [booking_record(b) for b in query.order_by(Booking.start_time).all()]

    def count_user_active_bookings(self, user_id: UUID, now: datetime) -> int:
        with self._session() as db:
            return (
                db.query(Booking)
                .filter(
                    Booking.user_id == user_id,
                    _live_filter(_utc(now)),
                    Booking.end_time > _utc(now),
                )
                .count()
            )

    def insert_booking(self, draft: BookingDraft, now: datetime) -> BookingRecord:
        with self._session() as db:
            booking = Booking(
                court_id=draft.court_id,
                user_id=draft.user_id,
                booking_number=_generate_booking_number(db),
                start_time=_utc(draft.start),
                end_time=_utc(draft.end),
                status=draft.status.value,
                expires_at=_utc(draft.expires_at),
                payment_ref=draft.payment_ref,
                processed_by=draft.processed_by,
                paid_at=_utc(now) if draft.status == BookingStatus.paid else None,
                is_special=draft.is_special,
                title=draft.title,
                description=draft.description,
                event_type=draft.event_type,
                recurrence_tag=draft.recurrence_tag,
                created_by=draft.created_by,
            )
            db.add(booking)
            db.flush()
            self._claim(db, booking, _utc(now))
            db.refresh(booking)
            return booking_record(booking)

    def move_booking(
        self,
        booking_id: UUID,
        court_id: UUID,
        start: datetime,
        end: datetime,
        now: datetime,
    ) -> BookingRecord:
        with self._session() as db:
            booking = db.query(Booking).filter(Booking.id == booking_id).with_for_update().first()
            if booking is None:
                raise BookingNotFound(booking_id)
            # Status may have changed since the caller read the booking
            expires_at = _utc(booking.expires_at)
            live = booking.status == BookingStatus.paid.value or (
                booking.status == BookingStatus.pending_payment.value
                and expires_at is not None
                and expires_at > _utc(now)
            )
            if not live:
                raise InvalidTransition(
                    f"Booking {booking.booking_number} is {booking.status} and cannot be moved"
                )
            self._release(db, [booking.id])
            booking.court_id = court_id
            booking.start_time = _utc(start)
            booking.end_time = _utc(end)
            db.flush()
            self._claim(db, booking, _utc(now))
            db.refresh(booking)
            return booking_record(booking)

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
        now = _utc(now)
        with self._session() as db:
            query = db.query(Booking).filter(Booking.id == booking_id)
            if expected is not None:
                query = query.filter(Booking.status == expected.value)
            if status == BookingStatus.paid and expected == BookingStatus.pending_payment:
                query = query.filter(or_(Booking.expires_at.is_(None), Booking.expires_at > now))

            values = {Booking.status: status.value}
            if status == BookingStatus.paid:
                values.update({
                    Booking.paid_at: now,
                    Booking.expires_at: None,
                    Booking.payment_ref: payment_ref,
                    Booking.payment_gateway: payment_gateway,
                })
                if processed_by is not None:
                    values[Booking.processed_by] = processed_by
            elif status == BookingStatus.cancelled:
                values[Booking.cancelled_at] = now

            updated = query.update(values, synchronize_session=False)
            if not updated:
                if db.query(Booking.id).filter(Booking.id == booking_id).first() is None:
                    raise BookingNotFound(booking_id)
                raise InvalidTransition(f"Booking {booking_id} is no longer {expected.value}")

            if status == BookingStatus.cancelled:
                self._release(db, [booking_id])
            elif status == BookingStatus.paid:
                db.query(SlotClaim).filter(SlotClaim.booking_id == booking_id).update(
                    {SlotClaim.expires_at: None}, synchronize_session=False
                )
            booking = db.query(Booking).filter(Booking.id == booking_id).first()
            return booking_record(booking)

    def find_paid_bookings(self, court_ids: Sequence[UUID], window: Interval) -> List[BookingRecord]:
        with self._session() as db:
            rows = (
                db.query(Booking)
                .filter(
                    Booking.court_id.in_(list(court_ids)),
                    Booking.status == BookingStatus.paid.value,
                    Booking.start_time >= _utc(window.start),
                    Booking.start_time < _utc(window.end),
                )
                .order_by(Booking.start_time)
                .all()
            )
            return [booking_record(b) for b in rows]

    def delete_expired_pending(self, now: datetime) -> int:
        with self._session() as db:
            ids = [
                row.id for row in db.query(Booking.id).filter(
                    Booking.status == BookingStatus.pending_payment.value,
                    Booking.expires_at <= _utc(now),
                )
            ]
            if not ids:
                return 0
            self._release(db, ids)
            db.query(Booking).filter(Booking.id.in_(ids)).delete(synchronize_session=False)
            return len(ids)

    # ------------------------------------------------------------------
    # Maintenance windows
    # ------------------------------------------------------------------

    def list_maintenance_windows(
        self,
        now: datetime,
        court_id: Optional[UUID] = None,
        emergency_only: bool = False,
    ) -> List[ClosureWindow]:
        with self._session() as db:
            query = db.query(MaintenanceWindow).filter(
                MaintenanceWindow.is_active.is_(True),
                # Emergency windows stay in force past their end until reopened
                or_(MaintenanceWindow.is_emergency.is_(True), MaintenanceWindow.end_time > _utc(now)),
            )
            if court_id is not None:
                query = query.filter(or_(
                    MaintenanceWindow.court_id == court_id,
                    MaintenanceWindow.all_courts.is_(True),
                ))
            if emergency_only:
                query = query.filter(MaintenanceWindow.is_emergency.is_(True))
            return [window_record(w) for w in query.order_by(MaintenanceWindow.start_time).all()]

    def get_maintenance_window(self, window_id: UUID) -> Optional[ClosureWindow]:
        with self._session() as db:
            window = db.query(MaintenanceWindow).filter(MaintenanceWindow.id == window_id).first()
            return window_record(window) if window else None

    def insert_maintenance_window(self, window: ClosureWindow) -> ClosureWindow:
        with self._session() as db:
            row = MaintenanceWindow(
                court_id=window.court_id,
                all_courts=window.all_courts,
                start_time=_utc(window.start),
                end_time=_utc(window.end),
                reason=window.reason,
                is_active=window.is_active,
                is_emergency=window.is_emergency,
                expected_reopening=_utc(window.expected_reopening),
                created_by=window.created_by,
            )
            db.add(row)
            db.flush()
            db.refresh(row)
            return window_record(row)

    def update_maintenance_window(self, window_id: UUID, is_active: bool, now: datetime) -> ClosureWindow:
        with self._session() as db:
            row = db.query(MaintenanceWindow).filter(MaintenanceWindow.id == window_id).first()
            if row is None:
                raise ClosureNotFound(window_id)
            row.is_active = is_active
            if not is_active:
                row.reopened_at = _utc(now)
            db.flush()
            return window_record(row)

    def deactivate_elapsed_windows(self, now: datetime) -> int:
        with self._session() as db:
            return (
                db.query(MaintenanceWindow)
                .filter(
                    MaintenanceWindow.is_active.is_(True),
                    MaintenanceWindow.is_emergency.is_(False),
                    MaintenanceWindow.end_time <= _utc(now),
                )
                .update({MaintenanceWindow.is_active: False}, synchronize_session=False)
            )

    # ------------------------------------------------------------------
    # Affected bookings
    # ------------------------------------------------------------------

    def insert_affected_bookings(self, maintenance_id: UUID, booking_ids: Sequence[UUID]) -> List[AffectedLink]:
        with self._session() as db:
            rows = [AffectedBooking(booking_id=b, maintenance_id=maintenance_id) for b in booking_ids]
            db.add_all(rows)
            db.flush()
            return [link_record(r) for r in rows]

    def get_affected_booking(self, booking_id: UUID) -> Optional[AffectedLink]:
        with self._session() as db:
            link = (
                db.query(AffectedBooking)
                .filter(AffectedBooking.booking_id == booking_id)
                .order_by(AffectedBooking.created_at.desc())
                .first()
            )
            return link_record(link) if link else None

    def list_affected_for_user(self, user_id: UUID) -> List[AffectedLink]:
        with self._session() as db:
            rows = (
                db.query(AffectedBooking)
                .join(Booking, Booking.id == AffectedBooking.booking_id)
                .filter(Booking.user_id == user_id, AffectedBooking.rescheduled.is_(False))
                .all()
            )
            return [link_record(r) for r in rows]

    def mark_affected_rescheduled(self, link_id: UUID, now: datetime) -> None:
        with self._session() as db:
            db.query(AffectedBooking).filter(AffectedBooking.id == link_id).update(
                {AffectedBooking.rescheduled: True, AffectedBooking.rescheduled_at: _utc(now)},
                synchronize_session=False,
            )


class SqlRuleSource:
    """Booking rules per sport type; a missing row means the defaults apply."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def get_rule_set(self, sport_type: SportType) -> Optional[RuleSet]:
        db = self.session_factory()
        try:
            rule = db.query(BookingRule).filter(BookingRule.sport_type == sport_type).first()
            return rule_record(rule) if rule else None
        except (OperationalError, PoolTimeoutError) as exc:
            logger.exception("Booking rules unavailable.")
            raise StoreUnavailable("The booking store did not respond, try again") from exc
        finally:
            db.close()
