from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from courtside.api.deps import get_current_admin_user, get_current_staff_user
from courtside.db.session import get_db
from courtside.models.booking_rule import BookingRule
from courtside.models.user import User
from courtside.scheduling.rules import default_rule_set
from courtside.scheduling.types import SportType
from courtside.schemas.rules import BookingRule as BookingRuleSchema, BookingRuleUpdate

router = APIRouter(prefix="/admin/booking-rules", tags=["Admin - Booking Rules"])


def _minutes(delta) -> int:
    return int(delta.total_seconds() // 60)


def _defaults(sport_type: SportType) -> BookingRuleSchema:
    rule = default_rule_set(sport_type)
    return BookingRuleSchema(
        sport_type=sport_type,
        is_default=True,
        min_advance_notice_minutes=_minutes(rule.min_advance_notice),
        max_days_ahead=rule.max_days_ahead,
        max_active_bookings_per_user=rule.max_active_bookings_per_user,
        allow_consecutive_bookings=rule.allow_consecutive_bookings,
        min_gap_minutes=_minutes(rule.min_gap_between_bookings),
        allow_cancellation=rule.allow_cancellation,
        min_cancellation_minutes=_minutes(rule.min_cancellation_notice),
        allow_rescheduling=rule.allow_rescheduling,
        min_rescheduling_minutes=_minutes(rule.min_rescheduling_notice),
    )


def _serialize(row: BookingRule) -> BookingRuleSchema:
    return BookingRuleSchema(
        sport_type=row.sport_type,
        min_advance_notice_minutes=row.min_advance_notice_minutes,
        max_days_ahead=row.max_days_ahead,
        max_active_bookings_per_user=row.max_active_bookings_per_user,
        allow_consecutive_bookings=row.allow_consecutive_bookings,
        min_gap_minutes=row.min_gap_minutes,
        allow_cancellation=row.allow_cancellation,
        min_cancellation_minutes=row.min_cancellation_minutes,
        allow_rescheduling=row.allow_rescheduling,
        min_rescheduling_minutes=row.min_rescheduling_minutes,
    )


@router.get("/{sport_type}", response_model=BookingRuleSchema)
def get_booking_rules(
    sport_type: SportType,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    row = db.query(BookingRule).filter(BookingRule.sport_type == sport_type).first()
    return _serialize(row) if row else _defaults(sport_type)


@router.put("/{sport_type}", response_model=BookingRuleSchema)
def update_booking_rules(
    sport_type: SportType,
    data: BookingRuleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    row = db.query(BookingRule).filter(BookingRule.sport_type == sport_type).first()
    if not row:
        row = BookingRule(sport_type=sport_type)
        db.add(row)
    for field, value in data.model_dump().items():
        setattr(row, field, value)
    row.updated_by = current_user.id
    db.commit()
    db.refresh(row)
    return _serialize(row)
