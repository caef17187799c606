import math
from datetime import date
from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from courtside.api.deps import actor_for, get_current_staff_user, get_lifecycle
from courtside.api.errors import raise_http
from courtside.api.serializers import serialize_booking
from courtside.core.clock import facility_timezone
from courtside.db.session import get_db
from courtside.db.store import booking_record
from courtside.models.booking import Booking
from courtside.models.user import User
from courtside.scheduling import calendar
from courtside.scheduling.errors import SchedulingError
from courtside.scheduling.lifecycle import BookingLifecycle
from courtside.schemas.booking import Booking as BookingSchema, CashBookingCreate, SweepResult
from courtside.schemas.common import PaginatedResponse

router = APIRouter(prefix="/admin/bookings", tags=["Admin - Bookings"])


# ---------------------------------------------------------------------------
# GET /admin/bookings: every booking, filterable by court and day
# ---------------------------------------------------------------------------


@router.get("/", response_model=PaginatedResponse[BookingSchema])
def list_bookings(
    court_id: Optional[UUID] = Query(None),
    day: Optional[date] = Query(None, alias="date"),
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    query = db.query(Booking)
    if court_id:
        query = query.filter(Booking.court_id == court_id)
    if day:
        bounds = calendar.day_bounds(day, facility_timezone())
        query = query.filter(Booking.start_time >= bounds.start, Booking.start_time < bounds.end)
    if status_filter:
        query = query.filter(Booking.status == status_filter)

    total = query.count()
    rows = query.order_by(Booking.start_time).offset((page - 1) * limit).limit(limit).all()
    return PaginatedResponse(
        data=[serialize_booking(booking_record(b)) for b in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


# ---------------------------------------------------------------------------
# POST /admin/bookings/cash: booking paid at the desk
# ---------------------------------------------------------------------------


@router.post("/cash", response_model=BookingSchema, status_code=status.HTTP_201_CREATED)
def create_cash_booking(
    data: CashBookingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    """Created directly as paid, with the operator recorded as `processed_by`."""
    if not db.query(User).filter(User.id == data.user_id, User.is_active == True).first():
        raise HTTPException(status_code=404, detail="User not found")
    try:
        booking = lifecycle.create_paid(
            data.user_id, data.court_id, data.start_time,
            operator=actor_for(current_user),
            payment_ref=data.payment_ref,
        )
    except SchedulingError as exc:
        raise_http(exc)
    return serialize_booking(booking)


# ---------------------------------------------------------------------------
# POST /admin/bookings/sweep-expired
# ---------------------------------------------------------------------------


@router.post("/sweep-expired", response_model=SweepResult)
def sweep_expired(
    current_user: User = Depends(get_current_staff_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    return SweepResult(deleted=lifecycle.sweep_expired())
