import math
from uuid import UUID
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from courtside.api.deps import actor_for, get_current_user, get_lifecycle, verify_payment_callback
from courtside.api.errors import raise_http
from courtside.api.serializers import serialize_booking, serialize_link
from courtside.db.session import get_db
from courtside.db.store import booking_record
from courtside.models.booking import Booking
from courtside.models.user import User
from courtside.scheduling.errors import SchedulingError
from courtside.scheduling.lifecycle import BookingLifecycle
from courtside.scheduling.types import BookingRecord
from courtside.schemas.booking import (
    AffectedBooking,
    Booking as BookingSchema,
    BookingCancelResponse,
    BookingCreate,
    BookingReschedule,
    PaymentConfirm,
)
from courtside.schemas.common import PaginatedResponse

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_visible_booking(booking_id: UUID, current_user: User, lifecycle: BookingLifecycle) -> BookingRecord:
    """A booking the current user owns, or any booking for staff."""
    booking = lifecycle.store.get_booking(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.user_id != current_user.id and not actor_for(current_user).is_staff:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


# ---------------------------------------------------------------------------
# POST /bookings: hold a slot until payment
# ---------------------------------------------------------------------------


@router.post("/", response_model=BookingSchema, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    current_user: User = Depends(get_current_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    """
    Reserve one slot for the current user.

    The booking is created in `pending_payment` and released automatically
    when `expires_at` passes without a payment confirmation. A slot that
    cannot be booked returns 409 with the reject reason.
    """
    try:
        booking = lifecycle.create_pending(current_user.id, data.court_id, data.start_time)
    except SchedulingError as exc:
        raise_http(exc)
    return serialize_booking(booking)


# ---------------------------------------------------------------------------
# GET /bookings: current user's bookings
# ---------------------------------------------------------------------------


@router.get("/", response_model=PaginatedResponse[BookingSchema])
def list_my_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Booking).filter(Booking.user_id == current_user.id)
    if status_filter:
        query = query.filter(Booking.status == status_filter)

    total = query.count()
    rows = (
        query.order_by(Booking.start_time.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return PaginatedResponse(
        data=[serialize_booking(booking_record(b)) for b in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


# ---------------------------------------------------------------------------
# GET /bookings/affected: bookings hit by an emergency closure
# ---------------------------------------------------------------------------


@router.get("/affected", response_model=List[AffectedBooking])
def list_affected_bookings(
    current_user: User = Depends(get_current_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    links = lifecycle.store.list_affected_for_user(current_user.id)
    bookings = {b.id: b for b in lifecycle.store.get_bookings([l.booking_id for l in links])}
    return [serialize_link(link, bookings.get(link.booking_id)) for link in links]


# ---------------------------------------------------------------------------
# GET /bookings/{booking_id}
# ---------------------------------------------------------------------------


@router.get("/{booking_id}", response_model=BookingSchema)
def get_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    return serialize_booking(_load_visible_booking(booking_id, current_user, lifecycle))


# ---------------------------------------------------------------------------
# POST /bookings/{booking_id}/confirm-payment: payment callback
# ---------------------------------------------------------------------------


@router.post(
    "/{booking_id}/confirm-payment",
    response_model=BookingSchema,
    dependencies=[Depends(verify_payment_callback)],
)
def confirm_payment(
    booking_id: UUID,
    data: PaymentConfirm,
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    """
    Called by the payment provider with the `X-Payment-Secret` header.
    Safe to call more than once with the same `payment_ref`.
    """
    try:
        booking = lifecycle.confirm_paid(booking_id, data.payment_ref, data.gateway)
    except SchedulingError as exc:
        raise_http(exc)
    return serialize_booking(booking)


# ---------------------------------------------------------------------------
# PATCH /bookings/{booking_id}/reschedule
# ---------------------------------------------------------------------------


@router.patch("/{booking_id}/reschedule", response_model=BookingSchema)
def reschedule_booking(
    booking_id: UUID,
    data: BookingReschedule,
    current_user: User = Depends(get_current_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    _load_visible_booking(booking_id, current_user, lifecycle)
    try:
        booking = lifecycle.reschedule(
            booking_id, data.start_time, actor_for(current_user), court_id=data.court_id
        )
    except SchedulingError as exc:
        raise_http(exc)
    return serialize_booking(booking)


# ---------------------------------------------------------------------------
# PATCH /bookings/{booking_id}/cancel
# ---------------------------------------------------------------------------


@router.patch("/{booking_id}/cancel", response_model=BookingCancelResponse)
def cancel_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    _load_visible_booking(booking_id, current_user, lifecycle)
    try:
        booking = lifecycle.cancel(booking_id, actor_for(current_user))
    except SchedulingError as exc:
        raise_http(exc)
    return BookingCancelResponse(
        id=booking.id,
        booking_number=booking.booking_number,
        status=booking.status.value,
    )
