from fastapi import APIRouter, Depends, status

from courtside.api.deps import actor_for, get_current_staff_user, get_lifecycle
from courtside.api.errors import raise_http
from courtside.api.serializers import serialize_booking
from courtside.models.user import User
from courtside.scheduling.errors import SchedulingError
from courtside.scheduling.lifecycle import BookingLifecycle
from courtside.scheduling.recurrence import intent_from_authoring
from courtside.schemas.booking import FailedOccurrence, SpecialBookingCreate, SpecialBookingResult

router = APIRouter(prefix="/admin/special-bookings", tags=["Admin - Special Bookings"])


@router.post("/", response_model=SpecialBookingResult, status_code=status.HTTP_201_CREATED)
def create_special_booking(
    data: SpecialBookingCreate,
    current_user: User = Depends(get_current_staff_user),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    """
    Book a tournament, class or event, once or as a series.

    - `end_date` set: one occurrence per day from `start_date` to `end_date`.
    - `weekdays` set: those weekdays for `weeks` weeks from `start_date`.
    - Neither: `start_date` only.

    Each occurrence is claimed on its own; days that cannot be booked are
    listed under `failed` and the others are still created.
    """
    try:
        intent = intent_from_authoring(
            data.start_date, weekdays=data.weekdays, weeks=data.weeks, end_date=data.end_date
        )
        result = lifecycle.create_series(
            intent,
            data.court_id,
            data.start_hour,
            data.end_hour,
            title=data.title,
            event_type=data.event_type,
            created_by=actor_for(current_user),
            description=data.description,
            reference_user_id=data.reference_user_id,
        )
    except SchedulingError as exc:
        raise_http(exc)

    return SpecialBookingResult(
        recurrence_tag=result.recurrence_tag,
        created=[serialize_booking(b) for b in result.created],
        failed=[FailedOccurrence(date=f.day, reason=f.reason) for f in result.failed],
    )
