from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from courtside.api.deps import get_closure_resolver, get_current_staff_user
from courtside.api.errors import raise_http
from courtside.api.serializers import serialize_outcome, serialize_window
from courtside.core.clock import facility_timezone
from courtside.models.user import User
from courtside.scheduling import calendar
from courtside.scheduling.closures import ClosureRequest, ClosureResolver
from courtside.scheduling.errors import SchedulingError
from courtside.schemas.closure import (
    ClosureCreate,
    ClosureOutcome,
    ClosureReopen,
    ClosureResolve,
    EmergencyClosureCreate,
    MaintenanceWindow,
)

router = APIRouter(prefix="/admin/closures", tags=["Admin - Closures"])


def _request(data: ClosureCreate, current_user: User) -> ClosureRequest:
    tz = facility_timezone()
    return ClosureRequest(
        court_id=data.court_id,
        start=calendar.to_utc(data.start_time, tz),
        end=calendar.to_utc(data.end_time, tz),
        reason=data.reason,
        created_by=current_user.id,
    )


# ---------------------------------------------------------------------------
# GET /admin/closures: active maintenance windows
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[MaintenanceWindow])
def list_closures(
    court_id: Optional[UUID] = Query(None),
    current_user: User = Depends(get_current_staff_user),
    closures: ClosureResolver = Depends(get_closure_resolver),
):
    closures.deactivate_elapsed()
    return [serialize_window(w) for w in closures.active_windows(court_id)]


# ---------------------------------------------------------------------------
# POST /admin/closures: request a planned closure
# ---------------------------------------------------------------------------


@router.post("/", response_model=ClosureOutcome)
def request_closure(
    data: ClosureCreate,
    current_user: User = Depends(get_current_staff_user),
    closures: ClosureResolver = Depends(get_closure_resolver),
):
    """
    Created right away when no paid booking starts inside the window.
    Otherwise nothing is written and the response lists the conflicts and
    the courts they could move to; send the decision to `/resolve`.
    """
    try:
        outcome = closures.request_closure(_request(data, current_user))
    except SchedulingError as exc:
        raise_http(exc)
    return serialize_outcome(outcome)


# ---------------------------------------------------------------------------
# POST /admin/closures/resolve: cancel_all | transfer | abort
# ---------------------------------------------------------------------------


@router.post("/resolve", response_model=ClosureOutcome)
def resolve_closure(
    data: ClosureResolve,
    current_user: User = Depends(get_current_staff_user),
    closures: ClosureResolver = Depends(get_closure_resolver),
):
    """
    Apply the operator's decision. `booking_ids` must be the conflicts
    returned by `POST /admin/closures`; if bookings were added or removed
    since, nothing changes and 409 lists the difference.
    """
    try:
        plan = closures.plan(_request(data, current_user), reviewed=data.booking_ids)
        outcome = closures.resolve(plan, data.resolution, target_court_id=data.target_court_id)
    except SchedulingError as exc:
        raise_http(exc)
    return serialize_outcome(outcome)


# ---------------------------------------------------------------------------
# POST /admin/closures/emergency
# ---------------------------------------------------------------------------


@router.post("/emergency", response_model=ClosureOutcome, status_code=status.HTTP_201_CREATED)
def emergency_closure(
    data: EmergencyClosureCreate,
    current_user: User = Depends(get_current_staff_user),
    closures: ClosureResolver = Depends(get_closure_resolver),
):
    """Closes now until reopened; bookings it hits can be rescheduled by supervisors."""
    expected = calendar.to_utc(data.expected_reopening, facility_timezone()) if data.expected_reopening else None
    try:
        outcome = closures.emergency_closure(
            data.court_id, data.reason, created_by=current_user.id, expected_reopening=expected
        )
    except SchedulingError as exc:
        raise_http(exc)
    return serialize_outcome(outcome)


# ---------------------------------------------------------------------------
# POST /admin/closures/reopen
# ---------------------------------------------------------------------------


@router.post("/reopen", response_model=List[MaintenanceWindow])
def reopen_courts(
    data: ClosureReopen,
    current_user: User = Depends(get_current_staff_user),
    closures: ClosureResolver = Depends(get_closure_resolver),
):
    try:
        reopened = closures.reopen(window_ids=data.window_ids, court_id=data.court_id)
    except SchedulingError as exc:
        raise_http(exc)
    return [serialize_window(w) for w in reopened]
