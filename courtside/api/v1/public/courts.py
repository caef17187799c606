from datetime import date
from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query

from courtside.api.deps import get_closure_resolver, get_lifecycle
from courtside.api.errors import raise_http
from courtside.api.serializers import serialize_court
from courtside.scheduling.availability import single_available_court
from courtside.scheduling.closures import ClosureResolver
from courtside.scheduling.errors import SchedulingError
from courtside.scheduling.lifecycle import BookingLifecycle
from courtside.scheduling.types import SportType
from courtside.schemas.court import CourtAvailability, CourtList, SlotStatus

router = APIRouter(prefix="/courts", tags=["Courts"])


# ---------------------------------------------------------------------------
# GET /courts: active courts, optionally for one sport
# ---------------------------------------------------------------------------


@router.get("/", response_model=CourtList)
def list_courts(
    sport_type: Optional[SportType] = Query(None),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    courts = [c for c in lifecycle.store.list_courts(sport_type=sport_type) if c.is_active]
    preselected = single_available_court(courts) if sport_type else None
    return CourtList(
        courts=[serialize_court(c) for c in courts],
        preselected_court_id=preselected.id if preselected else None,
    )


# ---------------------------------------------------------------------------
# GET /courts/{court_id}/availability: hour map for one facility day
# ---------------------------------------------------------------------------


@router.get("/{court_id}/availability", response_model=CourtAvailability)
def court_availability(
    court_id: UUID,
    day: date = Query(..., alias="date"),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
    closures: ClosureResolver = Depends(get_closure_resolver),
):
    """
    Every slot of the court on `date` with whether it can be booked and, if
    not, why. Lapsed payment holds and elapsed maintenance windows are
    cleared before the map is built.
    """
    try:
        lifecycle.sweep_expired()
        closures.deactivate_elapsed()
        slots = lifecycle.resolver.day_map(court_id, day)
    except SchedulingError as exc:
        raise_http(exc)

    return CourtAvailability(
        court_id=court_id,
        date=day,
        slots=[
            SlotStatus(
                start_time=s.slot.start,
                end_time=s.slot.end,
                available=s.available,
                reason=s.decision.reason.value if s.decision.reason else None,
            )
            for s in slots
        ],
    )
