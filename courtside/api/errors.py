from fastapi import HTTPException, status

from courtside.scheduling.errors import (
    BookingNotFound,
    BookingRejected,
    ClosureNotFound,
    ClosurePlanChanged,
    CourtNotFound,
    InvalidClosure,
    InvalidRecurrence,
    NotBookingOwner,
    SchedulingError,
    StoreUnavailable,
    TransferRejected,
)
from courtside.schemas.common import BookingRejectedError

NOT_FOUND = (BookingNotFound, CourtNotFound, ClosureNotFound)
UNPROCESSABLE = (InvalidRecurrence, InvalidClosure)


def http_error(exc: SchedulingError) -> HTTPException:
    """Translate an engine error into the HTTPException a router raises."""
    if isinstance(exc, BookingRejected):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=BookingRejectedError(
                error="booking_rejected", reason=exc.reason.value, message=str(exc)
            ).model_dump(),
        )
    if isinstance(exc, TransferRejected):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "transfer_rejected",
                "message": str(exc),
                "rejected": [
                    {"booking_id": str(booking_id), "reason": reason.value}
                    for booking_id, reason in exc.rejected
                ],
            },
        )
    if isinstance(exc, ClosurePlanChanged):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "closure_plan_changed",
                "message": str(exc),
                "added": [str(booking_id) for booking_id in exc.added],
                "removed": [str(booking_id) for booking_id in exc.removed],
            },
        )
    if isinstance(exc, NOT_FOUND):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, NotBookingOwner):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, UNPROCESSABLE):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def raise_http(exc: SchedulingError):
    # StoreUnavailable goes to the app-level 503 handler untouched
    if isinstance(exc, StoreUnavailable):
        raise exc
    raise http_error(exc) from exc
