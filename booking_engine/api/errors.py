from fastapi import HTTPException, status

from booking_engine.core.exceptions import (
    BookingNotFoundError,
    ConflictError,
    OutOfWindowError,
    SchedulingError,
    ServiceNotFoundError,
    TransitionError,
)
from booking_engine.schemas.booking import ConflictDetail


def status_code_for(error: SchedulingError) -> int:
    if isinstance(error, (BookingNotFoundError, ServiceNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, OutOfWindowError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(error, (ConflictError, TransitionError)):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


def http_error(error: SchedulingError) -> HTTPException:
    """HTTPException whose detail names the failed constraint."""
    detail = ConflictDetail(
        code=error.code,
        message=error.message,
        alternative_slots=getattr(error, "alternative_slots", []),
    )
    return HTTPException(
        status_code=status_code_for(error),
        detail={**error.context, **detail.model_dump(mode="json")},
    )
