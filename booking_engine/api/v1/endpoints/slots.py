from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from booking_engine.api.deps import get_scheduling_service
from booking_engine.api.errors import http_error
from booking_engine.schemas.scheduling import AvailableSlotList
from booking_engine.services.scheduling import SchedulingService

router = APIRouter()


@router.get("/{service_id}/slots", response_model=AvailableSlotList)
async def get_available_slots(
    service_id: str,
    range_start: date = Query(..., alias="from", description="First date (inclusive)"),
    range_end: date = Query(..., alias="to", description="Last date (exclusive)"),
    employee_id: Optional[str] = Query(
        None, description="Only slots this employee can take"
    ),
    scheduling: SchedulingService = Depends(get_scheduling_service),
):
    """
    Get bookable slots of a service between two dates.

    Slots are computed from the service's working days and hours, minus
    slots that already started, are fully booked, or fall inside another
    booking's buffer. Each slot reports how many places are left.
    """
    result = await scheduling.get_available_slots(
        service_id, range_start, range_end, employee_id
    )
    if not result.ok:
        raise http_error(result.error)

    return AvailableSlotList(
        service_id=service_id,
        range_start=range_start,
        range_end=range_end,
        slots=result.value,
    )
