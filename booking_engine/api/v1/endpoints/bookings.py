from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from booking_engine.api.deps import get_scheduling_service
from booking_engine.api.errors import http_error
from booking_engine.models.booking import BookingStatus
from booking_engine.schemas.booking import (
    Booking,
    BookingList,
    BookingRequest,
    BookingStatusCounts,
    BookingStatusUpdate,
    EmployeeAssignment,
)
from booking_engine.services.scheduling import SchedulingService

router = APIRouter()
service_router = APIRouter()


@router.post("/", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingRequest,
    scheduling: SchedulingService = Depends(get_scheduling_service),
):
    """
    Book one slot of a service.

    The booking starts out ``pending``. A refused request answers with the
    failed constraint and, when there are any, the next free slots.
    """
    result = await scheduling.create_booking(request)
    if not result.ok:
        raise http_error(result.error)
    return result.value


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: str,
    scheduling: SchedulingService = Depends(get_scheduling_service),
):
    result = await scheduling.get_booking(booking_id)
    if not result.ok:
        raise http_error(result.error)
    return result.value


@router.patch("/{booking_id}/status", response_model=Booking)
async def change_booking_status(
    booking_id: str,
    update: BookingStatusUpdate,
    scheduling: SchedulingService = Depends(get_scheduling_service),
):
    """Move a booking through its lifecycle; rescheduling needs ``new_start``."""
    result = await scheduling.change_status(
        booking_id,
        update.status,
        update.actor,
        new_start=update.new_start,
        notes=update.notes,
    )
    if not result.ok:
        raise http_error(result.error)
    return result.value


@router.patch("/{booking_id}/employee", response_model=Booking)
async def assign_employee(
    booking_id: str,
    assignment: EmployeeAssignment,
    scheduling: SchedulingService = Depends(get_scheduling_service),
):
    result = await scheduling.assign_employee(
        booking_id, assignment.employee_id, assignment.actor
    )
    if not result.ok:
        raise http_error(result.error)
    return result.value


@service_router.get("/{service_id}/bookings", response_model=BookingList)
async def list_service_bookings(
    service_id: str,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    scheduling: SchedulingService = Depends(get_scheduling_service),
):
    result = await scheduling.list_bookings(service_id, booking_status)
    if not result.ok:
        raise http_error(result.error)
    return BookingList(bookings=result.value, total_count=len(result.value))


@service_router.get("/{service_id}/bookings/stats", response_model=BookingStatusCounts)
async def get_service_booking_stats(
    service_id: str,
    scheduling: SchedulingService = Depends(get_scheduling_service),
):
    """Booking counts per status, for the dashboard tabs."""
    result = await scheduling.status_counts(service_id)
    if not result.ok:
        raise http_error(result.error)
    return result.value
