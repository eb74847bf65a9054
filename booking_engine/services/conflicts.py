from datetime import datetime, timedelta
from typing import Iterable, Optional

from booking_engine.core.exceptions import (
    EmployeeConflictError,
    EmployeeNotAssignedError,
    OutOfWindowError,
    Result,
    SlotFullError,
)
from booking_engine.models.booking import NON_TERMINAL_STATUSES
from booking_engine.schemas.booking import Booking, BookingRequest
from booking_engine.schemas.scheduling import AvailabilityConfig
from booking_engine.services.slots import SlotGenerator, slot_generator


def overlaps(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open interval overlap: ``[a_start, a_end)`` and ``[b_start, b_end)``."""
    return a_start < b_end and b_start < a_end


def buffered_interval(booking: Booking) -> tuple[datetime, datetime]:
    """Interval a booking blocks, including its own buffer snapshot."""
    return (
        booking.start_time - timedelta(minutes=booking.buffer_before_minutes),
        booking.end_time + timedelta(minutes=booking.buffer_after_minutes),
    )


def _active(
    bookings: Iterable[Booking], exclude_booking_id: Optional[str] = None
) -> Iterable[Booking]:
    for booking in bookings:
        if booking.status not in NON_TERMINAL_STATUSES:
            continue
        if exclude_booking_id and booking.id == exclude_booking_id:
            continue
        yield booking


def capacity_scope(
    service_bookings: Iterable[Booking], employee_id: Optional[str] = None
) -> list[Booking]:
    """
    Bookings of one service that a request for ``employee_id`` competes with.

    A request without an employee competes with the whole service. A request
    naming an employee competes with that employee's bookings and with the
    unassigned ones.
    """
    if not employee_id:
        return list(service_bookings)
    return [
        booking
        for booking in service_bookings
        if booking.employee_id is None or booking.employee_id == employee_id
    ]


class ConflictChecker:
    """Decides whether a candidate slot can take one more booking."""

    def __init__(self, generator: SlotGenerator = None):
        self.generator = generator or slot_generator

    def occupancy(
        self,
        start: datetime,
        existing: Iterable[Booking],
        config: AvailabilityConfig,
        exclude_booking_id: Optional[str] = None,
    ) -> int:
        """Number of active bookings whose buffered interval touches the slot."""
        end = start + config.duration
        return sum(
            1
            for booking in _active(existing, exclude_booking_id)
            if overlaps(*buffered_interval(booking), start, end)
        )

    def remaining_capacity(
        self,
        start: datetime,
        existing: Iterable[Booking],
        config: AvailabilityConfig,
        exclude_booking_id: Optional[str] = None,
    ) -> int:
        """
        Free places left in the slot starting at ``start``.

        Bookings sharing the exact slot start share capacity. Any other
        booking whose buffered interval overlaps the slot blacks it out
        completely, whatever ``max_bookings_per_slot`` says.
        """
        end = start + config.duration
        same_slot = 0

        for booking in _active(existing, exclude_booking_id):
            if not overlaps(*buffered_interval(booking), start, end):
                continue
            if booking.start_time != start:
                return 0
            same_slot += 1

        return max(config.max_bookings_per_slot - same_slot, 0)

    def capacity_conflict(
        self,
        start: datetime,
        existing: Iterable[Booking],
        config: AvailabilityConfig,
        exclude_booking_id: Optional[str] = None,
    ) -> Optional[SlotFullError]:
        end = start + config.duration
        same_slot = []

        for booking in _active(existing, exclude_booking_id):
            if not overlaps(*buffered_interval(booking), start, end):
                continue
            if booking.start_time != start:
                return SlotFullError(
                    "Slot overlaps the buffer of another booking",
                    slot_start=start.isoformat(),
                    blocking_booking_id=booking.id,
                )
            same_slot.append(booking)

        if len(same_slot) >= config.max_bookings_per_slot:
            return SlotFullError(
                "Slot is fully booked",
                slot_start=start.isoformat(),
                max_bookings_per_slot=config.max_bookings_per_slot,
            )
        return None

    def employee_conflict(
        self,
        start: datetime,
        config: AvailabilityConfig,
        employee_id: str,
        service_id: str,
        employee_bookings: Iterable[Booking],
        exclude_booking_id: Optional[str] = None,
    ) -> Optional[EmployeeConflictError]:
        """
        An employee's buffer is personal: any of their bookings, on any
        service, blocks the candidate. Bookings of the same service at the
        same start are a shared group slot and are left to capacity.
        """
        end = start + config.duration

        for booking in _active(employee_bookings, exclude_booking_id):
            if booking.employee_id != employee_id:
                continue
            if booking.service_id == service_id and booking.start_time == start:
                continue
            if overlaps(*buffered_interval(booking), start, end):
                return EmployeeConflictError(
                    "Employee already has a booking at this time",
                    employee_id=employee_id,
                    slot_start=start.isoformat(),
                    blocking_booking_id=booking.id,
                )
        return None

    def is_slot_available(
        self,
        start: datetime,
        existing: Iterable[Booking],
        config: AvailabilityConfig,
        employee_id: Optional[str] = None,
        service_id: Optional[str] = None,
        employee_bookings: Iterable[Booking] = (),
    ) -> bool:
        if self.capacity_conflict(start, existing, config) is not None:
            return False
        if employee_id and service_id:
            conflict = self.employee_conflict(
                start, config, employee_id, service_id, employee_bookings
            )
            return conflict is None
        return True

    def validate_new_booking(
        self,
        request: BookingRequest,
        existing: Iterable[Booking],
        config: AvailabilityConfig,
        now: datetime,
        employee_bookings: Iterable[Booking] = (),
        exclude_booking_id: Optional[str] = None,
    ) -> Result[None]:
        """
        Check a requested slot against the window, the employee assignment,
        the employee's other bookings and the slot capacity, in that order.
        """
        start = config.to_local(request.slot_start)

        if not config.is_active:
            return Result.failure(
                OutOfWindowError(
                    "Service is not currently bookable",
                    service_id=request.service_id,
                )
            )

        window_error = self.generator.check_bookable(config, start, now)
        if window_error:
            return Result.failure(window_error)

        if request.employee_id:
            if (
                config.assigned_employees
                and request.employee_id not in config.assigned_employees
            ):
                return Result.failure(
                    EmployeeNotAssignedError(
                        "Employee is not assigned to this service",
                        employee_id=request.employee_id,
                        service_id=request.service_id,
                    )
                )

            employee_error = self.employee_conflict(
                start,
                config,
                request.employee_id,
                request.service_id,
                employee_bookings,
                exclude_booking_id,
            )
            if employee_error:
                return Result.failure(employee_error)

        capacity_error = self.capacity_conflict(
            start, existing, config, exclude_booking_id
        )
        if capacity_error:
            return Result.failure(capacity_error)

        return Result.success()


conflict_checker = ConflictChecker()
