import uuid
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from booking_engine.core.config import settings
from booking_engine.core.exceptions import (
    BookingNotFoundError,
    ConflictError,
    EmployeeNotAssignedError,
    Result,
    ServiceNotFoundError,
    TerminalStateError,
)
from booking_engine.core.locks import KeyedLock, LocalKeyedLock, booking_lock_keys
from booking_engine.models.booking import BookingStatus
from booking_engine.schemas.booking import Booking, BookingRequest, BookingStatusCounts
from booking_engine.schemas.scheduling import (
    AvailabilityConfig,
    AvailableSlot,
    DateRange,
)
from booking_engine.services.conflicts import (
    ConflictChecker,
    capacity_scope,
    conflict_checker,
)
from booking_engine.services.lifecycle import BookingLifecycle, booking_lifecycle
from booking_engine.services.slots import SlotGenerator, slot_generator
from booking_engine.services.store import BookingStore, ServiceConfigProvider

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulingService:
    """Entry point for slot availability, booking creation and status changes.

    Holds no mutable state between calls; all side effects go through the
    booking store.
    """

    def __init__(
        self,
        store: BookingStore,
        config_provider: ServiceConfigProvider,
        lock: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = _utc_now,
        generator: SlotGenerator = slot_generator,
        checker: ConflictChecker = conflict_checker,
        lifecycle: BookingLifecycle = booking_lifecycle,
        max_alternatives: Optional[int] = None,
    ):
        self.store = store
        self.config_provider = config_provider
        self.lock = lock or LocalKeyedLock()
        self.clock = clock
        self.generator = generator
        self.checker = checker
        self.lifecycle = lifecycle
        self.max_alternatives = (
            settings.MAX_ALTERNATIVE_SLOTS
            if max_alternatives is None
            else max_alternatives
        )

    async def get_available_slots(
        self,
        service_id: str,
        range_start: date,
        range_end: date,
        employee_id: Optional[str] = None,
    ) -> Result[list[AvailableSlot]]:
        """Bookable slots of a service in ``[range_start, range_end)``."""
        config_result = await self._load_config(service_id)
        if not config_result.ok:
            return Result.failure(config_result.error)
        config = config_result.value

        if (
            employee_id
            and config.assigned_employees
            and employee_id not in config.assigned_employees
        ):
            return Result.failure(
                EmployeeNotAssignedError(
                    "Employee is not assigned to this service",
                    employee_id=employee_id,
                    service_id=service_id,
                )
            )

        now = config.local_now(self.clock())
        candidates = self.generator.generate(config, range_start, range_end, now)
        if not candidates.ok:
            return Result.failure(candidates.error)

        if not config.is_active:
            return Result.success([])

        fetch_range = self._padded_range(config, range_start, range_end)
        existing = capacity_scope(
            await self.store.fetch_non_terminal_bookings(service_id, None, fetch_range),
            employee_id,
        )
        employee_bookings = []
        if employee_id:
            employee_bookings = await self.store.fetch_non_terminal_bookings(
                None, employee_id, fetch_range
            )

        slots = []
        for start in candidates.value:
            if start < now:
                continue
            remaining = self.checker.remaining_capacity(start, existing, config)
            if remaining <= 0:
                continue
            if employee_id and (
                self.checker.employee_conflict(
                    start, config, employee_id, service_id, employee_bookings
                )
                is not None
            ):
                continue
            slots.append(
                AvailableSlot(
                    start_time=start,
                    end_time=start + config.duration,
                    remaining_capacity=remaining,
                    employee_id=employee_id,
                )
            )

        logger.debug(
            "Computed available slots",
            service_id=service_id,
            employee_id=employee_id,
            range_start=range_start.isoformat(),
            range_end=range_end.isoformat(),
            slot_count=len(slots),
        )
        return Result.success(slots)

    async def create_booking(self, request: BookingRequest) -> Result[Booking]:
        """Validate and persist a new booking in ``pending`` state."""
        config_result = await self._load_config(request.service_id)
        if not config_result.ok:
            return Result.failure(config_result.error)
        config = config_result.value

        start = config.to_local(request.slot_start)
        now = config.local_now(self.clock())

        stored = None
        async with self.lock.hold(
            *booking_lock_keys(request.service_id, request.employee_id)
        ):
            validation = await self._validate_slot(config, request, now)
            if validation.ok:
                booking = Booking(
                    id=str(uuid.uuid4()),
                    service_id=request.service_id,
                    employee_id=request.employee_id,
                    customer_id=request.customer_id,
                    start_time=start,
                    end_time=start + config.duration,
                    status=BookingStatus.PENDING,
                    notes=request.notes,
                    buffer_before_minutes=config.buffer_before_minutes,
                    buffer_after_minutes=config.buffer_after_minutes,
                    status_changed_at=now,
                    status_changed_by=request.customer_id,
                    created_at=now,
                )
                stored = await self.store.insert(booking)

        if not validation.ok:
            await self._attach_alternatives(config, request, validation.error, now)
            logger.info(
                "Booking request rejected",
                service_id=request.service_id,
                employee_id=request.employee_id,
                slot_start=start.isoformat(),
                reason=validation.error.code,
            )
            return Result.failure(validation.error)

        logger.info(
            "Booking created",
            booking_id=stored.id,
            service_id=stored.service_id,
            employee_id=stored.employee_id,
            slot_start=stored.start_time.isoformat(),
        )
        return Result.success(stored)

    async def change_status(
        self,
        booking_id: str,
        target_status: BookingStatus,
        actor: Optional[str] = None,
        *,
        new_start: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Result[Booking]:
        """
        Move a booking to ``target_status``.

        Every change runs under the same serialization boundary as booking
        creation and is checked against the stored status once the lock is
        held. Rescheduling validates the new slot, and confirming a
        rescheduled booking re-validates its slot. A refused change leaves
        the stored booking untouched.
        """
        booking = await self.store.get(booking_id)
        if booking is None:
            return Result.failure(
                BookingNotFoundError("Booking not found", booking_id=booking_id)
            )

        transition_error = self.lifecycle.check(booking.status, target_status)
        if transition_error:
            return Result.failure(transition_error)

        config_result = await self._load_config(booking.service_id)
        if not config_result.ok:
            return Result.failure(config_result.error)
        config = config_result.value
        now = config.local_now(self.clock())

        if target_status == BookingStatus.RESCHEDULED and new_start is None:
            # Let the lifecycle report the missing slot
            return self.lifecycle.transition(booking, target_status, actor, now=now)

        async with self.lock.hold(
            *booking_lock_keys(booking.service_id, booking.employee_id)
        ):
            # Re-read under the lock; a concurrent change may have landed.
            booking = await self.store.get(booking_id)
            transition_error = self.lifecycle.check(booking.status, target_status)
            if transition_error:
                return Result.failure(transition_error)

            needs_slot_check = target_status == BookingStatus.RESCHEDULED or (
                booking.status == BookingStatus.RESCHEDULED
                and target_status == BookingStatus.CONFIRMED
            )
            if not needs_slot_check:
                return await self._apply_transition(
                    booking, target_status, actor, notes=notes, now=now
                )

            start = (
                config.to_local(new_start)
                if target_status == BookingStatus.RESCHEDULED
                else booking.start_time
            )
            request = BookingRequest(
                service_id=booking.service_id,
                customer_id=booking.customer_id,
                employee_id=booking.employee_id,
                slot_start=start,
            )
            validation = await self._validate_slot(
                config, request, now, exclude_booking_id=booking.id
            )
            if not validation.ok:
                logger.info(
                    "Booking slot validation failed",
                    booking_id=booking.id,
                    target_status=target_status.value,
                    slot_start=start.isoformat(),
                    reason=validation.error.code,
                )
                return Result.failure(validation.error)

            return await self._apply_transition(
                booking,
                target_status,
                actor,
                new_start=start,
                new_end=start + config.duration,
                notes=notes,
                now=now,
            )

    async def assign_employee(
        self,
        booking_id: str,
        employee_id: Optional[str],
        actor: Optional[str] = None,
    ) -> Result[Booking]:
        """Assign (or clear) the employee fulfilling a non-terminal booking."""
        booking = await self.store.get(booking_id)
        if booking is None:
            return Result.failure(
                BookingNotFoundError("Booking not found", booking_id=booking_id)
            )
        if booking.is_terminal:
            return Result.failure(self._terminal_error(booking))

        config_result = await self._load_config(booking.service_id)
        if not config_result.ok:
            return Result.failure(config_result.error)
        config = config_result.value
        now = config.local_now(self.clock())

        async with self.lock.hold(*booking_lock_keys(booking.service_id, employee_id)):
            booking = await self.store.get(booking_id)
            if booking.is_terminal:
                return Result.failure(self._terminal_error(booking))

            request = BookingRequest(
                service_id=booking.service_id,
                customer_id=booking.customer_id,
                employee_id=employee_id,
                slot_start=booking.start_time,
            )
            validation = await self._validate_slot(
                config, request, now, exclude_booking_id=booking.id
            )
            if not validation.ok:
                return Result.failure(validation.error)

            updated = await self.store.update(
                booking.model_copy(update={"employee_id": employee_id})
            )

        logger.info(
            "Employee assigned to booking",
            booking_id=booking_id,
            employee_id=employee_id,
            actor=actor,
        )
        return Result.success(updated)

    async def get_booking(self, booking_id: str) -> Result[Booking]:
        booking = await self.store.get(booking_id)
        if booking is None:
            return Result.failure(
                BookingNotFoundError("Booking not found", booking_id=booking_id)
            )
        return Result.success(booking)

    async def list_bookings(
        self, service_id: str, status: Optional[BookingStatus] = None
    ) -> Result[list[Booking]]:
        return Result.success(await self.store.list_for_service(service_id, status))

    async def status_counts(self, service_id: str) -> Result[BookingStatusCounts]:
        """Number of bookings per status, including terminal history."""
        bookings = await self.store.list_for_service(service_id)
        counter = Counter(b.status for b in bookings)
        return Result.success(
            BookingStatusCounts(
                service_id=service_id,
                total=len(bookings),
                counts={status: counter.get(status, 0) for status in BookingStatus},
            )
        )

    async def _apply_transition(
        self,
        booking: Booking,
        target_status: BookingStatus,
        actor: Optional[str],
        *,
        new_start: Optional[datetime] = None,
        new_end: Optional[datetime] = None,
        notes: Optional[str] = None,
        now: datetime,
    ) -> Result[Booking]:
        if target_status != BookingStatus.RESCHEDULED:
            new_start = new_end = None

        result = self.lifecycle.transition(
            booking,
            target_status,
            actor,
            new_start=new_start,
            new_end=new_end,
            notes=notes,
            now=now,
        )
        if not result.ok:
            return result

        updated = await self.store.update(result.value)
        logger.info(
            "Booking status changed",
            booking_id=booking.id,
            from_status=booking.status.value,
            to_status=updated.status.value,
            actor=actor,
        )
        return Result.success(updated)

    async def _load_config(self, service_id: str) -> Result[AvailabilityConfig]:
        config = await self.config_provider.get_availability_config(service_id)
        if config is None:
            return Result.failure(
                ServiceNotFoundError("Service not found", service_id=service_id)
            )
        return Result.success(config)

    async def _validate_slot(
        self,
        config: AvailabilityConfig,
        request: BookingRequest,
        now: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> Result[None]:
        start = config.to_local(request.slot_start)
        fetch_range = self._padded_range(
            config, start.date(), start.date() + timedelta(days=1)
        )

        existing = capacity_scope(
            await self.store.fetch_non_terminal_bookings(
                request.service_id, None, fetch_range
            ),
            request.employee_id,
        )
        employee_bookings = []
        if request.employee_id:
            employee_bookings = await self.store.fetch_non_terminal_bookings(
                None, request.employee_id, fetch_range
            )

        return self.checker.validate_new_booking(
            request,
            existing,
            config,
            now,
            employee_bookings=employee_bookings,
            exclude_booking_id=exclude_booking_id,
        )

    async def _attach_alternatives(
        self,
        config: AvailabilityConfig,
        request: BookingRequest,
        error: ConflictError,
        now: datetime,
    ) -> None:
        """Offer the next free slots after a SlotFull/EmployeeConflict refusal."""
        if not isinstance(error, ConflictError) or self.max_alternatives <= 0:
            return
        if not config.is_active:
            return

        window = self.generator.window_for(config, now)
        start = config.to_local(request.slot_start)
        search_start = max(window.start, start.date())
        if search_start >= window.end:
            return

        slots = await self.get_available_slots(
            request.service_id, search_start, window.end, request.employee_id
        )
        if slots.ok:
            error.alternative_slots = [
                slot for slot in slots.value if slot.start_time != start
            ][: self.max_alternatives]

    @staticmethod
    def _terminal_error(booking: Booking) -> TerminalStateError:
        return TerminalStateError(
            f"Booking is already {booking.status.value}",
            current_status=booking.status.value,
        )

    @staticmethod
    def _padded_range(
        config: AvailabilityConfig, range_start: date, range_end: date
    ) -> DateRange:
        """Widen a date window so bookings whose buffers spill over day edges are seen."""
        buffer_days = (
            config.buffer_before_minutes + config.buffer_after_minutes
        ) // (24 * 60) + 1
        return DateRange(
            start=range_start - timedelta(days=buffer_days),
            end=max(range_start, range_end) + timedelta(days=buffer_days),
        )
