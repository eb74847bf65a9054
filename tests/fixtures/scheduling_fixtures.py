import asyncio
from datetime import datetime, time
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.locks import LocalKeyedLock
from booking_engine.models.booking import NON_TERMINAL_STATUSES, BookingStatus
from booking_engine.models.service import ServiceRecord
from booking_engine.schemas.booking import Booking
from booking_engine.schemas.scheduling import AvailabilityConfig, DateRange
from booking_engine.services.scheduling import SchedulingService

# Sunday; the following Monday is 2024-01-15 and Wednesday 2024-01-17
NOW = datetime(2024, 1, 14, 8, 0)


class InMemoryBookingStore:
    """BookingStore kept in a dict; yields to the loop like a real driver would."""

    def __init__(self, bookings: list[Booking] = ()):
        self.bookings: dict[str, Booking] = {b.id: b for b in bookings}
        self.update_calls = 0

    async def fetch_non_terminal_bookings(
        self,
        service_id: Optional[str],
        employee_id: Optional[str],
        date_range: DateRange,
    ) -> list[Booking]:
        await asyncio.sleep(0)
        return sorted(
            (
                b
                for b in self.bookings.values()
                if b.status in NON_TERMINAL_STATUSES
                and (service_id is None or b.service_id == service_id)
                and (employee_id is None or b.employee_id == employee_id)
                and b.start_time < date_range.end_datetime
                and b.end_time > date_range.start_datetime
            ),
            key=lambda b: b.start_time,
        )

    async def get(self, booking_id: str) -> Optional[Booking]:
        await asyncio.sleep(0)
        return self.bookings.get(booking_id)

    async def insert(self, booking: Booking) -> Booking:
        await asyncio.sleep(0)
        self.bookings[booking.id] = booking
        return booking

    async def update(self, booking: Booking) -> Booking:
        if booking.id not in self.bookings:
            raise LookupError(f"Booking {booking.id} does not exist")
        self.update_calls += 1
        self.bookings[booking.id] = booking
        return booking

    async def list_for_service(
        self, service_id: str, status: Optional[BookingStatus] = None
    ) -> list[Booking]:
        return sorted(
            (
                b
                for b in self.bookings.values()
                if b.service_id == service_id and (status is None or b.status == status)
            ),
            key=lambda b: b.start_time,
        )


class StaticConfigProvider:
    def __init__(self, configs: dict[str, AvailabilityConfig]):
        self.configs = configs

    async def get_availability_config(
        self, service_id: str
    ) -> Optional[AvailabilityConfig]:
        return self.configs.get(service_id)


def make_booking(
    booking_id: str,
    start: datetime,
    end: datetime,
    service_id: str = "grooming",
    employee_id: Optional[str] = None,
    status: BookingStatus = BookingStatus.CONFIRMED,
    buffer_before: int = 0,
    buffer_after: int = 0,
) -> Booking:
    return Booking(
        id=booking_id,
        service_id=service_id,
        employee_id=employee_id,
        customer_id="customer-1",
        start_time=start,
        end_time=end,
        status=status,
        buffer_before_minutes=buffer_before,
        buffer_after_minutes=buffer_after,
    )


@pytest.fixture
def fixed_clock():
    return lambda: NOW


@pytest.fixture
def mon_wed_config() -> AvailabilityConfig:
    """Two one-hour slots on Mondays and Wednesdays."""
    return AvailabilityConfig(
        duration_minutes=60,
        available_days={"monday", "wednesday"},
        start_time=time(9, 0),
        end_time=time(11, 0),
        max_bookings_per_slot=1,
    )


@pytest.fixture
def grooming_config() -> AvailabilityConfig:
    """Weekday grooming with buffers and two employees."""
    return AvailabilityConfig(
        duration_minutes=60,
        available_days=["monday", "tuesday", "wednesday", "thursday", "friday"],
        start_time=time(9, 0),
        end_time=time(17, 0),
        max_bookings_per_slot=1,
        buffer_before_minutes=15,
        buffer_after_minutes=30,
        advance_booking_days=30,
        assigned_employees=["emp-1", "emp-2"],
    )


@pytest.fixture
def class_config() -> AvailabilityConfig:
    """Group training class that takes three dogs per slot."""
    return AvailabilityConfig(
        duration_minutes=60,
        available_days=["saturday", "monday"],
        start_time=time(10, 0),
        end_time=time(12, 0),
        max_bookings_per_slot=3,
    )


@pytest.fixture
def booking_store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


@pytest.fixture
def config_provider(mon_wed_config, grooming_config, class_config):
    return StaticConfigProvider(
        {
            "walk": mon_wed_config,
            "grooming": grooming_config,
            "training": class_config,
        }
    )


@pytest.fixture
def scheduling_service(booking_store, config_provider, fixed_clock):
    return SchedulingService(
        store=booking_store,
        config_provider=config_provider,
        lock=LocalKeyedLock(),
        clock=fixed_clock,
    )


@pytest.fixture
async def walk_service(db: AsyncSession) -> ServiceRecord:
    """Dog walk offered on Monday and Wednesday mornings."""
    service = ServiceRecord(
        id="walk",
        company_id="company-1",
        name="Morning walk",
        duration_minutes=60,
        available_days=["monday", "wednesday"],
        start_time=time(9, 0),
        end_time=time(11, 0),
        max_bookings_per_slot=1,
    )
    db.add(service)
    await db.commit()
    await db.refresh(service)
    return service


@pytest.fixture
async def grooming_service(db: AsyncSession) -> ServiceRecord:
    service = ServiceRecord(
        id="grooming",
        company_id="company-1",
        name="Full grooming",
        duration_minutes=60,
        available_days=["monday", "tuesday", "wednesday", "thursday", "friday"],
        start_time=time(9, 0),
        end_time=time(17, 0),
        buffer_before_minutes=15,
        buffer_after_minutes=30,
        assigned_employees=["emp-1", "emp-2"],
        timezone="UTC",
    )
    db.add(service)
    await db.commit()
    await db.refresh(service)
    return service
