from typing import Optional, Protocol

import structlog
from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import settings
from booking_engine.models.booking import (
    NON_TERMINAL_STATUSES,
    BookingRecord,
    BookingStatus,
)
from booking_engine.models.service import ServiceRecord
from booking_engine.schemas.booking import Booking
from booking_engine.schemas.scheduling import AvailabilityConfig, DateRange

logger = structlog.get_logger(__name__)


class BookingStore(Protocol):
    """Persistence for bookings; every call is one transaction."""

    async def fetch_non_terminal_bookings(
        self,
        service_id: Optional[str],
        employee_id: Optional[str],
        date_range: DateRange,
    ) -> list[Booking]: ...

    async def get(self, booking_id: str) -> Optional[Booking]: ...

    async def insert(self, booking: Booking) -> Booking: ...

    async def update(self, booking: Booking) -> Booking: ...

    async def list_for_service(
        self, service_id: str, status: Optional[BookingStatus] = None
    ) -> list[Booking]: ...


class ServiceConfigProvider(Protocol):
    async def get_availability_config(
        self, service_id: str
    ) -> Optional[AvailabilityConfig]: ...


def _record_values(booking: Booking) -> dict:
    values = booking.model_dump()
    if values["created_at"] is None:
        # Leave it to the server default
        values.pop("created_at")
    values["status"] = booking.status.value
    values["previous_status"] = (
        booking.previous_status.value if booking.previous_status else None
    )
    return values


class SQLAlchemyBookingStore:
    """Booking store backed by the ``bookings`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_non_terminal_bookings(
        self,
        service_id: Optional[str],
        employee_id: Optional[str],
        date_range: DateRange,
    ) -> list[Booking]:
        """
        Non-terminal bookings intersecting ``date_range``.

        ``service_id=None`` returns the employee's bookings across all
        services; ``employee_id=None`` returns the whole service.
        """
        conditions = [
            BookingRecord.status.in_([s.value for s in NON_TERMINAL_STATUSES]),
            BookingRecord.start_time < date_range.end_datetime,
            BookingRecord.end_time > date_range.start_datetime,
        ]
        if service_id is not None:
            conditions.append(BookingRecord.service_id == service_id)
        if employee_id is not None:
            conditions.append(BookingRecord.employee_id == employee_id)

        query = (
            select(BookingRecord)
            .where(and_(*conditions))
            .order_by(BookingRecord.start_time)
        )
        result = await self.db.execute(query)
        return [Booking.model_validate(row) for row in result.scalars().all()]

    async def get(self, booking_id: str) -> Optional[Booking]:
        record = await self.db.get(BookingRecord, booking_id)
        if record is None:
            return None
        return Booking.model_validate(record)

    async def insert(self, booking: Booking) -> Booking:
        record = BookingRecord(**_record_values(booking))
        try:
            self.db.add(record)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to insert booking", booking_id=booking.id, exc_info=e)
            raise

        await self.db.refresh(record)
        return Booking.model_validate(record)

    async def update(self, booking: Booking) -> Booking:
        record = await self.db.get(BookingRecord, booking.id)
        if record is None:
            raise LookupError(f"Booking {booking.id} does not exist")

        try:
            for field, value in _record_values(booking).items():
                if field != "id":
                    setattr(record, field, value)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to update booking", booking_id=booking.id, exc_info=e)
            raise

        await self.db.refresh(record)
        return Booking.model_validate(record)

    async def list_for_service(
        self, service_id: str, status: Optional[BookingStatus] = None
    ) -> list[Booking]:
        query = select(BookingRecord).where(BookingRecord.service_id == service_id)
        if status is not None:
            query = query.where(BookingRecord.status == status.value)
        query = query.order_by(BookingRecord.start_time)

        result = await self.db.execute(query)
        return [Booking.model_validate(row) for row in result.scalars().all()]


class SQLAlchemyServiceConfigProvider:
    """Builds AvailabilityConfig snapshots from the ``services`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_availability_config(
        self, service_id: str
    ) -> Optional[AvailabilityConfig]:
        service = await self.db.get(ServiceRecord, service_id)
        if service is None:
            return None

        return AvailabilityConfig(
            duration_minutes=service.duration_minutes,
            available_days=service.available_days or [],
            start_time=service.start_time,
            end_time=service.end_time,
            max_bookings_per_slot=service.max_bookings_per_slot,
            buffer_before_minutes=service.buffer_before_minutes,
            buffer_after_minutes=service.buffer_after_minutes,
            advance_booking_days=service.advance_booking_days,
            assigned_employees=service.assigned_employees or [],
            timezone=service.timezone or settings.DEFAULT_TIMEZONE,
            is_active=service.is_active,
        )
