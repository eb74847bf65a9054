from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.database import get_db
from booking_engine.core.locks import build_slot_lock
from booking_engine.services.scheduling import SchedulingService
from booking_engine.services.store import (
    SQLAlchemyBookingStore,
    SQLAlchemyServiceConfigProvider,
)

# Shared by every request so bookings of one service are serialized
slot_lock = build_slot_lock()


async def get_scheduling_service(
    db: AsyncSession = Depends(get_db),
) -> SchedulingService:
    """Scheduling service bound to the request's database session."""
    return SchedulingService(
        store=SQLAlchemyBookingStore(db),
        config_provider=SQLAlchemyServiceConfigProvider(db),
        lock=slot_lock,
    )
