from fastapi import APIRouter

from booking_engine.api.v1.endpoints import bookings, slots

api_router = APIRouter()

# Availability endpoints
api_router.include_router(slots.router, prefix="/services", tags=["slots"])

# Booking endpoints
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
api_router.include_router(
    bookings.service_router, prefix="/services", tags=["bookings"]
)
