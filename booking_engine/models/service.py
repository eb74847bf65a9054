import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, Time
from sqlalchemy.sql import func

from booking_engine.core.database import Base


class ServiceRecord(Base):
    """Service model carrying the availability pattern used for slot generation."""

    __tablename__ = "services"

    # Core identity
    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Availability pattern
    duration_minutes = Column(Integer, nullable=False)
    available_days = Column(JSON, nullable=False, default=list)  # ["monday", ...]
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_bookings_per_slot = Column(Integer, nullable=False, default=1)

    # Buffer management
    buffer_before_minutes = Column(Integer, nullable=False, default=0)  # Setup/prep time
    buffer_after_minutes = Column(Integer, nullable=False, default=0)  # Cleanup time

    advance_booking_days = Column(Integer, nullable=False, default=30)
    assigned_employees = Column(JSON, nullable=False, default=list)
    timezone = Column(String(64), nullable=True)  # Company timezone

    is_active = Column(Boolean, default=True, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=False), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=False), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return (
            f"<ServiceRecord(id={self.id}, name='{self.name}', "
            f"duration={self.duration_minutes}min)>"
        )
