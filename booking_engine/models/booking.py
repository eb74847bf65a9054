import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.sql import func

from booking_engine.core.database import Base


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    RESCHEDULED = "rescheduled"


TERMINAL_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REJECTED}
)

NON_TERMINAL_STATUSES = frozenset(set(BookingStatus) - TERMINAL_STATUSES)


class BookingRecord(Base):
    """One reservation of a service slot. Rows are never deleted."""

    __tablename__ = "bookings"

    # Core identity
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    service_id = Column(String(64), nullable=False)
    employee_id = Column(String(64), nullable=True)
    customer_id = Column(String(64), nullable=False)

    # Scheduling details (wall clock in the company timezone)
    start_time = Column(DateTime(timezone=False), nullable=False)
    end_time = Column(DateTime(timezone=False), nullable=False)
    buffer_before_minutes = Column(Integer, nullable=False, default=0)
    buffer_after_minutes = Column(Integer, nullable=False, default=0)

    # Status management
    status = Column(
        String(20), nullable=False, default=BookingStatus.PENDING.value, index=True
    )
    previous_status = Column(String(20), nullable=True)
    status_changed_at = Column(DateTime(timezone=False), nullable=True)
    status_changed_by = Column(String(64), nullable=True)
    status_notes = Column(Text, nullable=True)

    # Rescheduling
    rescheduled_from = Column(DateTime(timezone=False), nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)

    notes = Column(Text, nullable=True)

    # Audit timestamps
    created_at = Column(DateTime(timezone=False), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=False), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_end_after_start"),
        CheckConstraint(
            "buffer_before_minutes >= 0 AND buffer_after_minutes >= 0",
            name="check_non_negative_buffers",
        ),
        CheckConstraint(
            "reschedule_count >= 0", name="check_non_negative_reschedule_count"
        ),
        Index("ix_bookings_service_start", "service_id", "start_time"),
        Index("ix_bookings_employee_start", "employee_id", "start_time"),
    )

    def __repr__(self):
        return (
            f"<BookingRecord(id={self.id}, status='{self.status}', "
            f"start='{self.start_time}', service_id={self.service_id}, "
            f"employee_id={self.employee_id})>"
        )
