from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Import enums from the model to avoid duplication
from booking_engine.models.booking import TERMINAL_STATUSES, BookingStatus
from booking_engine.schemas.scheduling import AvailableSlot


class Booking(BaseModel):
    """Immutable booking snapshot exchanged between the store and the core."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    service_id: str
    employee_id: Optional[str] = None
    customer_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.PENDING
    notes: Optional[str] = None

    buffer_before_minutes: int = Field(0, ge=0)
    buffer_after_minutes: int = Field(0, ge=0)

    previous_status: Optional[BookingStatus] = None
    status_changed_at: Optional[datetime] = None
    status_changed_by: Optional[str] = None
    status_notes: Optional[str] = None
    rescheduled_from: Optional[datetime] = None
    reschedule_count: int = 0
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_interval(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class BookingRequest(BaseModel):
    """A customer's request to book one slot of a service."""

    service_id: str
    customer_id: str
    slot_start: datetime
    employee_id: Optional[str] = None
    notes: Optional[str] = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    new_start: Optional[datetime] = None
    notes: Optional[str] = None
    actor: Optional[str] = None

    @model_validator(mode="after")
    def validate_reschedule(self):
        if self.status == BookingStatus.RESCHEDULED and self.new_start is None:
            raise ValueError("new_start is required when rescheduling")
        return self


class EmployeeAssignment(BaseModel):
    employee_id: Optional[str] = None
    actor: Optional[str] = None


class BookingList(BaseModel):
    bookings: list[Booking]
    total_count: int


class BookingStatusCounts(BaseModel):
    service_id: str
    total: int
    counts: dict[BookingStatus, int]


class ConflictDetail(BaseModel):
    """Error payload naming the failed constraint so a client can offer another slot."""

    code: str
    message: str
    alternative_slots: list[AvailableSlot] = Field(default_factory=list)
