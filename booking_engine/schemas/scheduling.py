from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import FrozenSet, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from booking_engine.core.config import settings


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, d: date) -> "Weekday":
        return _WEEKDAYS_BY_INDEX[d.weekday()]


_WEEKDAYS_BY_INDEX = list(Weekday)


class AvailabilityConfig(BaseModel):
    """Scheduling parameters of one service, validated once at the boundary."""

    model_config = ConfigDict(frozen=True)

    duration_minutes: int = Field(..., gt=0)
    available_days: FrozenSet[Weekday] = Field(default_factory=frozenset)
    start_time: time = time(9, 0)
    end_time: time = time(17, 0)
    max_bookings_per_slot: int = Field(1, ge=1)
    buffer_before_minutes: int = Field(0, ge=0)
    buffer_after_minutes: int = Field(0, ge=0)
    advance_booking_days: int = Field(30, ge=0)
    assigned_employees: FrozenSet[str] = Field(default_factory=frozenset)
    timezone: str = Field(default_factory=lambda: settings.DEFAULT_TIMEZONE)
    is_active: bool = True

    @field_validator("available_days", mode="before")
    @classmethod
    def normalize_days(cls, v):
        if isinstance(v, str):
            v = [v]
        return frozenset(d.lower() if isinstance(d, str) else d for d in v)

    @field_validator("assigned_employees", mode="before")
    @classmethod
    def normalize_employees(cls, v):
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [v]
        return frozenset(str(e) for e in v if str(e).strip())

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @model_validator(mode="after")
    def validate_working_hours(self):
        if self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    def to_local(self, dt: datetime) -> datetime:
        """Convert an aware datetime to naive company wall-clock time.

        Naive datetimes are taken to already be company wall-clock time.
        """
        if dt.tzinfo is None:
            return dt
        return dt.astimezone(ZoneInfo(self.timezone)).replace(tzinfo=None)

    def local_now(self, now: Optional[datetime] = None) -> datetime:
        """Wall-clock time in the company timezone, without tzinfo."""
        if now is None:
            now = datetime.now(ZoneInfo(self.timezone))
        return self.to_local(now)


class DateRange(BaseModel):
    """Half-open date window ``[start, end)``."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    def __contains__(self, d: date) -> bool:
        return self.start <= d < self.end

    def days(self):
        current = self.start
        while current < self.end:
            yield current
            current += timedelta(days=1)

    @property
    def start_datetime(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def end_datetime(self) -> datetime:
        return datetime.combine(self.end, time.min)


class AvailableSlot(BaseModel):
    start_time: datetime
    end_time: datetime
    remaining_capacity: int
    employee_id: Optional[str] = None


class AvailableSlotList(BaseModel):
    service_id: str
    range_start: date
    range_end: date
    slots: list[AvailableSlot] = Field(default_factory=list)
