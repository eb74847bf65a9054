"""
Candidate slot generation from a service's working pattern.

Pure logic: no store access, no clock. "now" is always passed in, so the
same config and window always produce the same sequence.
"""

from datetime import date, datetime, timedelta
from typing import Iterator, Optional

from booking_engine.core.exceptions import OutOfWindowError, Result
from booking_engine.schemas.scheduling import AvailabilityConfig, DateRange, Weekday


class CandidateSlots:
    """Lazy, finite, restartable sequence of slot start times.

    Each iteration walks the date window again, so the object can be
    consumed any number of times with identical results.
    """

    def __init__(self, config: AvailabilityConfig, date_range: DateRange):
        self.config = config
        self.date_range = date_range

    def __iter__(self) -> Iterator[datetime]:
        if not self.config.available_days:
            return
        for day in self.date_range.days():
            if Weekday.from_date(day) in self.config.available_days:
                yield from day_slots(self.config, day)

    def __repr__(self):
        return (
            f"<CandidateSlots({self.date_range.start} - {self.date_range.end}, "
            f"every {self.config.duration_minutes}min)>"
        )


def day_slots(config: AvailabilityConfig, day: date) -> Iterator[datetime]:
    """Slot starts for a single day; a trailing partial slot is never produced."""
    current = datetime.combine(day, config.start_time)
    day_end = datetime.combine(day, config.end_time)
    while current + config.duration <= day_end:
        yield current
        current += config.duration


class SlotGenerator:
    """Turns an AvailabilityConfig and a date window into candidate slots."""

    def window_for(self, config: AvailabilityConfig, now: datetime) -> DateRange:
        """Bookable dates: from today up to ``advance_booking_days`` (exclusive)."""
        today = config.local_now(now).date()
        return DateRange(
            start=today, end=today + timedelta(days=config.advance_booking_days)
        )

    def generate(
        self,
        config: AvailabilityConfig,
        range_start: date,
        range_end: date,
        now: datetime,
    ) -> Result[CandidateSlots]:
        """
        Candidate slot starts for ``[range_start, range_end)``.

        Fails with OutOfWindowError when the range starts before today or
        ends after the advance booking window.
        """
        window = self.window_for(config, now)

        if range_start < window.start:
            return Result.failure(
                OutOfWindowError(
                    "Requested range starts before today",
                    range_start=range_start.isoformat(),
                    earliest_date=window.start.isoformat(),
                )
            )
        if range_end > window.end:
            return Result.failure(
                OutOfWindowError(
                    f"Requested range exceeds the {config.advance_booking_days}-day "
                    "advance booking window",
                    range_end=range_end.isoformat(),
                    latest_date=window.end.isoformat(),
                )
            )

        return Result.success(
            CandidateSlots(
                config, DateRange(start=range_start, end=max(range_start, range_end))
            )
        )

    def is_aligned(self, config: AvailabilityConfig, start: datetime) -> bool:
        """True if ``start`` is exactly one of the generated slot boundaries."""
        if Weekday.from_date(start.date()) not in config.available_days:
            return False

        day_start = datetime.combine(start.date(), config.start_time)
        day_end = datetime.combine(start.date(), config.end_time)
        offset = start - day_start
        if offset < timedelta(0) or offset % config.duration:
            return False

        return start + config.duration <= day_end

    def check_bookable(
        self, config: AvailabilityConfig, start: datetime, now: datetime
    ) -> Optional[OutOfWindowError]:
        """Window, start-in-the-past and alignment checks for a single slot."""
        local_now = config.local_now(now)
        window = self.window_for(config, now)

        if start.date() not in window:
            return OutOfWindowError(
                "Requested slot is outside the advance booking window",
                slot_start=start.isoformat(),
                earliest_date=window.start.isoformat(),
                latest_date=window.end.isoformat(),
            )
        if start < local_now:
            return OutOfWindowError(
                "Requested slot has already started", slot_start=start.isoformat()
            )
        if not self.is_aligned(config, start):
            return OutOfWindowError(
                "Requested start is not aligned to a slot boundary",
                slot_start=start.isoformat(),
            )
        return None


slot_generator = SlotGenerator()
