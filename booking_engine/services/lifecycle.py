"""
Booking status state machine.

The transition table is keyed by every ``BookingStatus`` member; terminal
states map to an empty set. ``transition`` never mutates its input and
returns a new Booking with status, times and audit fields changed together.
"""

from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from booking_engine.core.exceptions import (
    IllegalTransitionError,
    Result,
    TerminalStateError,
    TransitionError,
)
from booking_engine.models.booking import TERMINAL_STATUSES, BookingStatus
from booking_engine.schemas.booking import Booking

ALLOWED_TRANSITIONS: Mapping[BookingStatus, frozenset] = MappingProxyType(
    {
        BookingStatus.PENDING: frozenset(
            {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.REJECTED}
        ),
        BookingStatus.CONFIRMED: frozenset(
            {
                BookingStatus.IN_PROGRESS,
                BookingStatus.CANCELLED,
                BookingStatus.RESCHEDULED,
            }
        ),
        BookingStatus.IN_PROGRESS: frozenset(
            {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
        ),
        BookingStatus.RESCHEDULED: frozenset(
            {BookingStatus.CONFIRMED, BookingStatus.CANCELLED}
        ),
        BookingStatus.COMPLETED: frozenset(),  # Final state
        BookingStatus.CANCELLED: frozenset(),  # Final state
        BookingStatus.REJECTED: frozenset(),  # Final state
    }
)


class BookingLifecycle:
    """Validates and applies booking status transitions."""

    def __init__(self, transitions: Mapping[BookingStatus, frozenset] = None):
        self.transitions = transitions or ALLOWED_TRANSITIONS

    def is_terminal(self, status: BookingStatus) -> bool:
        return status in TERMINAL_STATUSES

    def allowed_targets(self, status: BookingStatus) -> frozenset:
        return self.transitions[status]

    def check(
        self, current: BookingStatus, target: BookingStatus
    ) -> Optional[TransitionError]:
        if self.is_terminal(current):
            return TerminalStateError(
                f"Booking is already {current.value}",
                current_status=current.value,
                target_status=target.value,
            )
        if target not in self.allowed_targets(current):
            return IllegalTransitionError(
                f"Cannot transition from {current.value} to {target.value}",
                current_status=current.value,
                target_status=target.value,
            )
        return None

    def transition(
        self,
        booking: Booking,
        target: BookingStatus,
        actor: Optional[str] = None,
        *,
        now: datetime,
        new_start: Optional[datetime] = None,
        new_end: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Result[Booking]:
        """Return ``booking`` moved to ``target``, or the reason it cannot move."""
        error = self.check(booking.status, target)
        if error:
            return Result.failure(error)

        changes = {
            "status": target,
            "previous_status": booking.status,
            "status_changed_at": now,
            "status_changed_by": actor,
            "status_notes": notes,
        }

        if target == BookingStatus.RESCHEDULED:
            if new_start is None or new_end is None or new_end <= new_start:
                return Result.failure(
                    IllegalTransitionError(
                        "Rescheduling requires a new start and end time",
                        current_status=booking.status.value,
                        target_status=target.value,
                    )
                )
            changes.update(
                start_time=new_start,
                end_time=new_end,
                rescheduled_from=booking.start_time,
                reschedule_count=booking.reschedule_count + 1,
            )

        return Result.success(booking.model_copy(update=changes))


booking_lifecycle = BookingLifecycle()
