"""
Error taxonomy for slot scheduling and booking transitions.

Every expected failure (a full slot, a busy employee, an illegal status
change) is a subclass of ``SchedulingError``. The scheduling core hands
these back inside a ``Result`` instead of raising them; the API layer maps
``code`` to an HTTP status.
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class SchedulingError(Exception):
    """Base class for all caller-visible scheduling errors."""

    code = "scheduling_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.context}


class ConflictError(SchedulingError):
    """A requested slot cannot be booked.

    ``alternative_slots`` is filled in by the scheduling service with the
    next free slots, when it can find any.
    """

    code = "conflict"

    def __init__(self, message: str, **context: Any):
        super().__init__(message, **context)
        self.alternative_slots: list = []


class OutOfWindowError(ConflictError):
    """Requested date or time is outside the bookable window or not slot-aligned."""

    code = "out_of_window"


class SlotFullError(ConflictError):
    """Capacity for the target slot is already reached."""

    code = "slot_full"


class EmployeeConflictError(ConflictError):
    """The requested employee has an overlapping, buffer-inclusive booking."""

    code = "employee_conflict"


class EmployeeNotAssignedError(EmployeeConflictError):
    """The requested employee is not assigned to the service."""

    code = "employee_not_assigned"


class TransitionError(SchedulingError):
    """A booking status change was refused."""

    code = "transition_error"


class IllegalTransitionError(TransitionError):
    code = "illegal_transition"


class TerminalStateError(TransitionError):
    code = "terminal_state"


class BookingNotFoundError(SchedulingError):
    code = "booking_not_found"


class ServiceNotFoundError(SchedulingError):
    code = "service_not_found"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a scheduling operation: either a value or an error."""

    value: Optional[T] = None
    error: Optional[SchedulingError] = None

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: SchedulingError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value
