"""Error taxonomy for the scheduling core.

Every error is terminal for the call that raised it. Nothing is retried
inside the core; callers decide whether to re-query and try again.
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for all errors raised by the scheduling core."""


class ValidationError(SchedulingError):
    """Malformed or missing input."""

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class TimeFormatError(ValidationError):
    """A wall-clock string is not a valid "HH:MM" value."""


class DayRolloverError(ValidationError):
    """An interval would run past midnight."""


class ConflictError(SchedulingError):
    """The requested technician/interval is no longer available."""


class NotFoundError(SchedulingError):
    """A referenced technician, service, booking, or block does not exist."""

    def __init__(self, entity: str, key: Any) -> None:
        super().__init__(f"{entity} {key!r} not found")
        self.entity = entity
        self.key = key


class InvalidStateError(SchedulingError):
    """A booking status transition is not permitted."""


class PaymentDeclinedError(SchedulingError):
    """The payment verifier did not confirm the deposit."""


class StoreError(SchedulingError):
    """The persistent store failed."""


class DuplicateBookingCodeError(StoreError):
    """A booking code collided with an existing one."""
