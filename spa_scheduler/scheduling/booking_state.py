"""
Booking status transitions.

Every transition is listed explicitly. Anything not in the table is
rejected with an error naming the triggers that are allowed from the
booking's current status.

Usage:
    new_status = next_status(BookingStatus.PENDING, BookingTrigger.PAYMENT_VERIFIED)
    assert new_status == BookingStatus.CONFIRMED
"""

from dataclasses import dataclass
from enum import Enum

from spa_scheduler.errors import InvalidStateError
from spa_scheduler.logging_context import get_request_logger
from spa_scheduler.schemas.booking_schema import BookingStatus

logger = get_request_logger(__name__)


class BookingTrigger(str, Enum):
    """Events that move a booking between statuses."""
    PAYMENT_VERIFIED = "payment_verified"
    ADMIN_CONFIRMED = "admin_confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: BookingStatus
    to_status: BookingStatus
    trigger: BookingTrigger


TRANSITIONS: list[Transition] = [
    Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingTrigger.PAYMENT_VERIFIED),
    Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingTrigger.ADMIN_CONFIRMED),
    Transition(BookingStatus.PENDING, BookingStatus.CANCELLED, BookingTrigger.CANCELLED),
    Transition(BookingStatus.PENDING, BookingStatus.CANCELLED, BookingTrigger.EXPIRED),
]

TERMINAL_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED})


def valid_triggers(status: BookingStatus) -> list[BookingTrigger]:
    """Return all triggers valid from ``status``."""
    return [t.trigger for t in TRANSITIONS if t.from_status == status]


def next_status(status: BookingStatus, trigger: BookingTrigger) -> BookingStatus:
    """
    Resolve a status transition.

    Raises:
        InvalidStateError: If no transition exists for ``trigger`` from ``status``.
    """
    for t in TRANSITIONS:
        if t.from_status == status and t.trigger == trigger:
            logger.debug(
                "Booking transition: %s -> %s (trigger: %s)",
                status.value, t.to_status.value, trigger.value,
            )
            return t.to_status

    valid = [t.value for t in valid_triggers(status)]
    raise InvalidStateError(
        f"No valid transition from '{status.value}' "
        f"with trigger '{trigger.value}'. Valid triggers: {valid}"
    )


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES
