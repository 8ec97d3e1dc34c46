"""
Change notifications for viewers of the booking calendar.

The core only knows it has to say "something changed". Whether that goes
out over a WebSocket broadcast, a message queue, or nowhere is decided by
whoever subscribes. Delivery is fire-and-forget and at-most-once: a failing
subscriber is logged and skipped, never allowed to undo a committed write.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_EXPIRED = "booking_expired"
    PAYMENT_VERIFIED = "payment_verified"
    TIME_SLOT_BLOCKED = "time_slot_blocked"
    TIME_SLOT_UNBLOCKED = "time_slot_unblocked"
    TECHNICIAN_CREATED = "technician_created"
    TECHNICIAN_UPDATED = "technician_updated"


Subscriber = Callable[[EventType, dict[str, Any]], None]


class NotificationBus:
    """In-process fan-out to registered subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def notify(self, event_type: EventType, payload: dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            try:
                subscriber(event_type, payload)
            except Exception:
                logger.exception("Subscriber %r failed on %s", subscriber, event_type.value)
        logger.debug("Notified %d subscriber(s) of %s", len(subscribers), event_type.value)


class RecordingSubscriber:
    """Keeps every event it receives. Handy for tests and the console demo."""

    def __init__(self) -> None:
        self.events: list[tuple[EventType, dict[str, Any]]] = []

    def __call__(self, event_type: EventType, payload: dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    def of_type(self, event_type: EventType) -> list[dict[str, Any]]:
        return [payload for kind, payload in self.events if kind == event_type]
