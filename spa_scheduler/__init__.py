"""Availability and conflict-detection core for a spa booking system."""

from spa_scheduler.notifications import EventType, NotificationBus
from spa_scheduler.payments import (
    MockPaymentVerifier,
    PaymentVerifier,
    StaticPaymentVerifier,
    UnconfiguredPaymentVerifier,
)
from spa_scheduler.scheduling import OperatingCalendar, SpaScheduler
from spa_scheduler.store import MemoryStore, SchedulerStore, SqlStore

__all__ = [
    "EventType", "MemoryStore", "MockPaymentVerifier", "NotificationBus",
    "OperatingCalendar", "PaymentVerifier", "SchedulerStore", "SpaScheduler",
    "SqlStore", "StaticPaymentVerifier", "UnconfiguredPaymentVerifier",
]
