"""
SpaScheduler: the public face of the scheduling core.

Wires a store, a calendar, a notification bus, and a payment verifier into
the availability engine, booking admission, blocking manager, and catalog,
and runs every operation under a request id for log correlation.

Usage:
    scheduler = SpaScheduler(MemoryStore())
    slots = scheduler.get_availability(date(2024, 6, 1), 60)
    booking = scheduler.create_booking({...})
"""

from datetime import date, datetime
from typing import Any, Optional, Union

from spa_scheduler.config import AppConfig, settings
from spa_scheduler.logging_context import get_request_logger, request_scope
from spa_scheduler.notifications import NotificationBus
from spa_scheduler.payments import PaymentVerifier
from spa_scheduler.scheduling.admission import BookingService, Clock
from spa_scheduler.scheduling.availability import AvailabilityEngine
from spa_scheduler.scheduling.blocking import BlockingManager
from spa_scheduler.scheduling.calendar import OperatingCalendar
from spa_scheduler.scheduling.catalog import CatalogManager
from spa_scheduler.schemas.booking_schema import (
    AvailableSlot,
    BlockedTimeSlot,
    Booking,
    BookingRequest,
)
from spa_scheduler.store.base import SchedulerStore
from spa_scheduler.utils import utcnow

logger = get_request_logger(__name__)


class SpaScheduler:
    def __init__(
        self,
        store: SchedulerStore,
        calendar: Optional[OperatingCalendar] = None,
        notifier: Optional[NotificationBus] = None,
        payment_verifier: Optional[PaymentVerifier] = None,
        config: Optional[AppConfig] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config or settings
        self.store = store
        self.calendar = calendar or OperatingCalendar.from_config(self.config.calendar)
        self.notifier = notifier or NotificationBus()
        self.engine = AvailabilityEngine(store, self.calendar)
        self.bookings = BookingService(
            store,
            self.engine,
            notifier=self.notifier,
            payment_verifier=payment_verifier,
            config=self.config.booking,
            clock=clock,
        )
        self.blocking = BlockingManager(store, self.engine, notifier=self.notifier, clock=clock)
        self.catalog = CatalogManager(store, notifier=self.notifier)
        logger.debug(
            "Scheduler ready: %s-%s every %d min, store=%s",
            self.calendar.open_time, self.calendar.last_start,
            self.calendar.granularity_minutes, type(store).__name__,
        )

    # ------------------------------------------------------------------ #
    # Availability
    # ------------------------------------------------------------------ #

    def get_availability(self, day: date, duration_minutes: int) -> list[AvailableSlot]:
        with request_scope():
            return self.engine.find_available_slots(day, duration_minutes)

    def get_technician_availability(
        self, technician_id: int, day: date, duration_minutes: Optional[int] = None
    ) -> list[str]:
        with request_scope():
            return self.engine.find_technician_availability(technician_id, day, duration_minutes)

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def create_booking(self, request: Union[BookingRequest, dict[str, Any]]) -> Booking:
        with request_scope():
            return self.bookings.create_booking(request)

    def verify_payment(self, booking_id: int, payment_method: Optional[str] = None) -> Booking:
        with request_scope():
            return self.bookings.verify_payment(booking_id, payment_method)

    def confirm_booking(self, booking_id: int, payment_method: Optional[str] = None) -> Booking:
        with request_scope():
            return self.bookings.confirm_booking(booking_id, payment_method)

    def cancel_booking(self, booking_id: int, reason: Optional[str] = None) -> Booking:
        with request_scope():
            return self.bookings.cancel_booking(booking_id, reason)

    def expire_stale_pending_bookings(self, now: Optional[datetime] = None) -> list[Booking]:
        with request_scope():
            return self.bookings.expire_stale_pending_bookings(now)

    def get_booking(self, booking_id: int) -> Booking:
        return self.bookings.get_booking(booking_id)

    def lookup_booking_by_code(self, code: str) -> Booking:
        with request_scope():
            return self.bookings.lookup_booking_by_code(code)

    def list_bookings(self, day: Optional[date] = None) -> list[Booking]:
        return self.bookings.list_bookings(day)

    # ------------------------------------------------------------------ #
    # Blocks
    # ------------------------------------------------------------------ #

    def block_time(
        self,
        technician_id: int,
        block_date: date,
        start_time: str,
        end_time: str,
        reason: Optional[str] = None,
    ) -> BlockedTimeSlot:
        with request_scope():
            return self.blocking.block_time(technician_id, block_date, start_time, end_time, reason)

    def unblock_time(self, slot_id: int) -> BlockedTimeSlot:
        with request_scope():
            return self.blocking.unblock_time(slot_id)

    def list_blocks(
        self, block_date: Optional[date] = None, technician_id: Optional[int] = None
    ) -> list[BlockedTimeSlot]:
        return self.blocking.list_blocks(block_date, technician_id)
