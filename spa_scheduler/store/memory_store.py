"""
In-process store for tests, demos, and single-process deployments.

Rows are pydantic models kept in dicts and copied on the way in and out,
so callers can never mutate stored state behind the store's back.
"""

import itertools
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Iterator, Optional, TypeVar

from pydantic import BaseModel

from spa_scheduler.errors import DuplicateBookingCodeError, NotFoundError
from spa_scheduler.schemas.booking_schema import BlockedTimeSlot, Booking, BookingStatus
from spa_scheduler.schemas.catalog_schema import AdditionalService, Service, Technician
from spa_scheduler.store.base import SchedulerStore
from spa_scheduler.time_utils import to_minutes
from spa_scheduler.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _copy(model: M) -> M:
    return model.model_copy(deep=True)


class MemoryStore(SchedulerStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._reservation_guard = threading.Lock()
        # key -> (lock, number of holders and waiters); dropped when the count hits zero
        self._reservation_locks: dict[
            tuple[Optional[int], date], tuple[threading.RLock, int]
        ] = {}
        self._ids: dict[str, Iterator[int]] = defaultdict(lambda: itertools.count(1))
        self._technicians: dict[int, Technician] = {}
        self._services: dict[int, Service] = {}
        self._additional_services: dict[int, AdditionalService] = {}
        self._bookings: dict[int, Booking] = {}
        self._booking_codes: dict[str, int] = {}
        self._blocked_slots: dict[int, BlockedTimeSlot] = {}

    def _next_id(self, table: str) -> int:
        return next(self._ids[table])

    @contextmanager
    def reservation_lock(self, technician_id: Optional[int], day: date) -> Iterator[None]:
        key = (technician_id, day)
        with self._reservation_guard:
            lock, users = self._reservation_locks.get(key, (None, 0))
            if lock is None:
                lock = threading.RLock()
            self._reservation_locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._reservation_guard:
                lock, users = self._reservation_locks[key]
                if users == 1:
                    del self._reservation_locks[key]
                else:
                    self._reservation_locks[key] = (lock, users - 1)

    # ------------------------------------------------------------------ #
    # Technicians
    # ------------------------------------------------------------------ #

    def insert_technician(self, technician: Technician) -> Technician:
        with self._lock:
            row = technician.model_copy(update={"id": self._next_id("technicians")})
            if row.created_at is None:
                row.created_at = utcnow()
            self._technicians[row.id] = row
            return _copy(row)

    def update_technician(self, technician: Technician) -> Technician:
        with self._lock:
            if technician.id not in self._technicians:
                raise NotFoundError("Technician", technician.id)
            self._technicians[technician.id] = _copy(technician)
            return _copy(technician)

    def get_technician(self, technician_id: int) -> Optional[Technician]:
        with self._lock:
            row = self._technicians.get(technician_id)
            return _copy(row) if row is not None else None

    def list_technicians(self) -> list[Technician]:
        with self._lock:
            rows = sorted(self._technicians.values(), key=lambda t: (t.name, t.id))
            return [_copy(t) for t in rows]

    # ------------------------------------------------------------------ #
    # Services
    # ------------------------------------------------------------------ #

    def insert_service(self, service: Service) -> Service:
        with self._lock:
            row = service.model_copy(update={"id": self._next_id("services")})
            self._services[row.id] = row
            return _copy(row)

    def update_service(self, service: Service) -> Service:
        with self._lock:
            if service.id not in self._services:
                raise NotFoundError("Service", service.id)
            self._services[service.id] = _copy(service)
            return _copy(service)

    def get_service(self, service_id: int) -> Optional[Service]:
        with self._lock:
            row = self._services.get(service_id)
            return _copy(row) if row is not None else None

    def list_services(self) -> list[Service]:
        with self._lock:
            return [_copy(s) for s in sorted(self._services.values(), key=lambda s: s.name)]

    def insert_additional_service(self, service: AdditionalService) -> AdditionalService:
        with self._lock:
            row = service.model_copy(update={"id": self._next_id("additional_services")})
            self._additional_services[row.id] = row
            return _copy(row)

    def update_additional_service(self, service: AdditionalService) -> AdditionalService:
        with self._lock:
            if service.id not in self._additional_services:
                raise NotFoundError("AdditionalService", service.id)
            self._additional_services[service.id] = _copy(service)
            return _copy(service)

    def get_additional_service(self, service_id: int) -> Optional[AdditionalService]:
        with self._lock:
            row = self._additional_services.get(service_id)
            return _copy(row) if row is not None else None

    def list_additional_services(self) -> list[AdditionalService]:
        with self._lock:
            rows = sorted(self._additional_services.values(), key=lambda s: s.name)
            return [_copy(s) for s in rows]

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def insert_booking(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.booking_code in self._booking_codes:
                raise DuplicateBookingCodeError(
                    f"Booking code {booking.booking_code} already exists"
                )
            row = booking.model_copy(update={"id": self._next_id("bookings")}, deep=True)
            self._bookings[row.id] = row
            self._booking_codes[row.booking_code] = row.id
            return _copy(row)

    def update_booking_status(
        self, booking_id: int, status: BookingStatus, fields: Optional[dict[str, Any]] = None
    ) -> Booking:
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                raise NotFoundError("Booking", booking_id)
            changes = dict(fields or {})
            changes["status"] = status
            changes.setdefault("updated_at", utcnow())
            row = current.model_copy(update=changes, deep=True)
            self._bookings[booking_id] = row
            return _copy(row)

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        with self._lock:
            row = self._bookings.get(booking_id)
            return _copy(row) if row is not None else None

    def get_booking_by_code(self, code: str) -> Optional[Booking]:
        with self._lock:
            booking_id = self._booking_codes.get(code)
            return _copy(self._bookings[booking_id]) if booking_id is not None else None

    def _sorted_bookings(self, rows: list[Booking]) -> list[Booking]:
        return [
            _copy(b)
            for b in sorted(rows, key=lambda b: (b.booking_date, to_minutes(b.start_time), b.id))
        ]

    def list_bookings(self, day: Optional[date] = None) -> list[Booking]:
        with self._lock:
            rows = [b for b in self._bookings.values() if day is None or b.booking_date == day]
            return self._sorted_bookings(rows)

    def list_bookings_for_date(self, day: date) -> list[Booking]:
        with self._lock:
            rows = [
                b for b in self._bookings.values()
                if b.booking_date == day and b.blocks_technician
            ]
            return self._sorted_bookings(rows)

    def list_bookings_for_technician(self, technician_id: int, day: date) -> list[Booking]:
        with self._lock:
            rows = [
                b for b in self._bookings.values()
                if b.technician_id == technician_id
                and b.booking_date == day
                and b.blocks_technician
            ]
            return self._sorted_bookings(rows)

    def list_pending_bookings_created_before(self, cutoff: datetime) -> list[Booking]:
        cutoff = as_utc(cutoff)
        with self._lock:
            rows = [
                b for b in self._bookings.values()
                if b.status == BookingStatus.PENDING
                and b.created_at is not None
                and b.created_at <= cutoff
            ]
            return self._sorted_bookings(rows)

    # ------------------------------------------------------------------ #
    # Blocked time slots
    # ------------------------------------------------------------------ #

    def insert_blocked_slot(self, slot: BlockedTimeSlot) -> BlockedTimeSlot:
        with self._lock:
            row = slot.model_copy(update={"id": self._next_id("blocked_slots")})
            if row.created_at is None:
                row.created_at = utcnow()
            self._blocked_slots[row.id] = row
            return _copy(row)

    def get_blocked_slot(self, slot_id: int) -> Optional[BlockedTimeSlot]:
        with self._lock:
            row = self._blocked_slots.get(slot_id)
            return _copy(row) if row is not None else None

    def delete_blocked_slot(self, slot_id: int) -> Optional[BlockedTimeSlot]:
        with self._lock:
            row = self._blocked_slots.pop(slot_id, None)
            if row is not None:
                logger.debug("Blocked slot %s removed", slot_id)
            return row

    def list_blocked_slots(
        self, day: Optional[date] = None, technician_id: Optional[int] = None
    ) -> list[BlockedTimeSlot]:
        with self._lock:
            rows = [
                s for s in self._blocked_slots.values()
                if (day is None or s.block_date == day)
                and (technician_id is None or s.technician_id == technician_id)
            ]
            rows.sort(key=lambda s: (s.block_date, to_minutes(s.start_time), s.id))
            return [_copy(s) for s in rows]
