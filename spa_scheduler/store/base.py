"""
Store port consumed by the scheduling core.

The core never talks to a database directly. It reads per-date snapshots
and writes through this interface, and it serializes booking and block
writes through ``reservation_lock``.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Any, Optional

from spa_scheduler.schemas.booking_schema import BlockedTimeSlot, Booking, BookingStatus
from spa_scheduler.schemas.catalog_schema import AdditionalService, Service, Technician


class SchedulerStore(ABC):
    # ------------------------------------------------------------------ #
    # Concurrency
    # ------------------------------------------------------------------ #

    @abstractmethod
    def reservation_lock(
        self, technician_id: Optional[int], day: date
    ) -> AbstractContextManager[None]:
        """Serialize writes for one technician on one day.

        Transactional stores commit everything done inside the block on
        normal exit and roll it back on error. The core performs at most
        one write per block, last, so stores without transactions stay
        all-or-nothing too. Re-entering from the same thread is allowed.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Technicians
    # ------------------------------------------------------------------ #

    @abstractmethod
    def insert_technician(self, technician: Technician) -> Technician:
        raise NotImplementedError

    @abstractmethod
    def update_technician(self, technician: Technician) -> Technician:
        raise NotImplementedError

    @abstractmethod
    def get_technician(self, technician_id: int) -> Optional[Technician]:
        raise NotImplementedError

    @abstractmethod
    def list_technicians(self) -> list[Technician]:
        """All technicians, active or not, ordered by name."""
        raise NotImplementedError

    def list_active_technicians(self) -> list[Technician]:
        return [t for t in self.list_technicians() if t.is_active]

    # ------------------------------------------------------------------ #
    # Services
    # ------------------------------------------------------------------ #

    @abstractmethod
    def insert_service(self, service: Service) -> Service:
        raise NotImplementedError

    @abstractmethod
    def update_service(self, service: Service) -> Service:
        raise NotImplementedError

    @abstractmethod
    def get_service(self, service_id: int) -> Optional[Service]:
        raise NotImplementedError

    @abstractmethod
    def list_services(self) -> list[Service]:
        raise NotImplementedError

    @abstractmethod
    def insert_additional_service(self, service: AdditionalService) -> AdditionalService:
        raise NotImplementedError

    @abstractmethod
    def update_additional_service(self, service: AdditionalService) -> AdditionalService:
        raise NotImplementedError

    @abstractmethod
    def get_additional_service(self, service_id: int) -> Optional[AdditionalService]:
        raise NotImplementedError

    @abstractmethod
    def list_additional_services(self) -> list[AdditionalService]:
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    @abstractmethod
    def insert_booking(self, booking: Booking) -> Booking:
        """Persist a new booking and return it with its id.

        Raises:
            DuplicateBookingCodeError: If the booking code is already taken.
        """
        raise NotImplementedError

    @abstractmethod
    def update_booking_status(
        self, booking_id: int, status: BookingStatus, fields: Optional[dict[str, Any]] = None
    ) -> Booking:
        raise NotImplementedError

    @abstractmethod
    def get_booking(self, booking_id: int) -> Optional[Booking]:
        raise NotImplementedError

    @abstractmethod
    def get_booking_by_code(self, code: str) -> Optional[Booking]:
        raise NotImplementedError

    @abstractmethod
    def list_bookings(self, day: Optional[date] = None) -> list[Booking]:
        """Every booking (cancelled included), optionally for one day."""
        raise NotImplementedError

    @abstractmethod
    def list_bookings_for_date(self, day: date) -> list[Booking]:
        """Bookings on ``day`` that still hold their interval (not cancelled)."""
        raise NotImplementedError

    @abstractmethod
    def list_bookings_for_technician(self, technician_id: int, day: date) -> list[Booking]:
        """Non-cancelled bookings of one technician on ``day``."""
        raise NotImplementedError

    @abstractmethod
    def list_pending_bookings_created_before(self, cutoff: datetime) -> list[Booking]:
        """Pending bookings created at or before ``cutoff``."""
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Blocked time slots
    # ------------------------------------------------------------------ #

    @abstractmethod
    def insert_blocked_slot(self, slot: BlockedTimeSlot) -> BlockedTimeSlot:
        raise NotImplementedError

    @abstractmethod
    def get_blocked_slot(self, slot_id: int) -> Optional[BlockedTimeSlot]:
        raise NotImplementedError

    @abstractmethod
    def delete_blocked_slot(self, slot_id: int) -> Optional[BlockedTimeSlot]:
        """Delete a block; return the deleted row or None if it did not exist."""
        raise NotImplementedError

    @abstractmethod
    def list_blocked_slots(
        self, day: Optional[date] = None, technician_id: Optional[int] = None
    ) -> list[BlockedTimeSlot]:
        raise NotImplementedError

    def list_blocked_slots_for_date(self, day: date) -> list[BlockedTimeSlot]:
        return self.list_blocked_slots(day=day)

    def list_blocked_slots_for_technician(
        self, technician_id: int, day: date
    ) -> list[BlockedTimeSlot]:
        return self.list_blocked_slots(day=day, technician_id=technician_id)
