"""
Availability engine.

Given a date and a service duration, work out which technicians are free
at which start times. A technician is free at ``t`` only if nothing they
have on that day (booking or block) overlaps the whole requested interval
``[t, t + duration)``, not just the start point.
"""

from datetime import date
from typing import Iterable, Optional

from spa_scheduler.errors import DayRolloverError, NotFoundError, ValidationError
from spa_scheduler.logging_context import get_request_logger
from spa_scheduler.scheduling.calendar import OperatingCalendar
from spa_scheduler.schemas.booking_schema import AvailableSlot, BlockedTimeSlot, Booking
from spa_scheduler.schemas.catalog_schema import Technician, TechnicianSummary
from spa_scheduler.store.base import SchedulerStore
from spa_scheduler.time_utils import add_minutes, overlaps, to_minutes

logger = get_request_logger(__name__)


def _check_duration(duration_minutes: int) -> None:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationError(
            f"Duration must be an integer number of minutes, got {duration_minutes!r}"
        )
    if duration_minutes <= 0:
        raise ValidationError(f"Duration must be positive, got {duration_minutes}")


def technician_is_free(
    technician_id: int,
    start: str,
    end: str,
    bookings: Iterable[Booking],
    blocked_slots: Iterable[BlockedTimeSlot],
    exclude_booking_id: Optional[int] = None,
) -> bool:
    """Whether nothing of ``technician_id`` overlaps ``[start, end)``.

    ``bookings`` and ``blocked_slots`` may contain other technicians' rows;
    they are ignored. Cancelled bookings never conflict.
    """
    start_m, end_m = to_minutes(start), to_minutes(end)
    for booking in bookings:
        if (
            booking.technician_id == technician_id
            and booking.blocks_technician
            and (exclude_booking_id is None or booking.id != exclude_booking_id)
            and overlaps(start_m, end_m, booking.start_time, booking.end_time)
        ):
            return False
    for slot in blocked_slots:
        if slot.technician_id == technician_id and overlaps(
            start_m, end_m, slot.start_time, slot.end_time
        ):
            return False
    return True


class AvailabilityEngine:
    """Read-only view over the store's per-date snapshot."""

    def __init__(self, store: SchedulerStore, calendar: Optional[OperatingCalendar] = None) -> None:
        self.store = store
        self.calendar = calendar or OperatingCalendar.from_config()

    def _candidates(self, duration_minutes: int) -> list[tuple[str, str]]:
        """Grid start times paired with their end time; past-midnight ends are dropped."""
        pairs = []
        for start in self.calendar.slots():
            try:
                pairs.append((start, add_minutes(start, duration_minutes)))
            except DayRolloverError:
                continue
        return pairs

    def find_available_slots(self, day: date, duration_minutes: int) -> list[AvailableSlot]:
        """
        Enumerate start times on ``day`` with at least one free technician.

        Slots nobody can take are left out entirely. Start times ascend and
        each technician list is ordered by (name, id), so repeated calls on an
        unchanged store return identical output.
        """
        _check_duration(duration_minutes)
        technicians = sorted(self.store.list_active_technicians(), key=lambda t: (t.name, t.id))
        bookings = self.store.list_bookings_for_date(day)
        blocked = self.store.list_blocked_slots_for_date(day)

        slots: list[AvailableSlot] = []
        for start, end in self._candidates(duration_minutes):
            free = [
                TechnicianSummary.from_technician(t)
                for t in technicians
                if technician_is_free(t.id, start, end, bookings, blocked)
            ]
            if free:
                slots.append(AvailableSlot(start_time=start, end_time=end, technicians=free))

        logger.debug(
            "Availability for %s (%d min): %d slot(s), %d booking(s), %d block(s)",
            day, duration_minutes, len(slots), len(bookings), len(blocked),
        )
        return slots

    def find_technician_availability(
        self, technician_id: int, day: date, duration_minutes: Optional[int] = None
    ) -> list[str]:
        """
        Start times on ``day`` at which one technician is free.

        ``duration_minutes`` defaults to the calendar granularity; pass the
        real service duration to get start times that fit the whole service.

        Raises:
            NotFoundError: If the technician does not exist.
        """
        duration = duration_minutes
        if duration is None:
            duration = self.calendar.granularity_minutes
        _check_duration(duration)
        technician = self._require_technician(technician_id)
        if not technician.is_active:
            return []

        bookings = self.store.list_bookings_for_technician(technician_id, day)
        blocked = self.store.list_blocked_slots_for_technician(technician_id, day)
        return [
            start
            for start, end in self._candidates(duration)
            if technician_is_free(technician_id, start, end, bookings, blocked)
        ]

    def is_technician_free(
        self,
        technician_id: int,
        day: date,
        start: str,
        end: str,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        """Fresh read of one technician's rows; used to re-check right before a write."""
        bookings = self.store.list_bookings_for_technician(technician_id, day)
        blocked = self.store.list_blocked_slots_for_technician(technician_id, day)
        return technician_is_free(
            technician_id, start, end, bookings, blocked, exclude_booking_id=exclude_booking_id
        )

    def conflicting_bookings(
        self, technician_id: int, day: date, start: str, end: str
    ) -> list[Booking]:
        return [
            b for b in self.store.list_bookings_for_technician(technician_id, day)
            if overlaps(start, end, b.start_time, b.end_time)
        ]

    def _require_technician(self, technician_id: int) -> Technician:
        technician = self.store.get_technician(technician_id)
        if technician is None:
            raise NotFoundError("Technician", technician_id)
        return technician
