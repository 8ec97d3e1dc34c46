"""Administrator-imposed technician unavailability."""

from datetime import date, datetime
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from spa_scheduler.errors import NotFoundError, ValidationError
from spa_scheduler.logging_context import get_request_logger
from spa_scheduler.notifications import EventType, NotificationBus
from spa_scheduler.scheduling.availability import AvailabilityEngine
from spa_scheduler.schemas.booking_schema import BlockedTimeSlot, BlockRequest
from spa_scheduler.store.base import SchedulerStore
from spa_scheduler.time_utils import validate_interval
from spa_scheduler.utils import utcnow

logger = get_request_logger(__name__)


class BlockingManager:
    """
    Creates and removes blocked time slots.

    Blocks may overlap each other and may overlap bookings already on the
    calendar. The latter is an admin override: the booking is left alone and
    a warning is logged so someone can call the customer.
    """

    def __init__(
        self,
        store: SchedulerStore,
        engine: AvailabilityEngine,
        notifier: Optional[NotificationBus] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.engine = engine
        self.notifier = notifier or NotificationBus()
        self._clock = clock

    def block_time(
        self,
        technician_id: int,
        block_date: date,
        start_time: str,
        end_time: str,
        reason: Optional[str] = None,
    ) -> BlockedTimeSlot:
        """
        Mark ``[start_time, end_time)`` on ``block_date`` as unavailable.

        Raises:
            ValidationError: Malformed times or ``start_time >= end_time``.
            NotFoundError: Unknown technician.
        """
        request = self._parse_request(
            {
                "technician_id": technician_id,
                "block_date": block_date,
                "start_time": start_time,
                "end_time": end_time,
                "reason": reason,
            }
        )
        validate_interval(request.start_time, request.end_time)
        technician = self.store.get_technician(request.technician_id)
        if technician is None:
            raise NotFoundError("Technician", request.technician_id)

        with self.store.reservation_lock(technician.id, request.block_date):
            affected = self.engine.conflicting_bookings(
                technician.id, request.block_date, request.start_time, request.end_time
            )
            slot = self.store.insert_blocked_slot(
                BlockedTimeSlot(
                    technician_id=technician.id,
                    block_date=request.block_date,
                    start_time=request.start_time,
                    end_time=request.end_time,
                    reason=request.reason,
                    created_at=self._clock(),
                )
            )

        if affected:
            logger.warning(
                "Block %s for %s on %s %s-%s overlaps %d booking(s): %s",
                slot.id, technician.name, slot.block_date, slot.start_time, slot.end_time,
                len(affected), ", ".join(b.booking_code for b in affected),
            )
        logger.info(
            "Blocked %s on %s %s-%s (%s)",
            technician.name, slot.block_date, slot.start_time, slot.end_time,
            slot.reason or "no reason given",
        )
        self.notifier.notify(EventType.TIME_SLOT_BLOCKED, slot.model_dump(mode="json"))
        return slot

    def unblock_time(self, slot_id: int) -> BlockedTimeSlot:
        """
        Remove a block and return it.

        Raises:
            NotFoundError: Unknown block id.
        """
        existing = self.store.get_blocked_slot(slot_id)
        if existing is None:
            raise NotFoundError("BlockedTimeSlot", slot_id)
        with self.store.reservation_lock(existing.technician_id, existing.block_date):
            removed = self.store.delete_blocked_slot(slot_id)
        if removed is None:
            raise NotFoundError("BlockedTimeSlot", slot_id)

        logger.info(
            "Unblocked technician %s on %s %s-%s",
            removed.technician_id, removed.block_date, removed.start_time, removed.end_time,
        )
        self.notifier.notify(EventType.TIME_SLOT_UNBLOCKED, removed.model_dump(mode="json"))
        return removed

    def list_blocks(
        self, block_date: Optional[date] = None, technician_id: Optional[int] = None
    ) -> list[BlockedTimeSlot]:
        return self.store.list_blocked_slots(day=block_date, technician_id=technician_id)

    def _parse_request(self, data: Union[BlockRequest, dict[str, Any]]) -> BlockRequest:
        if isinstance(data, BlockRequest):
            return data
        try:
            return BlockRequest.model_validate(data)
        except PydanticValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in e["loc"]) for e in exc.errors())
            raise ValidationError(
                f"Invalid block request: {fields}", errors=exc.errors(include_url=False)
            ) from exc
