from spa_scheduler.scheduling.admission import BookingService
from spa_scheduler.scheduling.availability import AvailabilityEngine, technician_is_free
from spa_scheduler.scheduling.blocking import BlockingManager
from spa_scheduler.scheduling.booking_state import BookingTrigger, next_status
from spa_scheduler.scheduling.calendar import OperatingCalendar
from spa_scheduler.scheduling.catalog import CatalogManager
from spa_scheduler.scheduling.scheduler import SpaScheduler

__all__ = [
    "AvailabilityEngine", "BlockingManager", "BookingService", "BookingTrigger",
    "CatalogManager", "OperatingCalendar", "SpaScheduler",
    "next_status", "technician_is_free",
]
