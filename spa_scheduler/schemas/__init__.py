from spa_scheduler.schemas.booking_schema import (
    AdditionalServiceLine,
    AvailableSlot,
    BlockedTimeSlot,
    BlockRequest,
    Booking,
    BookingRequest,
    BookingStatus,
)
from spa_scheduler.schemas.catalog_schema import (
    AdditionalService,
    Service,
    Technician,
    TechnicianSummary,
)

__all__ = [
    "AdditionalService", "AdditionalServiceLine", "AvailableSlot",
    "BlockedTimeSlot", "BlockRequest", "Booking", "BookingRequest",
    "BookingStatus", "Service", "Technician", "TechnicianSummary",
]
