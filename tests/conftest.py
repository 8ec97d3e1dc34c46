"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from spa_scheduler.config import AppConfig, BookingConfig
from spa_scheduler.notifications import NotificationBus, RecordingSubscriber
from spa_scheduler.payments import StaticPaymentVerifier
from spa_scheduler.scheduling.calendar import OperatingCalendar
from spa_scheduler.scheduling.scheduler import SpaScheduler
from spa_scheduler.schemas.booking_schema import BlockedTimeSlot, Booking, BookingStatus
from spa_scheduler.seed import seed_catalog
from spa_scheduler.store.memory_store import MemoryStore

DAY = date(2024, 6, 1)


class FakeClock:
    """Settable clock so expiry tests do not depend on wall time."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 5, 31, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> datetime:
        self.now += timedelta(minutes=minutes)
        return self.now


def make_config(**booking_overrides: Any) -> AppConfig:
    booking = {
        "deposit_rate": 0.20,
        "pending_expiry_minutes": 10,
        "code_prefix": "MB",
        "code_attempts": 5,
        "default_payment_method": "bank_transfer",
    }
    booking.update(booking_overrides)
    return AppConfig(booking=BookingConfig(**booking))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def calendar():
    return OperatingCalendar("09:00", "21:30", 30)


@pytest.fixture
def recorder():
    return RecordingSubscriber()


@pytest.fixture
def notifier(recorder):
    bus = NotificationBus()
    bus.subscribe(recorder)
    return bus


@pytest.fixture
def verifier():
    return StaticPaymentVerifier(result=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(store, calendar, notifier, verifier, clock):
    return SpaScheduler(
        store,
        calendar=calendar,
        notifier=notifier,
        payment_verifier=verifier,
        config=make_config(),
        clock=clock,
    )


@pytest.fixture
def seeded(scheduler):
    """Seeds services (60/90 min tiers), add-ons, and technicians.

    Technicians sort as Anh Minh, Chị Hương, Chị Linh.
    """
    return seed_catalog(scheduler.catalog)


@pytest.fixture
def linh(seeded):
    return next(t for t in seeded.technicians if t.name == "Chị Linh")


@pytest.fixture
def minh(seeded):
    return next(t for t in seeded.technicians if t.name == "Anh Minh")


@pytest.fixture
def full_body(seeded):
    """Massage Toàn Body: 60 min 300000, 90 min 450000."""
    return seeded.services[0]


def make_request(
    technician_id: int,
    service_id: int,
    start_time: str = "14:00",
    duration: int = 60,
    booking_date: date = DAY,
    **overrides: Any,
) -> dict[str, Any]:
    """Helper to create a booking request payload with sensible defaults."""
    request = {
        "customer_name": "Nguyễn Văn An",
        "customer_phone": "0901234567",
        "technician_id": technician_id,
        "service_id": service_id,
        "duration": duration,
        "additional_service_ids": [],
        "booking_date": booking_date,
        "start_time": start_time,
    }
    request.update(overrides)
    return request


def make_booking(
    technician_id: int,
    start_time: str,
    end_time: str,
    booking_date: date = DAY,
    status: BookingStatus = BookingStatus.PENDING,
    booking_id: Optional[int] = None,
    code: str = "MBTEST0001",
) -> Booking:
    """Helper to create a bare Booking row for pure availability checks."""
    return Booking(
        id=booking_id,
        booking_code=code,
        customer_name="Test Customer",
        customer_phone="0901234567",
        technician_id=technician_id,
        duration=60,
        booking_date=booking_date,
        start_time=start_time,
        end_time=end_time,
        total_amount=300000,
        deposit_amount=60000,
        status=status,
    )


def make_block(
    technician_id: int, start_time: str, end_time: str, block_date: date = DAY
) -> BlockedTimeSlot:
    return BlockedTimeSlot(
        technician_id=technician_id,
        block_date=block_date,
        start_time=start_time,
        end_time=end_time,
    )
