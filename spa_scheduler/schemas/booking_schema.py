"""Booking, blocked-slot, and availability data models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from spa_scheduler.errors import TimeFormatError
from spa_scheduler.schemas.catalog_schema import TechnicianSummary
from spa_scheduler.time_utils import to_minutes
from spa_scheduler.utils import normalize_phone

MIN_NAME_LENGTH = 2
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def _check_hhmm(value: str) -> str:
    try:
        to_minutes(value)
    except TimeFormatError as exc:
        raise ValueError(str(exc)) from None
    return value.strip()


class AdditionalServiceLine(BaseModel):
    """Add-on name and price captured when the booking was made."""
    id: int
    name: str
    price: int


class BookingRequest(BaseModel):
    """Validated booking request data."""
    customer_name: str
    customer_phone: str
    customer_notes: Optional[str] = None
    technician_id: int
    service_id: int
    duration: int = Field(gt=0)
    additional_service_ids: list[int] = Field(default_factory=list)
    booking_date: date
    start_time: str
    total_amount: Optional[int] = Field(default=None, ge=0)

    @field_validator("customer_name")
    @classmethod
    def _name_length(cls, value: str) -> str:
        value = value.strip()
        if len(value) < MIN_NAME_LENGTH:
            raise ValueError(f"customer_name must be at least {MIN_NAME_LENGTH} characters")
        return value

    @field_validator("customer_phone")
    @classmethod
    def _phone_digits(cls, value: str) -> str:
        normalized = normalize_phone(value)
        if not MIN_PHONE_DIGITS <= len(normalized) <= MAX_PHONE_DIGITS:
            raise ValueError(f"customer_phone {value!r} does not look like a phone number")
        return normalized

    @field_validator("start_time")
    @classmethod
    def _start_time_format(cls, value: str) -> str:
        return _check_hhmm(value)

    @field_validator("additional_service_ids")
    @classmethod
    def _no_duplicate_addons(cls, value: list[int]) -> list[int]:
        if len(set(value)) != len(value):
            raise ValueError("additional_service_ids must not repeat")
        return value


class Booking(BaseModel):
    """A stored booking with technician, service, and add-on snapshots."""
    id: Optional[int] = None
    booking_code: str
    customer_name: str
    customer_phone: str
    customer_notes: Optional[str] = None
    technician_id: Optional[int] = None
    technician_name: str = ""
    service_id: Optional[int] = None
    service_name: str = ""
    service_price: int = 0
    duration: int
    additional_services: list[AdditionalServiceLine] = Field(default_factory=list)
    booking_date: date
    start_time: str
    end_time: str
    total_amount: int
    deposit_amount: int
    is_paid: bool = False
    status: BookingStatus = BookingStatus.PENDING
    payment_method: Optional[str] = None
    qr_payload: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def additional_service_ids(self) -> list[int]:
        return [line.id for line in self.additional_services]

    @property
    def blocks_technician(self) -> bool:
        """Cancelled bookings free their interval."""
        return self.status != BookingStatus.CANCELLED


class BlockRequest(BaseModel):
    """Admin request to make a technician unavailable."""
    technician_id: int
    block_date: date
    start_time: str
    end_time: str
    reason: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _time_format(cls, value: str) -> str:
        return _check_hhmm(value)


class BlockedTimeSlot(BaseModel):
    """An administrator-imposed unavailability interval for one technician."""
    id: Optional[int] = None
    technician_id: int
    block_date: date
    start_time: str
    end_time: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None


class AvailableSlot(BaseModel):
    """A start time with the technicians free for the whole requested duration."""
    start_time: str
    end_time: str
    technicians: list[TechnicianSummary]

    @property
    def technician_ids(self) -> list[int]:
        return [t.id for t in self.technicians]
