"""
Centralized configuration with environment variable overrides.

Operating hours, slot granularity, deposit rate, and the pending-booking
hold window all live here. Nothing is hardcoded in the scheduling logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from spa_scheduler.logging_context import RequestIdFilter

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class CalendarConfig:
    """Operating window and grid used to generate bookable start times."""

    open_time: str = os.getenv("CALENDAR_OPEN_TIME", "09:00")
    last_start: str = os.getenv("CALENDAR_LAST_START", "21:30")
    slot_minutes: int = _safe_int("CALENDAR_SLOT_MINUTES", "30")


@dataclass(frozen=True)
class BookingConfig:
    """Booking admission settings."""

    deposit_rate: float = _safe_float("DEPOSIT_RATE", "0.20")
    pending_expiry_minutes: int = _safe_int("PENDING_EXPIRY_MINUTES", "10")
    code_prefix: str = os.getenv("BOOKING_CODE_PREFIX", "MB")
    code_attempts: int = _safe_int("BOOKING_CODE_ATTEMPTS", "5")
    default_payment_method: str = os.getenv("DEFAULT_PAYMENT_METHOD", "bank_transfer")


@dataclass(frozen=True)
class DatabaseConfig:
    """Relational store settings (only used by the SQL store)."""

    url: str = os.getenv("DATABASE_URL", "sqlite:///spa_scheduler.db")
    echo: bool = os.getenv("DB_ECHO", "false").lower() == "true"
    pool_recycle: int = _safe_int("DB_POOL_RECYCLE", "300")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    booking: BookingConfig = field(default_factory=BookingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    business_name: str = os.getenv("BUSINESS_NAME", "Lotus Spa")


def _is_hhmm(value: str) -> bool:
    parts = value.split(":")
    if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
        return False
    return int(parts[0]) < 24 and int(parts[1]) < 60


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    for name, value in [
        ("CALENDAR_OPEN_TIME", config.calendar.open_time),
        ("CALENDAR_LAST_START", config.calendar.last_start),
    ]:
        if not _is_hhmm(value):
            raise ValueError(f"{name} must be in HH:MM format, got {value!r}")
    if config.calendar.last_start < config.calendar.open_time:
        raise ValueError(
            "CALENDAR_LAST_START must not be before CALENDAR_OPEN_TIME, "
            f"got {config.calendar.last_start} < {config.calendar.open_time}"
        )
    if config.calendar.slot_minutes < 1:
        raise ValueError(
            f"CALENDAR_SLOT_MINUTES must be >= 1, got {config.calendar.slot_minutes}"
        )
    if not 0.0 <= config.booking.deposit_rate <= 1.0:
        raise ValueError(
            f"DEPOSIT_RATE must be between 0.0 and 1.0, got {config.booking.deposit_rate}"
        )
    if config.booking.pending_expiry_minutes < 1:
        raise ValueError(
            "PENDING_EXPIRY_MINUTES must be >= 1, "
            f"got {config.booking.pending_expiry_minutes}"
        )
    if config.booking.code_attempts < 1:
        raise ValueError(
            f"BOOKING_CODE_ATTEMPTS must be >= 1, got {config.booking.code_attempts}"
        )
    if not config.booking.code_prefix.isalnum():
        raise ValueError(
            f"BOOKING_CODE_PREFIX must be alphanumeric, got {config.booking.code_prefix!r}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] [%(request_id)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())
    logger.info("Configuration loaded for '%s'", config.business_name)
    return config


# Singleton instance
settings = load_config()
