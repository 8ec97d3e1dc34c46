"""Shared utilities used across the scheduling core."""

import re
import secrets
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

# No 0/O or 1/I so codes survive being read out over the phone.
BOOKING_CODE_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
BOOKING_CODE_TIME_CHARS = 4
BOOKING_CODE_RANDOM_CHARS = 4


def normalize_phone(value: str, country_code: str = "84") -> str:
    """Normalize a phone number to local digits.

    Everything except digits is stripped and an international prefix for
    ``country_code`` is rewritten to a leading zero.

    Examples:
        >>> normalize_phone("0901 234 567")
        '0901234567'
        >>> normalize_phone("+84 (901) 234-567")
        '0901234567'
    """
    value = value.strip()
    digits = re.sub(r"[^\d]", "", value)
    if value.startswith("+") and digits.startswith(country_code):
        return "0" + digits[len(country_code):]
    return digits


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero.

    Python's ``round`` uses banker's rounding, which would make a deposit
    of 12.5 come out as 12.
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _encode(number: int, width: int) -> str:
    base = len(BOOKING_CODE_ALPHABET)
    chars = []
    for _ in range(width):
        number, rem = divmod(number, base)
        chars.append(BOOKING_CODE_ALPHABET[rem])
    return "".join(reversed(chars))


def generate_booking_code(prefix: str = "MB", now: Optional[float] = None) -> str:
    """Generate a human-shareable booking code.

    Format: prefix + 4 time-derived chars + 4 random chars, uppercase and
    free of look-alike characters. Uniqueness is enforced by the store,
    not by this function.
    """
    seconds = int(now if now is not None else time.time())
    time_part = _encode(seconds, BOOKING_CODE_TIME_CHARS)
    random_part = "".join(
        secrets.choice(BOOKING_CODE_ALPHABET) for _ in range(BOOKING_CODE_RANDOM_CHARS)
    )
    return f"{prefix}{time_part}{random_part}"


def normalize_booking_code(value: str) -> str:
    return re.sub(r"[\s-]", "", value).upper()


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC view of ``value``; naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
