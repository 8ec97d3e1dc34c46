"""
Wall-clock arithmetic on "HH:MM" strings.

All conflict checks reduce to ``overlaps`` on half-open minute intervals.
Intervals never cross midnight: a booking that would end after 24:00 is
rejected rather than silently wrapped to the next day.
"""

import re
from typing import Union

from spa_scheduler.errors import DayRolloverError, TimeFormatError, ValidationError

MINUTES_PER_DAY = 24 * 60
END_OF_DAY = "24:00"

_HHMM = re.compile(r"^(\d{2}):(\d{2})$")

TimeLike = Union[str, int]


def to_minutes(hhmm: str) -> int:
    """Convert "HH:MM" to minutes since midnight.

    "24:00" is accepted as the end of the day so that a service may finish
    exactly at midnight.

    Raises:
        TimeFormatError: If the value is not a valid wall-clock time.
    """
    if not isinstance(hhmm, str):
        raise TimeFormatError(f"Time must be an 'HH:MM' string, got {hhmm!r}")
    match = _HHMM.match(hhmm.strip())
    if not match:
        raise TimeFormatError(f"Time must be in HH:MM format, got {hhmm!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours == 24 and minutes == 0:
        return MINUTES_PER_DAY
    if hours > 23 or minutes > 59:
        raise TimeFormatError(f"Time out of range: {hhmm!r}")
    return hours * 60 + minutes


def from_minutes(total: int) -> str:
    """Convert minutes since midnight back to "HH:MM"."""
    if not 0 <= total <= MINUTES_PER_DAY:
        raise DayRolloverError(f"{total} minutes is outside a single day")
    hours, minutes = divmod(total, 60)
    return f"{hours:02d}:{minutes:02d}"


def add_minutes(hhmm: str, delta: int) -> str:
    """Return the wall-clock time ``delta`` minutes after ``hhmm``.

    Raises:
        DayRolloverError: If the result falls outside 00:00-24:00.
    """
    result = to_minutes(hhmm) + delta
    if not 0 <= result <= MINUTES_PER_DAY:
        raise DayRolloverError(
            f"{hhmm} + {delta} minutes crosses midnight; bookings must end by {END_OF_DAY}"
        )
    return from_minutes(result)


def _as_minutes(value: TimeLike) -> int:
    return value if isinstance(value, int) else to_minutes(value)


def overlaps(start_a: TimeLike, end_a: TimeLike, start_b: TimeLike, end_b: TimeLike) -> bool:
    """Half-open interval overlap: [start_a, end_a) intersects [start_b, end_b).

    Touching intervals (end_a == start_b) do not overlap.
    """
    return _as_minutes(start_a) < _as_minutes(end_b) and _as_minutes(end_a) > _as_minutes(start_b)


def validate_interval(start: str, end: str) -> int:
    """Check that ``start`` is strictly before ``end``; return the length in minutes."""
    length = to_minutes(end) - to_minutes(start)
    if length <= 0:
        raise ValidationError(f"Start time {start} must be before end time {end}")
    return length
