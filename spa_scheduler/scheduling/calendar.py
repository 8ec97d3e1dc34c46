"""Operating calendar: the fixed grid of bookable start times for a day."""

from dataclasses import dataclass
from typing import Optional

from spa_scheduler.config import CalendarConfig, settings
from spa_scheduler.logging_context import get_request_logger
from spa_scheduler.time_utils import from_minutes, to_minutes

logger = get_request_logger(__name__)


@dataclass(frozen=True)
class OperatingCalendar:
    """Start-time grid from ``open_time`` to ``last_start`` inclusive.

    One policy serves every query. An hourly 13:00-21:00 deployment is
    ``OperatingCalendar("13:00", "21:00", 60)``.
    """

    open_time: str = "09:00"
    last_start: str = "21:30"
    granularity_minutes: int = 30

    def __post_init__(self) -> None:
        if self.granularity_minutes < 1:
            raise ValueError(
                f"granularity_minutes must be >= 1, got {self.granularity_minutes}"
            )
        if to_minutes(self.last_start) < to_minutes(self.open_time):
            raise ValueError(
                f"last_start {self.last_start} is before open_time {self.open_time}"
            )

    @classmethod
    def from_config(cls, config: Optional[CalendarConfig] = None) -> "OperatingCalendar":
        config = config or settings.calendar
        return cls(
            open_time=config.open_time,
            last_start=config.last_start,
            granularity_minutes=config.slot_minutes,
        )

    def slots(self) -> list[str]:
        """Return candidate start times in ascending order."""
        first = to_minutes(self.open_time)
        last = to_minutes(self.last_start)
        return [from_minutes(m) for m in range(first, last + 1, self.granularity_minutes)]

    def is_slot(self, hhmm: str) -> bool:
        """Whether ``hhmm`` lies on the grid."""
        minutes = to_minutes(hhmm)
        first = to_minutes(self.open_time)
        last = to_minutes(self.last_start)
        return first <= minutes <= last and (minutes - first) % self.granularity_minutes == 0
