"""Turns time-grid labels into absolute appointment instants."""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional, Union

import pytz

from models.errors import InvalidTimeValue, TimeLabelError, UnparseableTimeLabel

logger = logging.getLogger(__name__)

_TIME_12H = re.compile(r"^(\d{1,2}):(\d{2})\s*(am|pm)$", re.IGNORECASE)
_TIME_24H = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_HOUR_ONLY = re.compile(r"^(\d{1,2})\s*(am|pm)$", re.IGNORECASE)


def _to_24_hour(hour: int, period: str) -> int:
    period = period.lower()
    if period == "pm" and hour != 12:
        return hour + 12
    if period == "am" and hour == 12:
        return 0
    return hour


class TimeSlotResolver:
    """Resolves grid labels against the calendar's active date."""

    def __init__(
        self,
        timezone: str = "UTC",
        slot_minutes: int = 15,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the resolver.

        Args:
            timezone: Salon timezone name; labels and dates are read in this zone
            slot_minutes: Width of a freshly selected slot
            clock: Returns the current UTC time (injectable for tests)
        """
        self.tz = pytz.timezone(timezone)
        self.slot_minutes = slot_minutes
        self._clock = clock or (lambda: datetime.now(pytz.UTC))

    def parse_time_label(self, label: str) -> tuple[int, int]:
        """
        Parse a label such as "1:00 PM", "13:00", "14:45:00" or "2 PM".

        Returns:
            (hour, minute) in 24-hour time

        Raises:
            UnparseableTimeLabel: label matches no supported format
            InvalidTimeValue: hour or minute out of range
        """
        text = (label or "").strip()

        match = _TIME_12H.match(text)
        if match:
            hour = _to_24_hour(int(match.group(1)), match.group(3))
            minute = int(match.group(2))
        else:
            match = _TIME_24H.match(text)
            if match:
                hour = int(match.group(1))
                minute = int(match.group(2))
            else:
                match = _HOUR_ONLY.match(text)
                if not match:
                    raise UnparseableTimeLabel(label)
                hour = _to_24_hour(int(match.group(1)), match.group(2))
                minute = 0

        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise InvalidTimeValue(hour, minute)
        return hour, minute

    def local_date(self, value: Union[date, datetime]) -> date:
        """Calendar date of a date or instant in the salon timezone."""
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.date()
            return value.astimezone(self.tz).date()
        return value

    def combine(self, active_date: Union[date, datetime], hour: int, minute: int) -> datetime:
        """Build the UTC instant for a local wall-clock time on the given date."""
        day = self.local_date(active_date)
        local = self.tz.localize(datetime.combine(day, time(hour, minute)))
        return local.astimezone(pytz.UTC)

    def resolve(self, label: str, active_date: Union[date, datetime]) -> tuple[datetime, datetime]:
        """
        Resolve a label into a (start, end) pair on the active date.

        Unparseable or out-of-range labels fall back to the current time of
        day on the active date; this path never raises.
        """
        try:
            hour, minute = self.parse_time_label(label)
            start = self.combine(active_date, hour, minute)
        except TimeLabelError as e:
            logger.warning(f"Falling back to current time for label {label!r}: {e}")
            start = self.fallback_start(active_date)
        return start, self.slot_end(start)

    def fallback_start(self, active_date: Union[date, datetime]) -> datetime:
        """Current local time of day placed on the active date, to the minute."""
        now_local = self._clock().astimezone(self.tz)
        return self.combine(active_date, now_local.hour, now_local.minute)

    def slot_end(self, start: datetime) -> datetime:
        return start + timedelta(minutes=self.slot_minutes)

    def day_bounds(self, day: Union[date, datetime]) -> tuple[datetime, datetime]:
        """First and last instant (23:59:59.999) of a local day, in UTC."""
        local_day = self.local_date(day)
        day_start = self.tz.localize(datetime.combine(local_day, time.min))
        day_end = self.tz.localize(datetime.combine(local_day, time(23, 59, 59, 999000)))
        return day_start.astimezone(pytz.UTC), day_end.astimezone(pytz.UTC)

    def date_key(self, value: Union[date, datetime]) -> str:
        """YYYY-MM-DD key of the local date, as used by the roster."""
        return self.local_date(value).isoformat()

    def local_time(self, instant: datetime) -> time:
        return instant.astimezone(self.tz).time().replace(second=0, microsecond=0)

    def format_time_display(self, instant: datetime) -> str:
        """12-hour label for an instant, e.g. "1:00 PM"."""
        local = instant.astimezone(self.tz)
        hour = local.hour % 12 or 12
        period = "PM" if local.hour >= 12 else "AM"
        return f"{hour}:{local.minute:02d} {period}"
