"""Recurring series expansion."""

import calendar
import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, Optional, Union

import pytz

from models.entities import (
    Appointment,
    AppointmentKind,
    BlockMeta,
    BlockScope,
    GroupMember,
    RecurrenceFrequency,
    RecurrencePattern,
)
from models.errors import InvalidRecurrencePattern
from services.time_slot_resolver import TimeSlotResolver

logger = logging.getLogger(__name__)

MAX_OCCURRENCES = 52

_DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

_WEEKS_PER_STEP = {
    RecurrenceFrequency.WEEKLY: 1,
    RecurrenceFrequency.BIWEEKLY: 2,
    RecurrenceFrequency.TRIWEEKLY: 3,
}


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def _parse_start_time(value: Union[time, str]) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


class RecurrencePlanner:
    """Expands recurrence rules into concrete appointments."""

    def __init__(
        self,
        time_resolver: TimeSlotResolver,
        max_occurrences: int = MAX_OCCURRENCES,
        id_factory: Callable[[str], str] = new_id
    ):
        """
        Initialize the planner.

        Args:
            time_resolver: Defines the salon timezone occurrences are placed in
            max_occurrences: Hard cap on the length of any series
            id_factory: Builds ids from a prefix ("apt", "series", "group", "block-series")
        """
        self.time_resolver = time_resolver
        self.max_occurrences = max_occurrences
        self.new_id = id_factory

    def occurrence_dates(self, anchor_date: date, pattern: RecurrencePattern) -> list[date]:
        """
        Dates of every occurrence, starting with the anchor date.

        Raises:
            InvalidRecurrencePattern: not exactly one end condition set, or interval < 1
        """
        has_count = pattern.end_after_occurrences is not None
        has_end_date = pattern.end_date is not None
        if has_count + has_end_date + pattern.no_end_date != 1:
            raise InvalidRecurrencePattern("Configure exactly one of end_after_occurrences, end_date or no_end_date")
        if pattern.interval < 1:
            raise InvalidRecurrencePattern("Interval must be at least 1")
        if has_count and pattern.end_after_occurrences < 1:
            raise InvalidRecurrencePattern("Series must have at least one occurrence")

        limit = self.max_occurrences
        if has_count:
            limit = min(limit, pattern.end_after_occurrences)

        dates = [anchor_date]
        if pattern.frequency == RecurrenceFrequency.WEEKLY and pattern.days_of_week:
            candidates = self._weekday_dates(anchor_date, pattern)
        else:
            candidates = (self._step(anchor_date, pattern, n) for n in range(1, self.max_occurrences))

        for candidate in candidates:
            if len(dates) >= limit:
                break
            if has_end_date and candidate > pattern.end_date:
                break
            dates.append(candidate)
        return dates

    def _step(self, anchor_date: date, pattern: RecurrencePattern, n: int) -> date:
        # Offsets are taken from the anchor so month-end clamping does not drift
        if pattern.frequency == RecurrenceFrequency.DAILY:
            return anchor_date + timedelta(days=n * pattern.interval)
        if pattern.frequency == RecurrenceFrequency.MONTHLY:
            return _add_months(anchor_date, n * pattern.interval)
        weeks = _WEEKS_PER_STEP[pattern.frequency]
        return anchor_date + timedelta(weeks=n * weeks * pattern.interval)

    def _weekday_dates(self, anchor_date: date, pattern: RecurrencePattern):
        days = sorted({d for d in pattern.days_of_week if 0 <= d <= 6})
        week_start = anchor_date - timedelta(days=anchor_date.weekday())
        for _ in range(self.max_occurrences):
            for day in days:
                candidate = week_start + timedelta(days=day)
                if candidate > anchor_date:
                    yield candidate
            week_start += timedelta(weeks=pattern.interval)

    def _occurrence_start(self, day: date, start_time: time) -> datetime:
        local = self.time_resolver.tz.localize(datetime.combine(day, start_time))
        return local.astimezone(pytz.UTC)

    def expand(
        self,
        template: Appointment,
        pattern: RecurrencePattern,
        anchor_date: date,
        start_time: Union[time, str],
        duration_minutes: int,
        series_id: Optional[str] = None
    ) -> list[Appointment]:
        """
        Expand a template into a series of appointments.

        Every occurrence copies the template (staff, client, services,
        notes, group linkage), gets a fresh id and shares one series id.
        Occurrences keep the same local time of day; flexible_time is
        recorded on the pattern but does not move occurrences yet.

        Args:
            template: Appointment whose fields are copied; its id, start and end are ignored
            pattern: Recurrence rule
            anchor_date: Date of the first occurrence
            start_time: Local start time as a time or "HH:MM"
            duration_minutes: Length of each occurrence
            series_id: Reuse an existing series id instead of generating one

        Returns:
            Occurrences ordered by start
        """
        if duration_minutes <= 0:
            raise InvalidRecurrencePattern("Duration must be positive")

        dates = self.occurrence_dates(anchor_date, pattern)
        clock_time = _parse_start_time(start_time)
        series_id = series_id or self.new_id("series")
        duration = timedelta(minutes=duration_minutes)

        occurrences = []
        for index, day in enumerate(dates):
            start = self._occurrence_start(day, clock_time)
            occurrences.append(replace(
                template,
                id=self.new_id("apt"),
                start=start,
                end=start + duration,
                series_id=series_id,
                occurrence_number=index + 1,
                total_occurrences=len(dates),
                recurrence=pattern,
                service_names=list(template.service_names)
            ))

        logger.info(f"Expanded series {series_id} into {len(occurrences)} occurrences from {anchor_date}")
        return occurrences

    def expand_group(
        self,
        template: Appointment,
        members: Iterable[GroupMember],
        pattern: RecurrencePattern,
        anchor_date: date,
        start_time: Union[time, str],
        duration_minutes: int
    ) -> list[Appointment]:
        """Expand a group booking once per member; all results share group and series ids."""
        group_id = template.group_id or self.new_id("group")
        series_id = self.new_id("series")
        results = []
        for member in members:
            member_template = replace(
                template,
                kind=AppointmentKind.GROUP,
                resource_id=member.staff_id,
                staff_name=member.staff_name or template.staff_name,
                service_names=list(member.service_names or template.service_names),
                is_walk_in=False,
                group_id=group_id
            )
            results.extend(self.expand(
                member_template, pattern, anchor_date, start_time, duration_minutes, series_id=series_id
            ))
        return results

    def replace_series(
        self,
        appointments: Iterable[Appointment],
        series_id: str,
        template: Appointment,
        pattern: RecurrencePattern,
        anchor_date: date,
        start_time: Union[time, str],
        duration_minutes: int
    ) -> tuple[list[Appointment], list[Appointment]]:
        """
        Drop every member of a series and expand the edited template in its place.

        Returns:
            (appointments outside the old series, newly expanded occurrences)
        """
        remaining = [a for a in appointments if a.series_id != series_id]
        fresh = self.expand(template, pattern, anchor_date, start_time, duration_minutes)
        return remaining, fresh

    def expand_full_day_block(
        self,
        template: Appointment,
        first_day: date,
        last_day: Optional[date] = None
    ) -> list[Appointment]:
        """One full-day blocked record per day from first_day to last_day inclusive."""
        last_day = last_day or first_day
        if last_day < first_day:
            raise InvalidRecurrencePattern("Block end date is before its start date")

        series_id = self.new_id("block-series")
        meta = replace(template.block_meta or BlockMeta(), scope=BlockScope.FULL_DAY)
        blocks = []
        day = first_day
        while day <= last_day:
            day_start, day_end = self.time_resolver.day_bounds(day)
            blocks.append(replace(
                template,
                id=self.new_id("apt"),
                start=day_start,
                end=day_end,
                kind=AppointmentKind.BLOCKED,
                block_meta=meta,
                series_id=series_id if last_day > first_day else None,
                service_names=[]
            ))
            day += timedelta(days=1)
        return blocks

    def expand_weekly_block(
        self,
        template: Appointment,
        anchor_date: date,
        start_time: Union[time, str],
        duration_minutes: int
    ) -> list[Appointment]:
        """Partial blocked time repeating weekly for a year."""
        pattern = RecurrencePattern(frequency=RecurrenceFrequency.WEEKLY, interval=1, no_end_date=True)
        meta = replace(template.block_meta or BlockMeta(), scope=BlockScope.PARTIAL, repeat_weekly=True)
        block_template = replace(template, kind=AppointmentKind.BLOCKED, block_meta=meta, service_names=[])
        return self.expand(block_template, pattern, anchor_date, start_time, duration_minutes)

    def validate(self, pattern: RecurrencePattern, today: Optional[date] = None) -> list[str]:
        """
        Human-readable problems with a pattern; empty when it is usable.

        Counts above the configured cap are rejected rather than silently
        shortened during expansion.
        """
        today = today or date.today()
        errors = []
        end_conditions = [
            pattern.end_after_occurrences is not None,
            pattern.end_date is not None,
            pattern.no_end_date,
        ]
        if pattern.interval < 1:
            errors.append("Repeat interval must be at least 1")
        if not any(end_conditions):
            errors.append("Please specify when the series should end")
        if sum(end_conditions) > 1:
            errors.append("Choose only one of a number of appointments, an end date or no end date")
        if pattern.end_after_occurrences is not None and not 1 <= pattern.end_after_occurrences <= self.max_occurrences:
            errors.append(f"Series must end after 1-{self.max_occurrences} appointments")
        if pattern.end_date is not None and pattern.end_date <= today:
            errors.append("End date must be in the future")
        if any(not 0 <= d <= 6 for d in pattern.days_of_week):
            errors.append("Days of week must be between Monday (0) and Sunday (6)")
        return errors

    @staticmethod
    def describe(pattern: RecurrencePattern) -> str:
        """Short label such as "Weekly" or "Every 2 weeks on Monday, Friday"."""
        interval = pattern.interval
        if pattern.frequency == RecurrenceFrequency.DAILY:
            return "Daily" if interval == 1 else f"Every {interval} days"
        if pattern.frequency == RecurrenceFrequency.WEEKLY:
            if pattern.days_of_week:
                days = ", ".join(_DAY_NAMES[d] for d in sorted(set(pattern.days_of_week)))
                return f"Weekly on {days}" if interval == 1 else f"Every {interval} weeks on {days}"
            return "Weekly" if interval == 1 else f"Every {interval} weeks"
        if pattern.frequency == RecurrenceFrequency.BIWEEKLY:
            return "Every 2 weeks"
        if pattern.frequency == RecurrenceFrequency.TRIWEEKLY:
            return "Every 3 weeks"
        if pattern.frequency == RecurrenceFrequency.MONTHLY:
            return "Monthly" if interval == 1 else f"Every {interval} months"
        return "Custom"
