"""Domain models for the salon calendar scheduling engine."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

import pytz

from models.errors import InvalidAppointment

WALK_INS = "walk-ins"
WALK_IN_CLIENT_NAME = "Walk-in Client"
ANY_STAFF_NAME = "Any Staff"
UNKNOWN_STAFF_NAME = "Unknown Staff"
DEFAULT_STAFF_COLOR = "#3b82f6"
PLACEHOLDER_STAFF_COLOR = "#8B5CF6"
WALK_INS_COLOR = "#f59e0b"
DEFAULT_PRIORITY = 50


class AppointmentKind(str, Enum):
    """What an appointment represents on the calendar."""
    SINGLE = "single"
    GROUP = "group"
    BLOCKED = "blocked"


class BlockScope(str, Enum):
    """How much of the day a blocked-time record covers."""
    FULL_DAY = "full"
    PARTIAL = "partial"


class EditScope(str, Enum):
    """Which occurrences of a series an edit or delete applies to."""
    SINGLE = "single"
    FUTURE = "future"
    SERIES = "series"


class RecurrenceFrequency(str, Enum):
    """Repeat cadence of a recurring series."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    TRIWEEKLY = "triweekly"
    MONTHLY = "monthly"


class ScheduleEventType(str, Enum):
    """Kinds of change published by the appointment store."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass
class ClientSnapshot:
    """Denormalized copy of a customer record kept on the appointment."""
    id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def has_contact(self) -> bool:
        return bool(self.phone or self.email)


@dataclass
class BlockMeta:
    """Extra data carried by blocked-time appointments."""
    reason: str = ""
    scope: BlockScope = BlockScope.PARTIAL
    repeat_weekly: bool = False


@dataclass
class RecurrencePattern:
    """Rule describing how a series repeats and when it ends."""
    frequency: RecurrenceFrequency = RecurrenceFrequency.WEEKLY
    interval: int = 1
    end_after_occurrences: Optional[int] = None
    end_date: Optional[date] = None
    no_end_date: bool = False  # open-ended, expanded up to the occurrence cap
    keep_same_time: bool = True
    days_of_week: list[int] = field(default_factory=list)  # 0=Monday .. 6=Sunday
    flexible_time: bool = False


@dataclass
class Appointment:
    """A booking, group member booking or blocked-time record."""
    id: str
    start: datetime
    end: datetime
    resource_id: str = WALK_INS
    kind: AppointmentKind = AppointmentKind.SINGLE
    client_ref: Optional[str] = None
    client: Optional[ClientSnapshot] = None
    service_names: list[str] = field(default_factory=list)
    notes: str = ""
    status: str = "scheduled"
    staff_name: str = ANY_STAFF_NAME
    is_walk_in: bool = False
    series_id: Optional[str] = None
    group_id: Optional[str] = None
    block_meta: Optional[BlockMeta] = None
    occurrence_number: Optional[int] = None
    total_occurrences: Optional[int] = None
    recurrence: Optional[RecurrencePattern] = None

    def __post_init__(self):
        # Naive datetimes are taken as UTC
        if self.start.tzinfo is None:
            self.start = self.start.replace(tzinfo=pytz.UTC)
        if self.end.tzinfo is None:
            self.end = self.end.replace(tzinfo=pytz.UTC)
        self.start = self.start.astimezone(pytz.UTC)
        self.end = self.end.astimezone(pytz.UTC)

        if self.end <= self.start:
            raise InvalidAppointment(
                f"Appointment {self.id} must end after it starts "
                f"({self.start.isoformat()} - {self.end.isoformat()})"
            )

        if self.kind == AppointmentKind.BLOCKED:
            if self.block_meta is None:
                self.block_meta = BlockMeta()
        elif self.block_meta is not None:
            raise InvalidAppointment(f"Appointment {self.id} is not blocked time but carries block data")

    @property
    def staff_id(self) -> Optional[str]:
        """Staff member the appointment is assigned to, None for the walk-ins pool."""
        if not self.resource_id or self.resource_id == WALK_INS:
            return None
        return self.resource_id

    @property
    def is_blocked(self) -> bool:
        return self.kind == AppointmentKind.BLOCKED

    @property
    def is_full_day_block(self) -> bool:
        return self.is_blocked and self.block_meta.scope == BlockScope.FULL_DAY

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def placement(self) -> tuple[str, datetime, datetime]:
        return (self.resource_id, self.start, self.end)


@dataclass
class StaffMember:
    """Staff directory entry as seen by the calendar."""
    id: str
    name: str
    color: str = DEFAULT_STAFF_COLOR
    priority: int = DEFAULT_PRIORITY  # lower = shown first
    is_active: bool = True
    is_placeholder: bool = False

    @classmethod
    def placeholder(cls, staff_id: str) -> "StaffMember":
        """Stand-in entry for a staff id the directory could not resolve."""
        return cls(
            id=staff_id,
            name=UNKNOWN_STAFF_NAME,
            color=PLACEHOLDER_STAFF_COLOR,
            is_placeholder=True
        )


@dataclass
class GroupMember:
    """One staff member taking part in a group booking."""
    staff_id: str
    staff_name: str = ""
    service_names: list[str] = field(default_factory=list)


@dataclass
class TimeSlotSelection:
    """A clicked time slot waiting to be turned into a booking."""
    start: datetime
    end: datetime
    resource_id: str
    date_key: str  # YYYY-MM-DD
    time_display: str = ""
    persisted_at: Optional[float] = None


@dataclass
class ColumnBounds:
    """Horizontal extent of a rendered calendar column."""
    resource_id: str
    left: float
    right: float

    @property
    def center(self) -> float:
        return (self.left + self.right) / 2


@dataclass
class CalendarColumn:
    """A resource column in display order."""
    id: str
    title: str
    color: str
    order: int
    is_blocked: bool = False
    is_placeholder: bool = False


@dataclass
class ScheduleEvent:
    """Change notification published by the appointment store."""
    type: ScheduleEventType
    appointment_ids: list[str]
    appointments: list[Appointment] = field(default_factory=list)


@dataclass
class BookingRequest:
    """Form submission for a new booking or blocked-time record."""
    start: datetime
    end: datetime
    resource_id: str = WALK_INS
    kind: AppointmentKind = AppointmentKind.SINGLE
    client_ref: Optional[str] = None
    client: Optional[ClientSnapshot] = None
    service_names: list[str] = field(default_factory=list)
    notes: str = ""
    recurrence: Optional[RecurrencePattern] = None
    group_members: list[GroupMember] = field(default_factory=list)
    block_meta: Optional[BlockMeta] = None
    block_last_day: Optional[date] = None  # full-day blocks spanning several days


@dataclass
class OperationResult:
    """Outcome of a scheduling operation as reported to the UI."""
    ok: bool
    appointments: list[Appointment] = field(default_factory=list)
    removed_ids: list[str] = field(default_factory=list)
    message: str = ""
    remote_error: Optional[str] = None
    selection: Optional[TimeSlotSelection] = None
