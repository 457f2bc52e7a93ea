"""
Pytest fixtures for the salon calendar engine.

Provides:
- A fixed calendar day and a clock pinned to it
- Key-value storage, appointment store and staff roster
- In-memory directories, persistence backend and notifier
- Fully wired reconciler and calendar engine
"""

from datetime import date, datetime, timedelta

import pytest
import pytz

from models.entities import (
    Appointment,
    AppointmentKind,
    BlockMeta,
    ClientSnapshot,
)
from services.appointment_store import AppointmentStore, KeyValueStore, SelectionStore
from services.calendar_engine import CalendarEngine
from services.conflict_detector import ConflictDetector
from services.directory_mock import (
    AppointmentBackendMock,
    CustomerDirectoryMock,
    NotificationServiceMock,
    StaffDirectoryMock,
)
from services.recurrence_planner import RecurrencePlanner
from services.resource_resolver import ResourceResolver
from services.schedule_formatter import ScheduleFormatter
from services.schedule_reconciler import ScheduleReconciler
from services.staff_roster import StaffRoster
from services.sync_queue import SyncQueue
from services.time_slot_resolver import TimeSlotResolver

# Monday
CALENDAR_DAY = date(2025, 3, 10)
NOW = datetime(2025, 3, 10, 9, 37, tzinfo=pytz.UTC)


# =============================================================================
# TIME FIXTURES
# =============================================================================

@pytest.fixture
def day():
    """The calendar day most tests operate on."""
    return CALENDAR_DAY


@pytest.fixture
def at():
    """Build a UTC instant on the calendar day (or another day)."""
    def _at(hour: int, minute: int = 0, on: date = CALENDAR_DAY) -> datetime:
        return pytz.UTC.localize(datetime.combine(on, datetime.min.time())) + timedelta(hours=hour, minutes=minute)
    return _at


@pytest.fixture
def time_resolver():
    """UTC resolver whose clock is pinned to 09:37 on the calendar day."""
    return TimeSlotResolver("UTC", slot_minutes=15, clock=lambda: NOW)


class FakeClock:
    """Seconds-since-epoch clock that tests can advance."""

    def __init__(self, start: float = 1_741_600_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += minutes * 60


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def storage():
    return KeyValueStore()


@pytest.fixture
def store(storage):
    return AppointmentStore(storage)


@pytest.fixture
def selection_store(storage, clock):
    return SelectionStore(storage, ttl_minutes=15, clock=clock)


# =============================================================================
# DIRECTORY AND REMOTE SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def staff_directory():
    """Maria (priority 10), Jenny and Tom (priority 20), Alicia (inactive)."""
    return StaffDirectoryMock()


@pytest.fixture
def client_ana():
    return ClientSnapshot(id="cust_1", first_name="Ana", last_name="Silva", phone="+15550100")


@pytest.fixture
def customer_directory(client_ana):
    return CustomerDirectoryMock([
        client_ana,
        ClientSnapshot(id="cust_2", first_name="Ben", last_name="Ortiz"),
    ])


@pytest.fixture
def backend():
    return AppointmentBackendMock()


@pytest.fixture
def notifier():
    return NotificationServiceMock()


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def roster(staff_directory, storage):
    return StaffRoster(staff_directory, storage)


@pytest.fixture
def conflict_detector(time_resolver):
    return ConflictDetector(time_resolver)


@pytest.fixture
def planner(time_resolver):
    return RecurrencePlanner(time_resolver)


@pytest.fixture
def sync_queue(backend):
    return SyncQueue(backend)


@pytest.fixture
def reconciler(store, conflict_detector, roster, planner, sync_queue, time_resolver, customer_directory, notifier):
    return ScheduleReconciler(
        store,
        conflict_detector,
        roster,
        planner,
        sync_queue,
        time_resolver,
        customer_directory=customer_directory,
        notifier=notifier
    )


@pytest.fixture
def engine(store, roster, time_resolver, conflict_detector, planner, reconciler, selection_store):
    return CalendarEngine(
        store=store,
        roster=roster,
        time_resolver=time_resolver,
        resource_resolver=ResourceResolver(roster, time_resolver),
        conflict_detector=conflict_detector,
        planner=planner,
        reconciler=reconciler,
        selection_store=selection_store,
        formatter=ScheduleFormatter(time_resolver),
        active_date=CALENDAR_DAY
    )


# =============================================================================
# APPOINTMENT FACTORIES
# =============================================================================

@pytest.fixture
def make_appointment(at):
    """Factory for plain bookings on the calendar day."""
    counter = {"n": 0}

    def _make(start_hour=10, minutes=60, resource_id="staff_001", **fields) -> Appointment:
        counter["n"] += 1
        start = fields.pop("start", None) or at(start_hour)
        fields.setdefault("id", f"apt-test{counter['n']}")
        return Appointment(start=start, end=start + timedelta(minutes=minutes), resource_id=resource_id, **fields)

    return _make


@pytest.fixture
def make_block(at):
    """Factory for blocked time on the calendar day."""
    counter = {"n": 0}

    def _make(start_hour=12, minutes=60, resource_id="staff_001", reason="Lunch", **fields) -> Appointment:
        counter["n"] += 1
        start = fields.pop("start", None) or at(start_hour)
        fields.setdefault("id", f"blk-test{counter['n']}")
        return Appointment(
            start=start,
            end=start + timedelta(minutes=minutes),
            resource_id=resource_id,
            kind=AppointmentKind.BLOCKED,
            block_meta=BlockMeta(reason=reason),
            **fields
        )

    return _make
