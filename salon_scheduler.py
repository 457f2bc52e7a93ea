"""Salon calendar scheduling engine - configuration and service wiring."""

import logging
import os
from dataclasses import dataclass
from datetime import date
from typing import Optional

from dotenv import load_dotenv

from services.appointment_api_client import AppointmentApiClient
from services.appointment_store import AppointmentStore, KeyValueStore, SelectionStore
from services.calendar_engine import CalendarEngine
from services.conflict_detector import ConflictDetector
from services.directory_client import CustomerDirectoryClient, StaffDirectoryClient
from services.directory_mock import (
    AppointmentBackendMock,
    CustomerDirectoryMock,
    NotificationServiceMock,
    StaffDirectoryMock,
)
from services.notification_client import NotificationClient
from services.recurrence_planner import RecurrencePlanner
from services.resource_resolver import ResourceResolver
from services.schedule_formatter import ScheduleFormatter
from services.schedule_reconciler import ScheduleReconciler
from services.staff_roster import StaffRoster
from services.sync_queue import SyncQueue
from services.time_slot_resolver import TimeSlotResolver

# ============================================================================
# CONFIGURATION
# ============================================================================

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class EngineSettings:
    """Runtime settings for one calendar session."""
    api_base_url: str = "http://localhost:3000"
    api_timeout: float = 5.0
    timezone: str = "UTC"
    slot_minutes: int = 15
    selection_ttl_minutes: int = 15
    max_occurrences: int = 52

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Read settings from SALON_* environment variables, keeping defaults for unset ones."""
        return cls(
            api_base_url=os.getenv("SALON_API_BASE_URL", cls.api_base_url),
            api_timeout=float(os.getenv("SALON_API_TIMEOUT", cls.api_timeout)),
            timezone=os.getenv("SALON_TIMEZONE", cls.timezone),
            slot_minutes=int(os.getenv("SALON_SLOT_MINUTES", cls.slot_minutes)),
            selection_ttl_minutes=int(os.getenv("SALON_SELECTION_TTL_MINUTES", cls.selection_ttl_minutes)),
            max_occurrences=int(os.getenv("SALON_MAX_OCCURRENCES", cls.max_occurrences))
        )


# ============================================================================
# SERVICE INITIALIZATION
# ============================================================================

def get_services(
    settings: Optional[EngineSettings] = None,
    use_mocks: bool = False,
    storage: Optional[KeyValueStore] = None,
    active_date: Optional[date] = None
) -> CalendarEngine:
    """
    Build a fully wired calendar engine.

    Args:
        settings: Runtime settings (defaults to EngineSettings.from_env())
        use_mocks: Use in-memory directories and persistence instead of the HTTP API
        storage: Key-value storage shared by the store, roster and selection
        active_date: Date the calendar opens on (defaults to today in the salon timezone)

    Returns:
        CalendarEngine ready to receive UI events
    """
    settings = settings or EngineSettings.from_env()
    storage = storage if storage is not None else KeyValueStore()

    if use_mocks:
        staff_directory = StaffDirectoryMock()
        customer_directory = CustomerDirectoryMock()
        backend = AppointmentBackendMock()
        notifier = NotificationServiceMock()
    else:
        http_options = {"base_url": settings.api_base_url, "timeout": settings.api_timeout}
        staff_directory = StaffDirectoryClient(**http_options)
        customer_directory = CustomerDirectoryClient(**http_options)
        backend = AppointmentApiClient(**http_options)
        notifier = NotificationClient(**http_options)

    time_resolver = TimeSlotResolver(settings.timezone, settings.slot_minutes)
    store = AppointmentStore(storage)
    store.load()
    roster = StaffRoster(staff_directory, storage)
    conflict_detector = ConflictDetector(time_resolver)
    planner = RecurrencePlanner(time_resolver, settings.max_occurrences)
    reconciler = ScheduleReconciler(
        store,
        conflict_detector,
        roster,
        planner,
        SyncQueue(backend),
        time_resolver,
        customer_directory=customer_directory,
        notifier=notifier
    )

    logger.info(f"Calendar engine ready (timezone={settings.timezone}, mocks={use_mocks})")
    return CalendarEngine(
        store=store,
        roster=roster,
        time_resolver=time_resolver,
        resource_resolver=ResourceResolver(roster, time_resolver),
        conflict_detector=conflict_detector,
        planner=planner,
        reconciler=reconciler,
        selection_store=SelectionStore(storage, settings.selection_ttl_minutes),
        formatter=ScheduleFormatter(time_resolver),
        active_date=active_date
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    engine = get_services(use_mocks=True)
    for member in engine.roster.directory.list_staff():
        if member.is_active:
            engine.add_worker(member.id)
    for column in engine.columns():
        print(f"{column.order}: {column.title} ({column.id})")
