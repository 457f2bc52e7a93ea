"""Per-date roster of staff columns shown on the calendar."""

import logging
from typing import Iterable, Optional, Protocol

from models.entities import StaffMember
from services.appointment_store import KeyValueStore

logger = logging.getLogger(__name__)


class StaffLookup(Protocol):
    """Anything that can resolve staff ids to directory entries."""

    def get_staff(self, staff_id: str) -> Optional[StaffMember]:
        ...

    def list_staff(self) -> list[StaffMember]:
        ...


class StaffRoster:
    """
    Ordered list of visible staff ids per calendar date.

    Each date key (YYYY-MM-DD) maps to staff ids in the order they were
    added. Adding never reorders existing entries; display ordering by
    priority and blocked state is computed on read by ordered_staff().
    """

    STORAGE_KEY = "activeWorkersByDate"

    def __init__(self, directory: StaffLookup, storage: Optional[KeyValueStore] = None):
        """
        Initialize the roster.

        Args:
            directory: Staff directory used to resolve ids for display
            storage: Optional key-value storage the roster is written through to
        """
        self.directory = directory
        self.storage = storage
        self._workers_by_date: dict[str, list[str]] = {}
        if storage is not None:
            saved = storage.get(self.STORAGE_KEY, {})
            if isinstance(saved, dict):
                self._workers_by_date = {
                    key: list(dict.fromkeys(ids)) for key, ids in saved.items() if isinstance(ids, list)
                }

    def _save(self) -> None:
        if self.storage is not None:
            self.storage.set(self.STORAGE_KEY, self._workers_by_date)

    def workers(self, date_key: str) -> list[str]:
        """Staff ids on the roster for a date, in insertion order."""
        return list(self._workers_by_date.get(date_key, []))

    def contains(self, date_key: str, staff_id: str) -> bool:
        return staff_id in self._workers_by_date.get(date_key, [])

    def add_worker(self, date_key: str, staff_id: str) -> bool:
        """Append a staff id to a date's roster; returns False if already present."""
        current = self._workers_by_date.setdefault(date_key, [])
        if staff_id in current:
            logger.debug(f"Worker {staff_id} already in calendar for {date_key}")
            return False
        current.append(staff_id)
        logger.info(f"Added worker {staff_id} to calendar for {date_key} at position {len(current)}")
        self._save()
        return True

    def remove_worker(self, date_key: str, staff_id: str) -> bool:
        current = self._workers_by_date.get(date_key, [])
        if staff_id not in current:
            return False
        self._workers_by_date[date_key] = [w for w in current if w != staff_id]
        logger.info(f"Removed worker {staff_id} from calendar for {date_key}")
        self._save()
        return True

    def clear(self, date_key: str) -> None:
        self._workers_by_date[date_key] = []
        self._save()

    def prune(self, date_key: str, known_ids: Iterable[str]) -> list[str]:
        """Drop ids no longer present in the staff directory; returns the dropped ids."""
        known = set(known_ids)
        current = self._workers_by_date.get(date_key, [])
        missing = [w for w in current if w not in known]
        if missing:
            logger.info(f"Cleaning up deleted workers from {date_key}: {missing}")
            self._workers_by_date[date_key] = [w for w in current if w in known]
            self._save()
        return missing

    def staff_for(self, staff_id: str) -> StaffMember:
        """Directory entry for an id, or a placeholder when it cannot be resolved."""
        member = self.directory.get_staff(staff_id)
        if member is None:
            logger.warning(f"Staff {staff_id} not found in directory, using placeholder")
            return StaffMember.placeholder(staff_id)
        return member

    def available_staff(self, date_key: str) -> list[StaffMember]:
        """Active directory staff not yet on the date's roster."""
        on_roster = set(self._workers_by_date.get(date_key, []))
        return [m for m in self.directory.list_staff() if m.is_active and m.id not in on_roster]

    def ordered_staff(self, date_key: str, blocked_ids: Iterable[str] = ()) -> list[StaffMember]:
        """
        Roster staff in display order.

        Available staff come first, staff blocked for the whole day last;
        each group is sorted by priority, ties keep roster order.
        """
        blocked = set(blocked_ids)
        roster = self.workers(date_key)
        position = {staff_id: index for index, staff_id in enumerate(roster)}
        members = [self.staff_for(staff_id) for staff_id in roster]

        def sort_key(member: StaffMember):
            return (member.priority, position[member.id])

        available = sorted((m for m in members if m.id not in blocked), key=sort_key)
        unavailable = sorted((m for m in members if m.id in blocked), key=sort_key)
        return available + unavailable
