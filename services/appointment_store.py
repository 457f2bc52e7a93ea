"""Session-scoped appointment store, key-value storage and pending slot selection."""

import json
import logging
import time
from dataclasses import asdict
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional

from models.entities import (
    WALK_INS,
    Appointment,
    AppointmentKind,
    BlockMeta,
    BlockScope,
    ClientSnapshot,
    RecurrenceFrequency,
    RecurrencePattern,
    ScheduleEvent,
    ScheduleEventType,
    TimeSlotSelection,
)

logger = logging.getLogger(__name__)

Subscriber = Callable[[ScheduleEvent], None]


class KeyValueStore:
    """String key to JSON value storage, shaped like browser local storage."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable value stored under {key!r}")
            return default

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def appointment_to_record(appointment: Appointment) -> dict:
    """Full-fidelity JSON-friendly record of an appointment."""
    record = asdict(appointment)
    record["start"] = appointment.start.isoformat()
    record["end"] = appointment.end.isoformat()
    record["kind"] = appointment.kind.value
    if appointment.block_meta:
        record["block_meta"]["scope"] = appointment.block_meta.scope.value
    if appointment.recurrence:
        record["recurrence"]["frequency"] = appointment.recurrence.frequency.value
        end_date = appointment.recurrence.end_date
        record["recurrence"]["end_date"] = end_date.isoformat() if end_date else None
    return record


def appointment_from_record(record: dict) -> Appointment:
    """Inverse of appointment_to_record."""
    data = dict(record)
    data["start"] = datetime.fromisoformat(data["start"])
    data["end"] = datetime.fromisoformat(data["end"])
    data["kind"] = AppointmentKind(data.get("kind", AppointmentKind.SINGLE.value))
    if data.get("client"):
        data["client"] = ClientSnapshot(**data["client"])
    if data.get("block_meta"):
        meta = dict(data["block_meta"])
        meta["scope"] = BlockScope(meta.get("scope", BlockScope.PARTIAL.value))
        data["block_meta"] = BlockMeta(**meta)
    if data.get("recurrence"):
        pattern = dict(data["recurrence"])
        pattern["frequency"] = RecurrenceFrequency(pattern.get("frequency", "weekly"))
        if pattern.get("end_date"):
            pattern["end_date"] = date.fromisoformat(pattern["end_date"])
        data["recurrence"] = RecurrencePattern(**pattern)
    return Appointment(**data)


class AppointmentStore:
    """
    The single in-memory appointment collection for one calendar session.

    Mutations publish a ScheduleEvent to every subscriber and, when a
    key-value store is attached, write the collection through to it so the
    local copy stays authoritative across reloads.
    """

    STORAGE_KEY = "appointments"

    def __init__(self, storage: Optional[KeyValueStore] = None):
        """Initialize an empty store, optionally backed by key-value storage."""
        self.storage = storage
        self._appointments: dict[str, Appointment] = {}
        self._subscribers: list[Subscriber] = []

    def load(self) -> int:
        """Restore appointments from storage; returns how many were loaded."""
        if self.storage is None:
            return 0
        loaded = 0
        for record in self.storage.get(self.STORAGE_KEY, []):
            try:
                appointment = appointment_from_record(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping stored appointment {record.get('id')!r}: {e}")
                continue
            self._appointments[appointment.id] = appointment
            loaded += 1
        logger.info(f"Loaded {loaded} appointments from local storage")
        return loaded

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def get(self, appointment_id: str) -> Optional[Appointment]:
        return self._appointments.get(appointment_id)

    def all(self) -> list[Appointment]:
        return list(self._appointments.values())

    def in_series(self, series_id: str) -> list[Appointment]:
        """Members of a series ordered by start."""
        members = [a for a in self._appointments.values() if a.series_id == series_id]
        return sorted(members, key=lambda a: a.start)

    def between(self, start: datetime, end: datetime) -> list[Appointment]:
        """Appointments overlapping [start, end), ordered by start."""
        hits = [a for a in self._appointments.values() if a.start < end and start < a.end]
        return sorted(hits, key=lambda a: a.start)

    def add(self, appointments: Iterable[Appointment]) -> None:
        appointments = list(appointments)
        for appointment in appointments:
            self._appointments[appointment.id] = appointment
        self._publish(ScheduleEvent(
            type=ScheduleEventType.CREATED,
            appointment_ids=[a.id for a in appointments],
            appointments=appointments
        ))

    def set(self, appointment: Appointment) -> None:
        """Replace an appointment in place (or insert it if unknown)."""
        is_new = appointment.id not in self._appointments
        self._appointments[appointment.id] = appointment
        self._publish(ScheduleEvent(
            type=ScheduleEventType.CREATED if is_new else ScheduleEventType.UPDATED,
            appointment_ids=[appointment.id],
            appointments=[appointment]
        ))

    def remove(self, appointment_ids: Iterable[str]) -> list[str]:
        """Remove appointments by id; returns the ids that were present."""
        removed = [i for i in appointment_ids if self._appointments.pop(i, None) is not None]
        if removed:
            self._publish(ScheduleEvent(type=ScheduleEventType.DELETED, appointment_ids=removed))
        return removed

    def _publish(self, event: ScheduleEvent) -> None:
        if self.storage is not None:
            self.storage.set(
                self.STORAGE_KEY,
                [appointment_to_record(a) for a in self._appointments.values()]
            )
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Subscriber failed handling {event.type.value} event")


class SelectionStore:
    """Keeps the last clicked time slot across a reload for a short time."""

    STORAGE_KEY = "pendingTimeSlot"

    def __init__(
        self,
        storage: KeyValueStore,
        ttl_minutes: int = 15,
        clock: Callable[[], float] = time.time
    ):
        self.storage = storage
        self.ttl_seconds = ttl_minutes * 60
        self._clock = clock

    def save(self, selection: TimeSlotSelection) -> TimeSlotSelection:
        selection.persisted_at = self._clock()
        self.storage.set(self.STORAGE_KEY, {
            "start": _iso(selection.start),
            "end": _iso(selection.end),
            "resourceId": selection.resource_id,
            "dateKey": selection.date_key,
            "timeDisplay": selection.time_display,
            "persistedAt": selection.persisted_at,
        })
        return selection

    def restore(self, current_date_key: str) -> Optional[TimeSlotSelection]:
        """
        Return the pending selection for the viewed date.

        Selections for another date, expired ones and unreadable ones are
        discarded.
        """
        saved = self.storage.get(self.STORAGE_KEY)
        if not saved:
            return None
        if not saved.get("start") or not saved.get("end"):
            self.clear()
            return None
        if saved.get("dateKey") != current_date_key:
            logger.info(f"Saved time slot is for {saved.get('dateKey')}, not {current_date_key}; clearing")
            self.clear()
            return None
        persisted_at = saved.get("persistedAt")
        if isinstance(persisted_at, (int, float)) and self._clock() - persisted_at > self.ttl_seconds:
            logger.info("Saved time slot expired, clearing")
            self.clear()
            return None
        try:
            return TimeSlotSelection(
                start=datetime.fromisoformat(saved["start"]),
                end=datetime.fromisoformat(saved["end"]),
                resource_id=saved.get("resourceId") or WALK_INS,
                date_key=saved["dateKey"],
                time_display=saved.get("timeDisplay", ""),
                persisted_at=persisted_at
            )
        except ValueError as e:
            logger.warning(f"Discarding unreadable saved time slot: {e}")
            self.clear()
            return None

    def clear(self) -> None:
        self.storage.remove(self.STORAGE_KEY)
