"""Single mutation surface for the in-memory appointment set."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from models.entities import (
    ANY_STAFF_NAME,
    WALK_INS,
    Appointment,
    ClientSnapshot,
    EditScope,
    OperationResult,
    RecurrencePattern,
)
from models.errors import (
    AppointmentNotFound,
    ConflictRejected,
    InvalidAppointment,
    InvalidRecurrencePattern,
)
from services.appointment_api_client import client_from_payload
from services.appointment_store import AppointmentStore
from services.conflict_detector import ConflictDetector
from services.recurrence_planner import RecurrencePlanner
from services.staff_roster import StaffRoster
from services.sync_queue import SyncQueue, SyncTask
from services.time_slot_resolver import TimeSlotResolver

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({
    "start",
    "end",
    "resource_id",
    "kind",
    "client_ref",
    "client",
    "service_names",
    "notes",
    "status",
    "staff_name",
    "is_walk_in",
    "block_meta",
    "recurrence",
})


class CustomerLookup(Protocol):
    def get_client(self, client_id: str) -> Optional[ClientSnapshot]:
        ...


class Notifier(Protocol):
    def send_confirmation(self, appointment: Appointment) -> bool:
        ...


class ScheduleReconciler:
    """
    Applies create, move, resize, edit and delete operations.

    Every operation is two-phase: the change is validated and applied to
    the AppointmentStore synchronously, then a SyncTask is queued for the
    persistence service. Implicit operations (drag, resize, delete) leave
    their tasks for the host loop to flush and only log remote failures.
    Explicit form submissions (create, edit) flush immediately and report
    validation failures in OperationResult.remote_error. Local state is
    never rolled back because of a remote failure.
    """

    def __init__(
        self,
        store: AppointmentStore,
        conflict_detector: ConflictDetector,
        roster: StaffRoster,
        planner: RecurrencePlanner,
        sync_queue: SyncQueue,
        time_resolver: TimeSlotResolver,
        customer_directory: Optional[CustomerLookup] = None,
        notifier: Optional[Notifier] = None
    ):
        self.store = store
        self.conflicts = conflict_detector
        self.roster = roster
        self.planner = planner
        self.sync_queue = sync_queue
        self.time_resolver = time_resolver
        self.customer_directory = customer_directory
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, appointment_id: str) -> Appointment:
        appointment = self.store.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFound(appointment_id)
        return appointment

    def _staff_name(self, resource_id: str) -> str:
        if not resource_id or resource_id == WALK_INS:
            return ANY_STAFF_NAME
        return self.roster.staff_for(resource_id).name

    def _assignment_changes(self, resource_id: str) -> dict[str, Any]:
        return {
            "resource_id": resource_id,
            "is_walk_in": resource_id == WALK_INS,
            "staff_name": self._staff_name(resource_id),
        }

    def _resolve_client(self, appointment: Appointment) -> Appointment:
        """Attach a contact snapshot when only a client reference is known."""
        if appointment.client is not None or not appointment.client_ref or self.customer_directory is None:
            return appointment
        snapshot = self.customer_directory.get_client(appointment.client_ref)
        if snapshot is None:
            logger.warning(f"Client {appointment.client_ref} could not be resolved for {appointment.id}")
            return appointment
        return replace(appointment, client=snapshot)

    def _prepare_new(self, appointment: Appointment) -> Appointment:
        changes: dict[str, Any] = {}
        if appointment.resource_id == WALK_INS:
            changes["is_walk_in"] = True
            changes["staff_name"] = ANY_STAFF_NAME
        elif appointment.staff_name == ANY_STAFF_NAME or not appointment.staff_name:
            changes["staff_name"] = self._staff_name(appointment.resource_id)
        if changes:
            appointment = replace(appointment, **changes)
        return self._resolve_client(appointment)

    def _register_staff(self, appointments: Iterable[Appointment]) -> None:
        for appointment in appointments:
            if appointment.staff_id and not appointment.is_walk_in:
                self.roster.add_worker(self.time_resolver.date_key(appointment.start), appointment.staff_id)

    def _check_bookable(self, appointments: Iterable[Appointment], ignore_ids: Iterable[str] = ()) -> None:
        existing = self.store.all()
        ignore_ids = list(ignore_ids)
        for appointment in appointments:
            if appointment.is_blocked:
                continue
            self.conflicts.check(
                existing, appointment.resource_id, appointment.start, appointment.end,
                ignore_ids=ignore_ids + [appointment.id]
            )

    def _sync(self, tasks: list[SyncTask], explicit: bool) -> Optional[str]:
        """Queue tasks; for explicit operations run them now and return a user-facing error."""
        for task in tasks:
            self.sync_queue.submit(task)
        if not explicit:
            return None
        mine = {id(task) for task in tasks}
        for outcome in self.sync_queue.flush():
            if id(outcome.task) in mine and outcome.user_message:
                return outcome.user_message
        return None

    def _refine(self, sent: Appointment, response: dict) -> None:
        """Merge richer server data into the local copy unless any field changed since it was sent."""
        current = self.store.get(sent.id)
        if current is None:
            logger.debug(f"Appointment {sent.id} deleted before the server replied, discarding response")
            return
        if current != sent:
            logger.warning(f"Discarding stale server response for {sent.id}")
            return
        client = client_from_payload(response.get("client"))
        if client is not None and client != current.client:
            self.store.set(replace(current, client=client, client_ref=current.client_ref or client.id))

    def _on_created(self, sent: Appointment, response: dict) -> None:
        self._refine(sent, response)
        appointment = self.store.get(sent.id) or sent
        if self.notifier is None or appointment.is_blocked:
            return
        if appointment.client is not None and appointment.client.has_contact:
            self.notifier.send_confirmation(appointment)

    def _update_task(self, appointment: Appointment) -> SyncTask:
        return SyncTask(
            action="update",
            appointment_id=appointment.id,
            appointment=appointment,
            on_success=lambda response: self._refine(appointment, response)
        )

    def _create_task(self, appointment: Appointment) -> SyncTask:
        return SyncTask(
            action="create",
            appointment_id=appointment.id,
            appointment=appointment,
            on_success=lambda response: self._on_created(appointment, response)
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(self, appointments: Iterable[Appointment], explicit: bool = True) -> OperationResult:
        """
        Add new appointments (a booking, a series, a group or blocked time).

        Non-blocked appointments landing in blocked time of their own
        resource reject the whole batch before anything is stored.
        """
        prepared = [self._prepare_new(a) for a in appointments]
        if not prepared:
            return OperationResult(ok=False, message="Nothing to create")
        try:
            self._check_bookable(prepared)
        except ConflictRejected as e:
            logger.warning(f"Create rejected: {e}")
            return OperationResult(ok=False, message=str(e))

        self.store.add(prepared)
        self._register_staff(prepared)
        logger.info(f"Created {len(prepared)} appointment(s) starting {prepared[0].start.isoformat()}")

        remote_error = self._sync([self._create_task(a) for a in prepared], explicit)
        return OperationResult(
            ok=True,
            appointments=[self.store.get(a.id) or a for a in prepared],
            remote_error=remote_error
        )

    def move(
        self,
        appointment_id: str,
        start: datetime,
        end: Optional[datetime] = None,
        resource_id: Optional[str] = None,
        explicit: bool = False
    ) -> OperationResult:
        """
        Move an appointment to a new time and optionally a new column.

        Without an end the duration is kept. Every field other than the
        placement (client snapshot, services, notes, group and series
        linkage) is carried over unchanged.
        """
        current = self._require(appointment_id)
        target = resource_id or current.resource_id
        end = end or start + (current.end - current.start)
        if end <= start:
            return OperationResult(ok=False, message="Appointment must end after it starts")

        try:
            self.conflicts.check(self.store.all(), target, start, end, ignore_ids=[current.id])
        except ConflictRejected as e:
            logger.warning(f"Move of {appointment_id} rejected: {e}")
            return OperationResult(ok=False, appointments=[current], message=str(e))

        changes: dict[str, Any] = {"start": start, "end": end}
        if target != current.resource_id:
            changes.update(self._assignment_changes(target))
        updated = replace(current, **changes)
        self.store.set(updated)
        self._register_staff([updated])
        logger.info(f"Moved {appointment_id} to {target} at {updated.start.isoformat()}")

        remote_error = self._sync([self._update_task(updated)], explicit)
        return OperationResult(ok=True, appointments=[updated], remote_error=remote_error)

    def resize(
        self,
        appointment_id: str,
        end: datetime,
        start: Optional[datetime] = None,
        explicit: bool = False
    ) -> OperationResult:
        """Change an appointment's length, keeping its column."""
        current = self._require(appointment_id)
        return self.move(appointment_id, start or current.start, end, explicit=explicit)

    def edit(
        self,
        appointment_id: str,
        changes: dict[str, Any],
        scope: EditScope = EditScope.SINGLE,
        explicit: bool = True
    ) -> OperationResult:
        """
        Apply a form edit to one occurrence, this and later ones, or the whole series.

        Series edits with a known recurrence pattern delete the affected
        occurrences and expand the edited appointment again, producing new
        ids under a fresh series id.

        Raises:
            AppointmentNotFound: unknown id
            InvalidAppointment: changes name fields that cannot be edited
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidAppointment(f"Cannot edit fields: {', '.join(sorted(unknown))}")

        current = self._require(appointment_id)
        changes = dict(changes)
        if "resource_id" in changes and changes["resource_id"] != current.resource_id:
            assignment = self._assignment_changes(changes["resource_id"])
            for key, value in assignment.items():
                changes.setdefault(key, value)
        if "client_ref" in changes and changes["client_ref"] != current.client_ref:
            changes.setdefault("client", None)

        try:
            edited = self._resolve_client(replace(current, **changes))
        except InvalidAppointment as e:
            return OperationResult(ok=False, appointments=[current], message=str(e))

        if scope == EditScope.SINGLE or not current.series_id:
            return self._edit_single(current, edited, explicit)

        members = self.store.in_series(current.series_id)
        if current.group_id:
            members = [m for m in members if m.resource_id == current.resource_id]
        if scope == EditScope.FUTURE:
            members = [m for m in members if m.start >= current.start]

        pattern = edited.recurrence
        if pattern is None:
            return self._edit_each(current, edited, members, explicit)
        return self._reexpand(current, edited, members, pattern, scope, explicit)

    def _edit_single(self, current: Appointment, edited: Appointment, explicit: bool) -> OperationResult:
        if edited.placement != current.placement:
            try:
                self._check_bookable([edited])
            except ConflictRejected as e:
                logger.warning(f"Edit of {current.id} rejected: {e}")
                return OperationResult(ok=False, appointments=[current], message=str(e))

        self.store.set(edited)
        self._register_staff([edited])
        remote_error = self._sync([self._update_task(edited)], explicit)
        return OperationResult(ok=True, appointments=[edited], remote_error=remote_error)

    def _edit_each(
        self,
        current: Appointment,
        edited: Appointment,
        members: list[Appointment],
        explicit: bool
    ) -> OperationResult:
        """Apply an edit to series members that have no pattern to re-expand (block runs)."""
        shift = edited.start - current.start
        duration = edited.end - edited.start
        field_changes = {
            name: getattr(edited, name)
            for name in EDITABLE_FIELDS - {"start", "end"}
            if getattr(edited, name) != getattr(current, name)
        }
        updated = []
        for member in members:
            start = member.start + shift
            end = start + duration if shift or duration != current.end - current.start else member.end
            updated.append(replace(member, start=start, end=end, **field_changes))

        try:
            self._check_bookable(updated, ignore_ids=[m.id for m in members])
        except ConflictRejected as e:
            return OperationResult(ok=False, appointments=[current], message=str(e))

        for appointment in updated:
            self.store.set(appointment)
        self._register_staff(updated)
        remote_error = self._sync([self._update_task(a) for a in updated], explicit)
        return OperationResult(ok=True, appointments=updated, remote_error=remote_error)

    def _reexpand(
        self,
        current: Appointment,
        edited: Appointment,
        members: list[Appointment],
        pattern: RecurrencePattern,
        scope: EditScope,
        explicit: bool
    ) -> OperationResult:
        anchor_member = members[0] if members else current
        day_shift = self.time_resolver.local_date(edited.start) - self.time_resolver.local_date(current.start)
        anchor_date = self.time_resolver.local_date(anchor_member.start) + day_shift
        start_time = self.time_resolver.local_time(edited.start)
        if scope == EditScope.FUTURE and pattern.end_after_occurrences is not None:
            pattern = replace(pattern, end_after_occurrences=len(members))

        try:
            if scope == EditScope.SERIES and not current.group_id:
                _, fresh = self.planner.replace_series(
                    self.store.all(), current.series_id, edited, pattern,
                    anchor_date, start_time, edited.duration_minutes
                )
            else:
                fresh = self.planner.expand(edited, pattern, anchor_date, start_time, edited.duration_minutes)
        except InvalidRecurrencePattern as e:
            return OperationResult(ok=False, appointments=[current], message=str(e))

        old_ids = [m.id for m in members]
        try:
            self._check_bookable(fresh, ignore_ids=old_ids)
        except ConflictRejected as e:
            logger.warning(f"Series edit of {current.series_id} rejected: {e}")
            return OperationResult(ok=False, appointments=[current], message=str(e))

        removed = self.store.remove(old_ids)
        self.store.add(fresh)
        self._register_staff(fresh)
        logger.info(f"Replaced {len(removed)} occurrences of {current.series_id} with {len(fresh)} new ones")

        tasks = [SyncTask(action="delete", appointment_id=i) for i in removed]
        tasks.extend(SyncTask(action="create", appointment_id=a.id, appointment=a) for a in fresh)
        remote_error = self._sync(tasks, explicit)
        return OperationResult(ok=True, appointments=fresh, removed_ids=removed, remote_error=remote_error)

    def delete(
        self,
        appointment_id: str,
        scope: EditScope = EditScope.SINGLE,
        explicit: bool = False
    ) -> OperationResult:
        """
        Remove one occurrence, this and later occurrences, or the whole series.

        A single-scope delete of one day of a full-day block run removes
        only that day. Scopes other than SINGLE on a non-series appointment
        behave as SINGLE.
        """
        current = self._require(appointment_id)
        if scope == EditScope.SERIES and current.series_id:
            targets = self.store.in_series(current.series_id)
        elif scope == EditScope.FUTURE and current.series_id:
            targets = [m for m in self.store.in_series(current.series_id) if m.start >= current.start]
        else:
            targets = [current]

        removed = self.store.remove([t.id for t in targets])
        logger.info(f"Deleted {len(removed)} appointment(s) with scope {scope.value} from {appointment_id}")

        tasks = [SyncTask(action="delete", appointment_id=i) for i in removed]
        remote_error = self._sync(tasks, explicit)
        return OperationResult(ok=True, removed_ids=removed, remote_error=remote_error)
