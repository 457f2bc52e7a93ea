"""Calendar engine: turns UI events into scheduling operations."""

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional, Union

import pytz

from models.entities import (
    WALK_INS,
    WALK_INS_COLOR,
    Appointment,
    AppointmentKind,
    BlockMeta,
    BlockScope,
    BookingRequest,
    CalendarColumn,
    ColumnBounds,
    EditScope,
    GroupMember,
    OperationResult,
    ScheduleEvent,
    TimeSlotSelection,
)
from models.errors import InvalidAppointment, InvalidRecurrencePattern
from services.appointment_store import AppointmentStore, SelectionStore
from services.conflict_detector import ConflictDetector
from services.recurrence_planner import RecurrencePlanner
from services.resource_resolver import ResourceResolver
from services.schedule_formatter import ScheduleFormatter
from services.schedule_reconciler import ScheduleReconciler
from services.staff_roster import StaffRoster
from services.sync_queue import SyncOutcome
from services.time_slot_resolver import TimeSlotResolver

logger = logging.getLogger(__name__)


class CalendarEngine:
    """Entry point the calendar view calls for clicks, drags, resizes and form submits."""

    def __init__(
        self,
        store: AppointmentStore,
        roster: StaffRoster,
        time_resolver: TimeSlotResolver,
        resource_resolver: ResourceResolver,
        conflict_detector: ConflictDetector,
        planner: RecurrencePlanner,
        reconciler: ScheduleReconciler,
        selection_store: SelectionStore,
        formatter: Optional[ScheduleFormatter] = None,
        active_date: Optional[date] = None
    ):
        """Initialize the engine with its collaborators and the date being viewed."""
        self.store = store
        self.roster = roster
        self.time_resolver = time_resolver
        self.resource_resolver = resource_resolver
        self.conflicts = conflict_detector
        self.planner = planner
        self.reconciler = reconciler
        self.selection_store = selection_store
        self.formatter = formatter or ScheduleFormatter(time_resolver)
        self.active_date = active_date or time_resolver.local_date(datetime.now(pytz.UTC))
        self.creating = False

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    @property
    def date_key(self) -> str:
        return self.time_resolver.date_key(self.active_date)

    def set_active_date(self, day: Union[date, datetime]) -> None:
        self.active_date = self.time_resolver.local_date(day)
        logger.info(f"Calendar date changed to {self.date_key}")

    def subscribe(self, callback: Callable[[ScheduleEvent], None]) -> Callable[[], None]:
        return self.store.subscribe(callback)

    def add_worker(self, staff_id: str, date_key: Optional[str] = None) -> bool:
        return self.roster.add_worker(date_key or self.date_key, staff_id)

    def remove_worker(self, staff_id: str, date_key: Optional[str] = None) -> bool:
        return self.roster.remove_worker(date_key or self.date_key, staff_id)

    def _appointments_on(self, day: Union[date, datetime]) -> list[Appointment]:
        day_start, day_end = self.time_resolver.day_bounds(day)
        return self.store.between(day_start, day_end)

    def columns(self, day: Optional[date] = None) -> list[CalendarColumn]:
        """
        Resource columns for a day in display order.

        Appointments on that day are resolved first so staff they reference
        appear even if nobody added them to the roster.
        """
        day = day or self.active_date
        date_key = self.time_resolver.date_key(day)
        appointments = self._appointments_on(day)
        self.resource_resolver.assign_columns(appointments)

        all_appointments = self.store.all()
        blocked = self.conflicts.blocked_all_day_ids(all_appointments, self.roster.workers(date_key), day)
        staff = self.roster.ordered_staff(date_key, blocked)
        return self.formatter.build_columns(staff, blocked)

    def events(self, day: Optional[date] = None) -> list[dict[str, Any]]:
        """Display dictionaries for every appointment on a day."""
        day = day or self.active_date
        appointments = self._appointments_on(day)
        assignment = self.resource_resolver.assign_columns(appointments)
        events = []
        for appointment in appointments:
            column_id = assignment[appointment.id]
            color = WALK_INS_COLOR if column_id == WALK_INS else self.roster.staff_for(column_id).color
            events.append(self.formatter.format_appointment(appointment, column_id, color))
        return events

    # ------------------------------------------------------------------
    # Grid interactions
    # ------------------------------------------------------------------

    def handle_slot_click(
        self,
        time_label: str,
        explicit_resource_id: Optional[str] = None,
        click_x: Optional[float] = None,
        columns: Iterable[ColumnBounds] = ()
    ) -> OperationResult:
        """
        Turn a click on an empty grid cell into a pending time-slot selection.

        Clicks inside blocked time of the clicked column are rejected.
        """
        start, end = self.time_resolver.resolve(time_label, self.active_date)
        resource_id = self.resource_resolver.resolve_click(explicit_resource_id, click_x, columns)

        block = self.conflicts.blocking_appointment(self.store.all(), resource_id, start)
        if block is not None:
            reason = block.block_meta.reason or "blocked time"
            logger.info(f"Click on {resource_id} at {start.isoformat()} rejected: {reason}")
            return OperationResult(ok=False, message=f"This time is blocked for this staff member ({reason})")

        selection = self.selection_store.save(TimeSlotSelection(
            start=start,
            end=end,
            resource_id=resource_id,
            date_key=self.time_resolver.date_key(start),
            time_display=self.time_resolver.format_time_display(start)
        ))
        return OperationResult(ok=True, selection=selection)

    def restore_selection(self) -> Optional[TimeSlotSelection]:
        return self.selection_store.restore(self.date_key)

    def clear_selection(self) -> None:
        self.selection_store.clear()

    def handle_drop(
        self,
        appointment_id: str,
        start: datetime,
        end: Optional[datetime] = None,
        resource_id: Optional[str] = None
    ) -> OperationResult:
        """Drag-and-drop to a new time and optionally a new column."""
        return self.reconciler.move(appointment_id, start, end, resource_id)

    def handle_drop_on_label(
        self,
        appointment_id: str,
        time_label: str,
        explicit_resource_id: Optional[str] = None,
        click_x: Optional[float] = None,
        columns: Iterable[ColumnBounds] = ()
    ) -> OperationResult:
        """Drop reported as a grid label plus column, keeping the appointment's length."""
        start, _ = self.time_resolver.resolve(time_label, self.active_date)
        resource_id = None
        if explicit_resource_id or click_x is not None:
            resource_id = self.resource_resolver.resolve_click(explicit_resource_id, click_x, columns)
        return self.reconciler.move(appointment_id, start, resource_id=resource_id)

    def handle_resize(self, appointment_id: str, end: datetime, start: Optional[datetime] = None) -> OperationResult:
        return self.reconciler.resize(appointment_id, end, start)

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    def build_appointments(self, request: BookingRequest) -> list[Appointment]:
        """
        Concrete appointments for a booking form.

        Raises:
            InvalidAppointment: end not after start
            InvalidRecurrencePattern: unusable recurrence rule
        """
        block_meta = None
        if request.kind == AppointmentKind.BLOCKED:
            block_meta = request.block_meta or BlockMeta()
        template = Appointment(
            id=self.planner.new_id("apt"),
            start=request.start,
            end=request.end,
            resource_id=request.resource_id or WALK_INS,
            kind=request.kind,
            client_ref=request.client_ref,
            client=request.client,
            service_names=list(request.service_names),
            notes=request.notes,
            block_meta=block_meta
        )
        first_day = self.time_resolver.local_date(template.start)
        start_time = self.time_resolver.local_time(template.start)
        duration = template.duration_minutes

        if request.recurrence is not None:
            problems = self.planner.validate(request.recurrence, today=first_day)
            if problems:
                raise InvalidRecurrencePattern("; ".join(problems))

        if template.is_blocked:
            if block_meta.scope == BlockScope.FULL_DAY:
                return self.planner.expand_full_day_block(template, first_day, request.block_last_day)
            if block_meta.repeat_weekly:
                return self.planner.expand_weekly_block(template, first_day, start_time, duration)
            return [template]

        if request.kind == AppointmentKind.GROUP or request.group_members:
            members = request.group_members or [GroupMember(staff_id=template.resource_id)]
            if request.recurrence is not None:
                return self.planner.expand_group(
                    template, members, request.recurrence, first_day, start_time, duration
                )
            group_id = self.planner.new_id("group")
            return [
                replace(
                    template,
                    id=self.planner.new_id("apt"),
                    kind=AppointmentKind.GROUP,
                    resource_id=member.staff_id,
                    staff_name=member.staff_name or template.staff_name,
                    service_names=list(member.service_names or template.service_names),
                    is_walk_in=False,
                    group_id=group_id
                )
                for member in members
            ]

        if request.recurrence is not None:
            return self.planner.expand(template, request.recurrence, first_day, start_time, duration)
        return [template]

    def submit_booking(self, request: BookingRequest) -> OperationResult:
        """Create the appointments described by a booking form; ignores double submits."""
        if self.creating:
            logger.warning("Booking already in progress, ignoring duplicate submit")
            return OperationResult(ok=False, message="A booking is already being created")

        self.creating = True
        try:
            try:
                appointments = self.build_appointments(request)
            except (InvalidAppointment, InvalidRecurrencePattern) as e:
                return OperationResult(ok=False, message=str(e))
            result = self.reconciler.create(appointments, explicit=True)
            if result.ok:
                self.selection_store.clear()
            return result
        finally:
            self.creating = False

    def submit_edit(
        self,
        appointment_id: str,
        changes: dict[str, Any],
        scope: EditScope = EditScope.SINGLE
    ) -> OperationResult:
        return self.reconciler.edit(appointment_id, changes, scope, explicit=True)

    def delete_appointment(self, appointment_id: str, scope: EditScope = EditScope.SINGLE) -> OperationResult:
        return self.reconciler.delete(appointment_id, scope)

    def flush_sync(self) -> list[SyncOutcome]:
        """Push queued remote writes; call from the host loop after handling UI events."""
        return self.reconciler.sync_queue.flush()
