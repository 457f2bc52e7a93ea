"""Decides which calendar column a click or appointment belongs to."""

import logging
from typing import Iterable, Optional

from models.entities import WALK_INS, Appointment, ColumnBounds
from services.staff_roster import StaffRoster
from services.time_slot_resolver import TimeSlotResolver

logger = logging.getLogger(__name__)


class ResourceResolver:
    """Maps clicks and appointments to a staff id or the walk-ins pool."""

    def __init__(self, roster: StaffRoster, time_resolver: TimeSlotResolver):
        self.roster = roster
        self.time_resolver = time_resolver

    def resolve_click(
        self,
        explicit_resource_id: Optional[str] = None,
        click_x: Optional[float] = None,
        columns: Iterable[ColumnBounds] = ()
    ) -> str:
        """
        Resource for a click on the time grid.

        The grid cell's own resource id wins. Without one, the column whose
        [left, right) range holds the click x-coordinate is used, then the
        column with the nearest center. Never raises.
        """
        if explicit_resource_id:
            return explicit_resource_id

        columns = list(columns)
        if click_x is None or not columns:
            return WALK_INS

        for column in columns:
            if column.left <= click_x < column.right:
                return column.resource_id or WALK_INS

        closest = min(columns, key=lambda c: abs(c.center - click_x))
        logger.debug(f"Click at x={click_x} outside all columns, using closest column {closest.resource_id}")
        return closest.resource_id or WALK_INS

    def resolve_appointment(self, appointment: Appointment) -> str:
        """
        Column an appointment is displayed in.

        Staff ids missing from the roster are registered for the
        appointment's own date so the appointment is never misplaced.
        """
        if appointment.is_walk_in:
            return WALK_INS

        staff_id = (appointment.staff_id or "").strip()
        if not staff_id:
            return WALK_INS

        date_key = self.time_resolver.date_key(appointment.start)
        if not self.roster.contains(date_key, staff_id):
            logger.info(f"Auto-adding worker {staff_id} for appointment {appointment.id} on {date_key}")
            self.roster.add_worker(date_key, staff_id)
        return staff_id

    def assign_columns(self, appointments: Iterable[Appointment]) -> dict[str, str]:
        """Column id for each appointment id."""
        return {a.id: self.resolve_appointment(a) for a in appointments}
