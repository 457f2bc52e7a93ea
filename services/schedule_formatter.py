"""Plain-data formatting of calendar columns and appointments for the rendering layer."""

from typing import Any, Dict, Iterable, List

from models.entities import (
    WALK_IN_CLIENT_NAME,
    WALK_INS,
    WALK_INS_COLOR,
    Appointment,
    CalendarColumn,
    StaffMember,
)
from services.recurrence_planner import RecurrencePlanner
from services.time_slot_resolver import TimeSlotResolver

BLOCKED_COLOR = "#6b7280"
GROUP_COLOR = "#8b5cf6"
RECURRING_COLOR = "#5B72F6"
CANCELLED_COLOR = "#dc2626"


class ScheduleFormatter:
    """Formats engine state into the dictionaries the calendar view consumes."""

    def __init__(self, time_resolver: TimeSlotResolver):
        self.time_resolver = time_resolver

    @staticmethod
    def build_columns(staff: Iterable[StaffMember], blocked_ids: Iterable[str] = ()) -> List[CalendarColumn]:
        """Columns for ordered staff followed by the walk-ins pool."""
        blocked = set(blocked_ids)
        columns = [
            CalendarColumn(
                id=member.id,
                title=member.name,
                color=member.color,
                order=index,
                is_blocked=member.id in blocked,
                is_placeholder=member.is_placeholder
            )
            for index, member in enumerate(staff)
        ]
        columns.append(CalendarColumn(id=WALK_INS, title="Walk-ins", color=WALK_INS_COLOR, order=len(columns)))
        return columns

    @staticmethod
    def client_name(appointment: Appointment) -> str:
        """Display name of the client, with fallbacks when the record is missing."""
        if appointment.is_blocked:
            return appointment.block_meta.reason or "Blocked Time"
        if appointment.client is not None and appointment.client.full_name:
            return appointment.client.full_name
        return WALK_IN_CLIENT_NAME

    def format_time_range(self, appointment: Appointment) -> str:
        start = self.time_resolver.format_time_display(appointment.start)
        end = self.time_resolver.format_time_display(appointment.end)
        return f"{start} - {end}"

    @staticmethod
    def colors(appointment: Appointment, staff_color: str) -> Dict[str, str]:
        if appointment.is_blocked:
            return {"backgroundColor": BLOCKED_COLOR, "borderColor": "#4b5563", "textColor": "#ffffff"}
        if appointment.group_id:
            return {"backgroundColor": GROUP_COLOR, "borderColor": "#7c3aed", "textColor": "#ffffff"}
        if appointment.status == "cancelled":
            return {"backgroundColor": CANCELLED_COLOR, "borderColor": "#b91c1c", "textColor": "#ffffff"}
        if appointment.series_id and appointment.recurrence is not None:
            return {"backgroundColor": RECURRING_COLOR, "borderColor": RECURRING_COLOR, "textColor": "#ffffff"}
        return {"backgroundColor": staff_color, "borderColor": staff_color, "textColor": "#ffffff"}

    def format_appointment(self, appointment: Appointment, column_id: str, staff_color: str) -> Dict[str, Any]:
        """Event dictionary for one appointment placed in a column."""
        services = appointment.service_names
        title = self.client_name(appointment)
        if services and not appointment.is_blocked:
            title = f"{title} - {', '.join(services)}"

        event = {
            "id": appointment.id,
            "title": title,
            "start": appointment.start.isoformat(),
            "end": appointment.end.isoformat(),
            "resourceId": column_id,
            "timeRange": self.format_time_range(appointment),
            "clientName": self.client_name(appointment),
            "staffName": appointment.staff_name,
            "services": list(services),
            "appointmentType": appointment.kind.value,
            "status": appointment.status,
            "notes": appointment.notes,
            "seriesId": appointment.series_id,
            "groupId": appointment.group_id,
        }
        event.update(self.colors(appointment, staff_color))
        if appointment.recurrence is not None and appointment.occurrence_number:
            event["seriesLabel"] = (
                f"{RecurrencePlanner.describe(appointment.recurrence)} "
                f"({appointment.occurrence_number} of {appointment.total_occurrences})"
            )
        return event
