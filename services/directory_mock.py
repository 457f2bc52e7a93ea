"""In-memory stand-ins for the salon's external services."""

from datetime import datetime
from typing import Optional

import pytz

from models.entities import Appointment, ClientSnapshot, StaffMember
from models.errors import RemoteError, RemoteFindNotFound
from services.appointment_api_client import appointment_to_payload


class StaffDirectoryMock:
    """Mock staff directory with synthetic data."""

    def __init__(self, staff: Optional[list[StaffMember]] = None):
        """Initialize with the given staff or a small synthetic team."""
        self._staff = staff if staff is not None else self._generate_staff()

    def _generate_staff(self) -> list[StaffMember]:
        """Generate synthetic staff members."""
        return [
            StaffMember(id="staff_001", name="Maria Lopez", color="#ef4444", priority=10),
            StaffMember(id="staff_002", name="Jenny Park", color="#10b981", priority=20),
            StaffMember(id="staff_003", name="Tom Reed", color="#6366f1", priority=20),
            StaffMember(id="staff_004", name="Alicia Gray", color="#ec4899", priority=50, is_active=False),
        ]

    def get_staff(self, staff_id: str) -> Optional[StaffMember]:
        for member in self._staff:
            if member.id == staff_id:
                return member
        return None

    def list_staff(self) -> list[StaffMember]:
        return self._staff.copy()


class CustomerDirectoryMock:
    """Mock customer directory."""

    def __init__(self, clients: Optional[list[ClientSnapshot]] = None):
        self._clients = {c.id: c for c in (clients or [])}
        self.lookups: list[str] = []

    def get_client(self, client_id: str) -> Optional[ClientSnapshot]:
        self.lookups.append(client_id)
        return self._clients.get(client_id)


class AppointmentBackendMock:
    """
    Mock persistence service keeping payloads in a dict.

    Set fail_with to an exception instance to make every call raise it.
    Set response_client to embed a resolved customer object in responses.
    """

    def __init__(self):
        self.records: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_with: Optional[RemoteError] = None
        self.response_client: Optional[dict] = None

    def _check(self, action: str, appointment_id: str) -> None:
        self.calls.append((action, appointment_id))
        if self.fail_with is not None:
            raise self.fail_with

    def _response(self, appointment_id: str) -> dict:
        response = dict(self.records[appointment_id])
        if self.response_client is not None:
            response["client"] = self.response_client
        return response

    def create_appointment(self, appointment: Appointment) -> dict:
        self._check("create", appointment.id)
        self.records[appointment.id] = appointment_to_payload(appointment)
        return self._response(appointment.id)

    def update_appointment(self, appointment: Appointment) -> dict:
        self._check("update", appointment.id)
        if appointment.id not in self.records:
            raise RemoteFindNotFound(appointment.id)
        self.records[appointment.id] = appointment_to_payload(appointment)
        return self._response(appointment.id)

    def delete_appointment(self, appointment_id: str) -> None:
        self._check("delete", appointment_id)
        if self.records.pop(appointment_id, None) is None:
            raise RemoteFindNotFound(appointment_id)


class NotificationServiceMock:
    """Mock notification trigger that records requests instead of sending them."""

    def __init__(self):
        self.sent: list[dict] = []

    def send_confirmation(self, appointment: Appointment) -> bool:
        self.sent.append({
            "type": "confirmation",
            "appointmentId": appointment.id,
            "phone": appointment.client.phone if appointment.client else "",
            "sent_at": datetime.now(pytz.UTC),
        })
        return True
