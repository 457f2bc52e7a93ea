"""Tests for the HTTP clients, using httpx.MockTransport instead of a live server."""

import json

import httpx
import pytest

from models.entities import WALK_INS
from models.errors import RemoteFindNotFound, RemoteTransportError, RemoteValidationError
from services.appointment_api_client import (
    AppointmentApiClient,
    appointment_to_payload,
    client_from_payload,
)
from services.directory_client import CustomerDirectoryClient, StaffDirectoryClient
from services.notification_client import NotificationClient

BASE_URL = "http://salon.test"


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class TestPayloads:
    """Tests for request and response mapping."""

    def test_booking_payload(self, make_appointment, client_ana):
        appointment = make_appointment(
            client=client_ana, client_ref="cust_1", service_names=["Cut"], staff_name="Maria Lopez"
        )
        payload = appointment_to_payload(appointment)

        assert payload["title"] == "Ana Silva"
        assert payload["appointmentType"] == "single"
        assert payload["selectedStaff"] == "staff_001"
        assert payload["selectedClient"] == "cust_1"
        assert payload["selectedServices"] == ["Cut"]
        assert payload["isWalkIn"] is False
        assert payload["staffName"] == "Maria Lopez"
        assert payload["start"] == appointment.start.isoformat()

    def test_walk_in_payload(self, make_appointment):
        payload = appointment_to_payload(make_appointment(resource_id=WALK_INS))
        assert payload["selectedStaff"] is None
        assert payload["isWalkIn"] is True
        assert payload["title"] == "Appointment"

    def test_block_payload(self, make_block):
        payload = appointment_to_payload(make_block(reason="Lunch"))
        assert payload["appointmentType"] == "blocked"
        assert payload["blockReason"] == "Lunch"
        assert payload["blockType"] == "partial"

    def test_client_without_first_name_ignored(self):
        assert client_from_payload({"lastName": "Silva"}) is None
        assert client_from_payload(None) is None
        assert client_from_payload({"firstName": " Ana ", "phone": "555"}).first_name == "Ana"


class TestAppointmentApiClient:
    """Tests for status code handling."""

    def test_create_posts_payload(self, make_appointment):
        recorder = Recorder(httpx.Response(201, json={"id": "apt-test1", "status": "scheduled"}))
        client = AppointmentApiClient(BASE_URL, 1.0, transport=recorder.transport)
        appointment = make_appointment(id="apt-test1")

        assert client.create_appointment(appointment) == {"id": "apt-test1", "status": "scheduled"}
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/appointments"
        assert json.loads(request.content)["id"] == "apt-test1"

    def test_update_not_found(self, make_appointment):
        recorder = Recorder(httpx.Response(404, json={"error": "Not found"}))
        client = AppointmentApiClient(BASE_URL, 1.0, transport=recorder.transport)
        with pytest.raises(RemoteFindNotFound):
            client.update_appointment(make_appointment(id="apt-gone"))
        assert recorder.requests[0].url.path == "/api/appointments/apt-gone"

    def test_validation_error_message(self, make_appointment):
        recorder = Recorder(httpx.Response(422, json={"error": "Staff member is not working"}))
        client = AppointmentApiClient(BASE_URL, 1.0, transport=recorder.transport)
        with pytest.raises(RemoteValidationError) as exc_info:
            client.create_appointment(make_appointment())
        assert exc_info.value.status_code == 422
        assert exc_info.value.message == "Staff member is not working"

    def test_non_json_error_body(self, make_appointment):
        recorder = Recorder(httpx.Response(500, text="Internal error"))
        client = AppointmentApiClient(BASE_URL, 1.0, transport=recorder.transport)
        with pytest.raises(RemoteValidationError) as exc_info:
            client.create_appointment(make_appointment())
        assert exc_info.value.message == "Internal error"

    def test_transport_failure(self, make_appointment):
        recorder = Recorder(httpx.ConnectError("connection refused"))
        client = AppointmentApiClient(BASE_URL, 1.0, transport=recorder.transport)
        with pytest.raises(RemoteTransportError):
            client.create_appointment(make_appointment())

    def test_delete_with_empty_body(self):
        recorder = Recorder(httpx.Response(204))
        client = AppointmentApiClient(BASE_URL, 1.0, transport=recorder.transport)
        client.delete_appointment("apt-1")
        assert recorder.requests[0].method == "DELETE"

    def test_base_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("SALON_API_BASE_URL", "http://env.salon.test/")
        monkeypatch.setenv("SALON_API_TIMEOUT", "2.5")
        client = AppointmentApiClient()
        assert client.base_url == "http://env.salon.test"
        assert client.timeout == 2.5


class TestCustomerDirectoryClient:
    """Tests for customer lookups."""

    def test_lookup_and_cached_fallback(self):
        recorder = Recorder(
            httpx.Response(200, json={"firstName": "Ana", "lastName": "Silva", "phone": "+15550100"}),
            httpx.Response(503, text="unavailable"),
        )
        directory = CustomerDirectoryClient(BASE_URL, 1.0, transport=recorder.transport)

        first = directory.get_client("cust_1")
        assert first.full_name == "Ana Silva"
        assert first.id == "cust_1"
        assert directory.get_client("cust_1") == first
        assert recorder.requests[0].url.path == "/api/customers/cust_1"

    def test_unknown_customer(self):
        recorder = Recorder(httpx.Response(404, json={"error": "Not found"}))
        directory = CustomerDirectoryClient(BASE_URL, 1.0, transport=recorder.transport)
        assert directory.get_client("cust_404") is None


class TestStaffDirectoryClient:
    """Tests for staff loading."""

    def test_staff_loaded_once(self):
        recorder = Recorder(httpx.Response(200, json={"staff": [
            {"id": "staff_001", "name": "Maria Lopez", "color": "#ef4444", "priority": 10},
            {"id": "staff_002", "name": "Jenny Park"},
            {"name": "No Id"},
        ]}))
        directory = StaffDirectoryClient(BASE_URL, 1.0, transport=recorder.transport)

        assert [m.id for m in directory.list_staff()] == ["staff_001", "staff_002"]
        assert directory.get_staff("staff_001").priority == 10
        assert directory.get_staff("staff_002").priority == 50
        assert directory.get_staff("staff_404") is None
        assert len(recorder.requests) == 1

    def test_failed_fetch_not_retried_on_every_lookup(self):
        recorder = Recorder(httpx.ConnectError("connection refused"))
        directory = StaffDirectoryClient(BASE_URL, 1.0, transport=recorder.transport)
        assert directory.get_staff("staff_001") is None
        assert directory.get_staff("staff_002") is None
        assert len(recorder.requests) == 1


class TestNotificationClient:
    """Tests for confirmation triggers."""

    def test_confirmation_request(self, make_appointment):
        recorder = Recorder(httpx.Response(200, json={"success": True}))
        notifier = NotificationClient(BASE_URL, 1.0, transport=recorder.transport)
        assert notifier.send_confirmation(make_appointment(id="apt-42")) is True
        request = recorder.requests[0]
        assert request.url.path == "/api/sms/appointment"
        assert json.loads(request.content) == {"type": "confirmation", "appointmentId": "apt-42"}

    def test_failure_returns_false(self, make_appointment):
        recorder = Recorder(httpx.Response(500, text="SMS provider down"))
        notifier = NotificationClient(BASE_URL, 1.0, transport=recorder.transport)
        assert notifier.send_confirmation(make_appointment()) is False
