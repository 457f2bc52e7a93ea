"""Appointment persistence API client."""

import logging
import os
from typing import Any, Dict, Optional

import httpx

from models.entities import WALK_INS, Appointment, ClientSnapshot
from models.errors import RemoteFindNotFound, RemoteTransportError, RemoteValidationError

logger = logging.getLogger(__name__)


def appointment_to_payload(appointment: Appointment) -> Dict[str, Any]:
    """Request body understood by the appointments API."""
    block_meta = appointment.block_meta
    return {
        "id": appointment.id,
        "title": appointment.client.full_name if appointment.client else "Appointment",
        "start": appointment.start.isoformat(),
        "end": appointment.end.isoformat(),
        "appointmentType": appointment.kind.value,
        "notes": appointment.notes or "",
        "blockReason": block_meta.reason if block_meta else "",
        "blockType": block_meta.scope.value if block_meta else None,
        "repeatWeekly": block_meta.repeat_weekly if block_meta else None,
        "selectedServices": list(appointment.service_names),
        "selectedStaff": appointment.staff_id,
        "selectedClient": appointment.client_ref or "",
        "isWalkIn": appointment.is_walk_in or appointment.resource_id == WALK_INS,
        "staffName": appointment.staff_name,
        "seriesId": appointment.series_id,
        "groupId": appointment.group_id,
        "status": appointment.status,
    }


def client_from_payload(data: Optional[Dict[str, Any]]) -> Optional[ClientSnapshot]:
    """Customer object embedded in an API response, if it has a name."""
    if not data or not isinstance(data, dict):
        return None
    first_name = str(data.get("firstName") or "").strip()
    if not first_name:
        return None
    return ClientSnapshot(
        id=data.get("id"),
        first_name=first_name,
        last_name=str(data.get("lastName") or "").strip(),
        phone=str(data.get("phone") or "").strip(),
        email=str(data.get("email") or "").strip()
    )


class AppointmentApiClient:
    """Client for the /api/appointments endpoints."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize the appointments API client.

        Args:
            base_url: API root (defaults to env var SALON_API_BASE_URL)
            timeout: Request timeout in seconds (defaults to env var SALON_API_TIMEOUT)
            transport: Optional httpx transport, used by tests to stub the server
        """
        self.base_url = (base_url or os.getenv("SALON_API_BASE_URL", "http://localhost:3000")).rstrip("/")
        self.timeout = timeout if timeout is not None else float(os.getenv("SALON_API_TIMEOUT", "5.0"))
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Content-Type": "application/json", "Cache-Control": "no-cache"}
        )

    def _request(
        self,
        method: str,
        path: str,
        appointment_id: Optional[str] = None,
        **kwargs
    ) -> Any:
        """
        Send a request and decode the JSON body.

        Raises:
            RemoteFindNotFound: 404 for an id-addressed request
            RemoteValidationError: any other non-2xx response
            RemoteTransportError: network failure or timeout
        """
        try:
            with self._client() as client:
                response = client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise RemoteTransportError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404 and appointment_id is not None:
            raise RemoteFindNotFound(appointment_id)

        if response.is_error:
            message = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    message = body.get("error") or body.get("message")
            except ValueError:
                message = response.text or None
            raise RemoteValidationError(response.status_code, message)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            logger.warning(f"Non-JSON response from {method} {path}")
            return {}

    def create_appointment(self, appointment: Appointment) -> Dict[str, Any]:
        return self._request("POST", "/api/appointments", json=appointment_to_payload(appointment))

    def update_appointment(self, appointment: Appointment) -> Dict[str, Any]:
        return self._request(
            "PUT",
            f"/api/appointments/{appointment.id}",
            appointment_id=appointment.id,
            json=appointment_to_payload(appointment)
        )

    def delete_appointment(self, appointment_id: str) -> None:
        self._request("DELETE", f"/api/appointments/{appointment_id}", appointment_id=appointment_id)
