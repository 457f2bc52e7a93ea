"""Appointment confirmation trigger."""

import logging
import os
from typing import Optional

import httpx

from models.entities import Appointment

logger = logging.getLogger(__name__)


class NotificationClient:
    """Asks the SMS service to send a booking confirmation; delivery happens elsewhere."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = (base_url or os.getenv("SALON_API_BASE_URL", "http://localhost:3000")).rstrip("/")
        self.timeout = timeout if timeout is not None else float(os.getenv("SALON_API_TIMEOUT", "5.0"))
        self._transport = transport

    def send_confirmation(self, appointment: Appointment) -> bool:
        """Trigger a confirmation for an appointment; returns whether the service accepted it."""
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    "/api/sms/appointment",
                    json={"type": "confirmation", "appointmentId": appointment.id}
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send SMS confirmation for {appointment.id}: {e}")
            return False
        logger.info(f"SMS confirmation requested for {appointment.id}")
        return True
