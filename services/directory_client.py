"""Customer and staff directory clients."""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from models.entities import DEFAULT_PRIORITY, DEFAULT_STAFF_COLOR, ClientSnapshot, StaffMember
from services.appointment_api_client import client_from_payload

logger = logging.getLogger(__name__)


class _DirectoryClient:
    """Shared HTTP plumbing for the directory endpoints."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = (base_url or os.getenv("SALON_API_BASE_URL", "http://localhost:3000")).rstrip("/")
        self.timeout = timeout if timeout is not None else float(os.getenv("SALON_API_TIMEOUT", "5.0"))
        self._transport = transport

    def _get_json(self, path: str) -> Any:
        with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
            response = client.get(path, headers={"Cache-Control": "no-cache", "Pragma": "no-cache"})
            response.raise_for_status()
            return response.json()


class CustomerDirectoryClient(_DirectoryClient):
    """Resolves client references to contact snapshots."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._client_cache: Dict[str, ClientSnapshot] = {}

    def get_client(self, client_id: str) -> Optional[ClientSnapshot]:
        """
        Look up a customer by id.

        Returns:
            The snapshot, the last cached snapshot if the lookup fails, or None
        """
        if not client_id:
            return None
        try:
            data = self._get_json(f"/api/customers/{client_id}")
        except httpx.HTTPStatusError as e:
            logger.warning(f"Customer {client_id} lookup returned {e.response.status_code}")
            return self._client_cache.get(client_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Customer {client_id} lookup failed: {e}")
            return self._client_cache.get(client_id)

        snapshot = client_from_payload(data)
        if snapshot is not None:
            snapshot.id = snapshot.id or client_id
            self._client_cache[client_id] = snapshot
        return snapshot or self._client_cache.get(client_id)


def staff_from_payload(data: Dict[str, Any]) -> Optional[StaffMember]:
    staff_id = str(data.get("id") or "").strip()
    if not staff_id:
        return None
    priority = data.get("priority")
    return StaffMember(
        id=staff_id,
        name=str(data.get("name") or "").strip() or staff_id,
        color=data.get("color") or DEFAULT_STAFF_COLOR,
        priority=int(priority) if priority else DEFAULT_PRIORITY,
        is_active=bool(data.get("isActive", True))
    )


class StaffDirectoryClient(_DirectoryClient):
    """Loads staff metadata; keeps the last good list for offline use."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._staff_cache: Dict[str, StaffMember] = {}
        self._loaded = False

    def refresh(self) -> List[StaffMember]:
        """Reload staff from the API, falling back to the cached list on failure."""
        self._loaded = True
        try:
            data = self._get_json("/api/staff")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Staff fetch failed, using {len(self._staff_cache)} cached entries: {e}")
            return list(self._staff_cache.values())

        if isinstance(data, dict):
            data = data.get("staff", [])
        members = [m for m in (staff_from_payload(item) for item in data) if m is not None]
        self._staff_cache = {m.id: m for m in members}
        logger.info(f"Loaded {len(members)} staff members")
        return members

    def list_staff(self) -> List[StaffMember]:
        if not self._loaded:
            return self.refresh()
        return list(self._staff_cache.values())

    def get_staff(self, staff_id: str) -> Optional[StaffMember]:
        if not self._loaded:
            self.refresh()
        return self._staff_cache.get(staff_id)
