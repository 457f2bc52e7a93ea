"""Best-effort remote persistence of local appointment changes."""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional, Protocol

from models.entities import Appointment
from models.errors import RemoteError, RemoteFindNotFound, RemoteTransportError, RemoteValidationError

logger = logging.getLogger(__name__)

SyncAction = Literal["create", "update", "delete"]


class AppointmentBackend(Protocol):
    """Persistence operations the queue needs."""

    def create_appointment(self, appointment: Appointment) -> dict:
        ...

    def update_appointment(self, appointment: Appointment) -> dict:
        ...

    def delete_appointment(self, appointment_id: str) -> None:
        ...


@dataclass
class SyncTask:
    """One remote write, built after the local change has been applied."""
    action: SyncAction
    appointment_id: str
    appointment: Optional[Appointment] = None  # snapshot sent for create/update
    on_success: Optional[Callable[[dict], None]] = None


@dataclass
class SyncOutcome:
    """Result of running a sync task."""
    task: SyncTask
    response: Optional[dict] = None
    error: Optional[RemoteError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def user_message(self) -> Optional[str]:
        """Message worth showing the operator; only validation failures qualify."""
        if isinstance(self.error, RemoteValidationError):
            return self.error.message
        return None


class SyncQueue:
    """
    FIFO of remote writes.

    Local state is always updated before a task is queued, so the queue
    never blocks the caller; the host loop drains it with flush(). A 404
    counts as success (the record is already gone remotely) and no failure
    ever rolls back local state.
    """

    def __init__(self, backend: AppointmentBackend):
        self.backend = backend
        self._pending: deque[SyncTask] = deque()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, task: SyncTask) -> None:
        self._pending.append(task)

    def flush(self) -> list[SyncOutcome]:
        """Run every queued task in order."""
        outcomes = []
        while self._pending:
            outcomes.append(self.run(self._pending.popleft()))
        return outcomes

    def run(self, task: SyncTask) -> SyncOutcome:
        """Send one task; remote errors are logged and returned, never raised."""
        try:
            response = self._send(task)
        except RemoteFindNotFound:
            logger.warning(f"Appointment {task.appointment_id} not found remotely on {task.action}, keeping local state")
            return SyncOutcome(task=task, response={})
        except RemoteTransportError as e:
            logger.error(f"Transport error on {task.action} of {task.appointment_id}, keeping local state: {e}")
            return SyncOutcome(task=task, error=e)
        except RemoteValidationError as e:
            logger.error(f"Server rejected {task.action} of {task.appointment_id} ({e.status_code}): {e.message}")
            return SyncOutcome(task=task, error=e)

        if task.on_success is not None:
            task.on_success(response or {})
        return SyncOutcome(task=task, response=response or {})

    def _send(self, task: SyncTask) -> Any:
        if task.action == "create":
            return self.backend.create_appointment(task.appointment)
        if task.action == "update":
            return self.backend.update_appointment(task.appointment)
        self.backend.delete_appointment(task.appointment_id)
        return {}
