"""Exceptions raised by the scheduling engine."""

from typing import Optional


class SchedulingError(Exception):
    """Base class for scheduling engine errors."""


class TimeLabelError(SchedulingError):
    """A time-grid label could not be turned into a time of day."""


class UnparseableTimeLabel(TimeLabelError):
    """Label matched none of the supported time formats."""

    def __init__(self, label: str):
        super().__init__(f"Unrecognized time format: {label!r}")
        self.label = label


class InvalidTimeValue(TimeLabelError):
    """Label parsed but the hour or minute is out of range."""

    def __init__(self, hour: int, minute: int):
        super().__init__(f"Invalid time values: {hour}:{minute:02d}")
        self.hour = hour
        self.minute = minute


class InvalidAppointment(SchedulingError):
    """Appointment data violates an invariant (e.g. end before start)."""


class AppointmentNotFound(SchedulingError):
    """No appointment with the given id exists locally."""

    def __init__(self, appointment_id: str):
        super().__init__(f"Appointment {appointment_id} not found")
        self.appointment_id = appointment_id


class ConflictRejected(SchedulingError):
    """Target resource has blocked time at the requested slot."""

    def __init__(self, resource_id: str, blocking_id: str, reason: str = ""):
        message = f"{resource_id} is unavailable at this time"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.resource_id = resource_id
        self.blocking_id = blocking_id
        self.reason = reason


class InvalidRecurrencePattern(SchedulingError):
    """Recurrence rule cannot be expanded."""


class RemoteError(SchedulingError):
    """Base class for persistence service failures."""


class RemoteFindNotFound(RemoteError):
    """Persistence service does not know the appointment (HTTP 404)."""

    def __init__(self, appointment_id: str):
        super().__init__(f"Appointment {appointment_id} not found remotely")
        self.appointment_id = appointment_id


class RemoteTransportError(RemoteError):
    """Network failure or timeout talking to the persistence service."""


class RemoteValidationError(RemoteError):
    """Persistence service rejected the request with a non-2xx response."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        super().__init__(message or f"Request failed with status {status_code}")
        self.status_code = status_code
        self.message = message or f"Request failed with status {status_code}"
