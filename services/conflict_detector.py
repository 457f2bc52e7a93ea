"""Blocked-time conflict detection."""

from datetime import date, datetime
from typing import Iterable, Optional, Union

from models.entities import WALK_INS, Appointment
from models.errors import ConflictRejected
from services.time_slot_resolver import TimeSlotResolver


class ConflictDetector:
    """Answers whether a resource is blocked at an instant or over a range."""

    def __init__(self, time_resolver: TimeSlotResolver):
        """Initialize with the resolver that defines the salon's local days."""
        self.time_resolver = time_resolver

    def _blocks_for(
        self,
        appointments: Iterable[Appointment],
        resource_id: str,
        ignore_ids: Iterable[str] = ()
    ) -> list[Appointment]:
        ignored = set(ignore_ids)
        return [
            a for a in appointments
            if a.is_blocked and a.resource_id == resource_id and a.id not in ignored
        ]

    def blocking_appointment(
        self,
        appointments: Iterable[Appointment],
        resource_id: str,
        instant: datetime,
        ignore_ids: Iterable[str] = ()
    ) -> Optional[Appointment]:
        """Blocked appointment on this resource covering the instant, if any."""
        if resource_id == WALK_INS:
            return None
        for block in self._blocks_for(appointments, resource_id, ignore_ids):
            if block.start <= instant < block.end:
                return block
        return None

    def blocking_interval(
        self,
        appointments: Iterable[Appointment],
        resource_id: str,
        start: datetime,
        end: datetime,
        ignore_ids: Iterable[str] = ()
    ) -> Optional[Appointment]:
        """Blocked appointment on this resource overlapping [start, end), if any."""
        if resource_id == WALK_INS:
            return None
        for block in self._blocks_for(appointments, resource_id, ignore_ids):
            if block.start < end and start < block.end:
                return block
        return None

    def is_blocked_all_day(
        self,
        appointments: Iterable[Appointment],
        resource_id: str,
        day: Union[date, datetime]
    ) -> bool:
        """True when one blocked record covers the whole local day."""
        day_start, day_end = self.time_resolver.day_bounds(day)
        return any(
            block.start <= day_start and block.end >= day_end
            for block in self._blocks_for(appointments, resource_id)
        )

    def blocked_all_day_ids(
        self,
        appointments: Iterable[Appointment],
        resource_ids: Iterable[str],
        day: Union[date, datetime]
    ) -> set[str]:
        appointments = list(appointments)
        return {rid for rid in resource_ids if self.is_blocked_all_day(appointments, rid, day)}

    def check(
        self,
        appointments: Iterable[Appointment],
        resource_id: str,
        start: datetime,
        end: Optional[datetime] = None,
        ignore_ids: Iterable[str] = ()
    ) -> None:
        """
        Reject a placement that lands in blocked time for the same resource.

        With no end, only the instant is checked (a click). With an end, any
        overlap with a block rejects the placement (a drop or resize).

        Raises:
            ConflictRejected: the resource is blocked
        """
        if end is None:
            block = self.blocking_appointment(appointments, resource_id, start, ignore_ids)
        else:
            block = self.blocking_interval(appointments, resource_id, start, end, ignore_ids)
        if block is not None:
            raise ConflictRejected(resource_id, block.id, block.block_meta.reason)
