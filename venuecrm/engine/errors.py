"""
Scheduling errors.

ValidationError and ConflictError are user mistakes and carry a message that
can be shown as-is. PersistenceError wraps storage failures. SyncNotificationError
never leaves the sync module.
"""

from typing import List, Optional


class SchedulingError(Exception):
    """Base class for everything the scheduler core raises."""


class ValidationError(SchedulingError, ValueError):
    """Missing or malformed input: no room/date, bad minutes, end not after start."""


class ConflictError(SchedulingError):
    """The requested interval overlaps one or more existing bookings."""

    def __init__(self, conflicts: List, message: Optional[str] = None):
        self.conflicts = list(conflicts)
        super().__init__(message or self._describe())

    def _describe(self) -> str:
        if not self.conflicts:
            return "Conflict: the requested slot is already taken"
        b = self.conflicts[0]
        text = (
            f'Conflict: "{b.title}" is already booked in {b.room_name} on {b.date} '
            f'from {b.start_hour:02d}:{b.start_minute:02d} to {b.end_hour:02d}:{b.end_minute:02d}'
        )
        if len(self.conflicts) > 1:
            text += f" (+{len(self.conflicts) - 1} more)"
        return text


class PersistenceError(SchedulingError, RuntimeError):
    """The booking or inquiry store could not complete a read or write."""


class SyncNotificationError(SchedulingError):
    """Outbound CRM sync failed. Logged by the sync module, never propagated."""


class DragError(SchedulingError):
    """Illegal drag transition, e.g. grabbing a booking while another drag is active."""
