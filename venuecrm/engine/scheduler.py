"""
Scheduler - booking create / edit / move / copy / delete.

Every write is validated and conflict-checked against a fresh read of the
store before it is issued, and announced on the event bus after it lands.
Batch writes (recurrence, copies, inquiry conversion) are planned first
(validate, apply the conflict policy) and then stored in one transaction.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Optional, Sequence, Any

from venuecrm.bus.events import (
    bus, EVENT_BOOKING_CREATED, EVENT_BOOKING_UPDATED, EVENT_BOOKING_MOVED,
    EVENT_BOOKING_DELETED, EVENT_BOOKINGS_BATCH_CREATED,
)
from venuecrm.config import config
from venuecrm.engine import recurrence, store
from venuecrm.engine.conflicts import find_conflicts, find_batch_conflicts
from venuecrm.engine.errors import ConflictError, ValidationError
from venuecrm.engine.timegrid import (
    booking_slots, duration_slots, index_to_time, slot_index, validate_interval, TOTAL_SLOTS,
)
from venuecrm.logging_config import log_call
from venuecrm.models import Booking, BOOKING_STATUSES, PREPARATION_STATUSES

logger = logging.getLogger(__name__)

CONFLICT_POLICIES = ('reject', 'skip')

# Fields an edit may touch; id, timestamps and external ids are not editable
_EDITABLE_FIELDS = {
    'room_name', 'date', 'start_hour', 'start_minute', 'end_hour', 'end_minute',
    'title', 'contact_name', 'contact_id', 'status', 'guest_count', 'room_setup',
    'requirements', 'notes', 'preparation_status',
}
_SCHEDULING_FIELDS = {'room_name', 'date', 'start_hour', 'start_minute', 'end_hour', 'end_minute'}


@dataclass
class BatchPlan:
    """Drafts cleared for insert, plus those the conflict policy dropped."""
    accepted: List[Booking] = field(default_factory=list)
    skipped: List[Booking] = field(default_factory=list)


# =============================================================================
# VALIDATION
# =============================================================================

def validate_booking(booking: Booking) -> None:
    """Raise ValidationError unless the booking can be scheduled at all."""
    if not booking.room_name:
        raise ValidationError("Pick a room")
    if booking.date is None:
        raise ValidationError("Pick a date")
    validate_interval(booking.start_hour, booking.start_minute, booking.end_hour, booking.end_minute)
    if booking.status not in BOOKING_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(BOOKING_STATUSES)}")
    if booking.preparation_status not in PREPARATION_STATUSES:
        raise ValidationError(f"Preparation status must be one of: {', '.join(PREPARATION_STATUSES)}")
    if booking.room_name not in config.VENUE_ROOMS:
        logger.warning(f"validate_booking: room '{booking.room_name}' is not a configured calendar column")


def _check_policy(conflict_policy: Optional[str]) -> str:
    policy = conflict_policy or config.RECURRENCE_CONFLICT_POLICY
    if policy not in CONFLICT_POLICIES:
        raise ValidationError(f"Unknown conflict policy '{policy}'. Choose from: {', '.join(CONFLICT_POLICIES)}")
    return policy


# =============================================================================
# CONFLICT CHECKS
# =============================================================================

def find_blocking(booking: Booking, exclude_booking_id: Optional[int] = None) -> List[Booking]:
    """Stored bookings that overlap this one (same room and date)."""
    existing = store.list_bookings(room_name=booking.room_name, booking_date=booking.date)
    start, end = booking_slots(booking)
    return find_conflicts(existing, booking.room_name, booking.date, start, end, exclude_booking_id)


def ensure_available(booking: Booking, exclude_booking_id: Optional[int] = None) -> None:
    """Raise ConflictError naming every booking in the way."""
    blocking = find_blocking(booking, exclude_booking_id)
    if blocking:
        error = ConflictError(blocking)
        logger.warning(f"ensure_available: {error}")
        raise error


def plan_batch(drafts: Sequence[Booking], conflict_policy: Optional[str] = None) -> BatchPlan:
    """
    Validate a batch and apply the conflict policy without writing anything.

    reject -> ConflictError listing every blocker if any draft conflicts
    skip   -> conflicting drafts are dropped, the rest go ahead
    """
    policy = _check_policy(conflict_policy)
    drafts = list(drafts)
    if not drafts:
        raise ValidationError("Nothing to schedule")
    for draft in drafts:
        validate_booking(draft)

    existing: List[Booking] = []
    for room_name, booking_date in sorted({(d.room_name, d.date) for d in drafts}):
        existing.extend(store.list_bookings(room_name=room_name, booking_date=booking_date))

    conflicts = find_batch_conflicts(drafts, existing)

    if not conflicts:
        return BatchPlan(accepted=drafts)

    if policy == 'reject':
        blockers = []
        for _, found in conflicts:
            blockers.extend(b for b in found if b not in blockers)
        error = ConflictError(blockers)
        logger.warning(f"plan_batch: {len(conflicts)} of {len(drafts)} occurrences conflict — {error}")
        raise error

    # A draft is measured against stored bookings and the drafts kept so far;
    # a skipped draft never blocks a later one.
    plan = BatchPlan(accepted=[])
    blockers: List[Booking] = []
    for draft in drafts:
        start, end = booking_slots(draft)
        found = find_conflicts(existing, draft.room_name, draft.date, start, end,
                               exclude_booking_id=draft.id)
        found += find_conflicts(plan.accepted, draft.room_name, draft.date, start, end)
        if found:
            plan.skipped.append(draft)
            blockers.extend(b for b in found if b not in blockers)
        else:
            plan.accepted.append(draft)
    logger.warning(f"plan_batch: skipping {len(plan.skipped)} conflicting occurrences")
    if not plan.accepted:
        raise ConflictError(blockers)
    return plan


def announce_created(bookings: List[Booking]) -> None:
    for booking in bookings:
        bus.emit(EVENT_BOOKING_CREATED, {'booking_id': booking.id, 'booking': booking})
    if len(bookings) > 1:
        bus.emit(EVENT_BOOKINGS_BATCH_CREATED, {'booking_ids': [b.id for b in bookings]})


# =============================================================================
# CREATE
# =============================================================================

@log_call
def create_booking(booking: Booking) -> Booking:
    """Validate, conflict-check and store one booking."""
    validate_booking(booking)
    ensure_available(booking)
    created = store.create_booking(booking)
    announce_created([created])
    return created


@log_call
def create_bookings(drafts: Sequence[Booking], conflict_policy: Optional[str] = None) -> BatchPlan:
    """Store a batch in one transaction. Returns the plan with stored bookings as `accepted`."""
    plan = plan_batch(drafts, conflict_policy)
    created = store.create_bookings(plan.accepted)
    announce_created(created)
    return BatchPlan(accepted=created, skipped=plan.skipped)


@log_call
def create_recurring_booking(
    template: Booking,
    recurrence_type: str = 'none',
    repeat_count: int = 1,
    dates: Optional[Sequence[date]] = None,
    conflict_policy: Optional[str] = None,
) -> BatchPlan:
    """Expand a template with a recurrence rule and store every occurrence."""
    occurrences = recurrence.expand(template, recurrence_type, repeat_count, dates)
    return create_bookings(occurrences, conflict_policy)


@log_call
def copy_booking(booking_id: int, dates: Sequence[date], conflict_policy: Optional[str] = None) -> BatchPlan:
    """Duplicate a stored booking onto explicit dates (same room, time, title)."""
    source = store.get_booking(booking_id)
    if source is None:
        raise ValidationError(f"Booking #{booking_id} not found")
    template = replace(source, preparation_status='pending', created_at=None, updated_at=None)
    copies = recurrence.expand(template, 'specific_dates', dates=dates)
    return create_bookings(copies, conflict_policy)


# =============================================================================
# EDIT / MOVE / DELETE
# =============================================================================

def _get_or_fail(booking_id: int) -> Booking:
    booking = store.get_booking(booking_id)
    if booking is None:
        raise ValidationError(f"Booking #{booking_id} not found")
    return booking


@log_call
def update_booking(booking_id: int, updates: Dict[str, Any]) -> Booking:
    """
    Edit or resize a booking.
    Room/date/time changes are conflict-checked with the booking itself excluded.
    """
    invalid = set(updates.keys()) - _EDITABLE_FIELDS
    if invalid:
        raise ValidationError(f"Invalid booking fields: {invalid}")

    current = _get_or_fail(booking_id)
    if not updates:
        return current

    edited = replace(current, **updates)
    validate_booking(edited)
    if _SCHEDULING_FIELDS & set(updates.keys()):
        ensure_available(edited, exclude_booking_id=booking_id)

    saved = store.update_booking(edited)
    if saved is None:
        raise ValidationError(f"Booking #{booking_id} not found")
    bus.emit(EVENT_BOOKING_UPDATED, {'booking_id': booking_id, 'booking': saved, 'updates': sorted(updates)})
    return saved


@log_call
def move_booking(booking_id: int, room_name: str, start_hour: int, start_minute: int = 0) -> Booking:
    """
    Move a booking to another room and/or start time, keeping its duration.
    A conflict leaves the booking untouched.
    """
    current = _get_or_fail(booking_id)
    length = duration_slots(current)
    new_start = slot_index(start_hour, start_minute)
    if new_start + length > TOTAL_SLOTS - 1:
        raise ValidationError("The booking would run past the end of the operating day")

    end_hour, end_minute = index_to_time(new_start + length)
    moved = replace(
        current,
        room_name=room_name,
        start_hour=start_hour,
        start_minute=start_minute,
        end_hour=end_hour,
        end_minute=end_minute,
    )
    validate_booking(moved)
    ensure_available(moved, exclude_booking_id=booking_id)

    saved = store.update_booking(moved)
    if saved is None:
        raise ValidationError(f"Booking #{booking_id} not found")
    logger.info(f"Moved booking ID {booking_id} to {room_name} {start_hour:02d}:{start_minute:02d}")
    bus.emit(EVENT_BOOKING_MOVED, {
        'booking_id': booking_id,
        'booking': saved,
        'from_room': current.room_name,
        'from_start': (current.start_hour, current.start_minute),
    })
    return saved


@log_call
def delete_booking(booking_id: int) -> bool:
    """Delete a booking. Returns False if it did not exist."""
    current = store.get_booking(booking_id)
    if current is None:
        return False
    deleted = store.delete_booking(booking_id)
    if deleted:
        bus.emit(EVENT_BOOKING_DELETED, {
            'booking_id': booking_id,
            'external_event_id': current.external_event_id,
        })
    return deleted


# =============================================================================
# QUERIES
# =============================================================================

def list_bookings(**filters) -> List[Booking]:
    return store.list_bookings(**filters)


def get_day_schedule(booking_date: date, rooms: Optional[Sequence[str]] = None) -> Dict[str, List[Booking]]:
    """
    Bookings of one day grouped per room column, each column in slot order.
    Bookings in rooms that are not columns are grouped under their own name
    after the configured rooms.
    """
    columns = list(rooms or config.VENUE_ROOMS)
    schedule: Dict[str, List[Booking]] = {room: [] for room in columns}
    for booking in store.list_bookings(booking_date=booking_date):
        schedule.setdefault(booking.room_name, []).append(booking)
    for room_bookings in schedule.values():
        room_bookings.sort(key=lambda b: booking_slots(b)[0])
    return schedule
