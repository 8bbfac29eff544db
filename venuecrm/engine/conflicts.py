"""
Conflict Detector - pure overlap queries over a list of bookings.

Intervals are half-open [start_slot, end_slot): back-to-back bookings
(a.end == b.start) do not conflict. Callers reject zero-length or inverted
intervals before asking.
"""

from datetime import date
from typing import Iterable, List, Optional, Tuple

from venuecrm.engine.timegrid import booking_slots
from venuecrm.models import Booking


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open interval overlap. Symmetric in its two intervals."""
    return a_start < b_end and a_end > b_start


def find_conflicts(
    bookings: Iterable[Booking],
    room_name: str,
    booking_date: date,
    start_slot: int,
    end_slot: int,
    exclude_booking_id: Optional[int] = None,
) -> List[Booking]:
    """Every booking in the same room and date overlapping the interval, by start slot."""
    found = []
    for b in bookings:
        if b.room_name != room_name or b.date != booking_date:
            continue
        if exclude_booking_id is not None and b.id == exclude_booking_id:
            continue
        b_start, b_end = booking_slots(b)
        if overlaps(start_slot, end_slot, b_start, b_end):
            found.append(b)
    found.sort(key=lambda b: booking_slots(b)[0])
    return found


def has_conflict(
    bookings: Iterable[Booking],
    room_name: str,
    booking_date: date,
    start_slot: int,
    end_slot: int,
    exclude_booking_id: Optional[int] = None,
) -> Optional[Booking]:
    """
    First booking (in scan order) that blocks the interval, or None.

    exclude_booking_id skips the booking being moved or edited.
    """
    for b in bookings:
        if b.room_name != room_name or b.date != booking_date:
            continue
        if exclude_booking_id is not None and b.id == exclude_booking_id:
            continue
        b_start, b_end = booking_slots(b)
        if overlaps(start_slot, end_slot, b_start, b_end):
            return b
    return None


def find_batch_conflicts(
    drafts: List[Booking],
    existing: Iterable[Booking],
) -> List[Tuple[int, List[Booking]]]:
    """
    Check a batch of drafts against stored bookings and against each other.

    Returns (draft_index, blocking_bookings) for every draft that overlaps
    something; a draft is compared with earlier drafts only, so of two
    overlapping drafts the later one is reported.
    """
    existing = list(existing)
    results = []
    for i, draft in enumerate(drafts):
        start, end = booking_slots(draft)
        blockers = find_conflicts(existing, draft.room_name, draft.date, start, end,
                                  exclude_booking_id=draft.id)
        blockers += find_conflicts(drafts[:i], draft.room_name, draft.date, start, end)
        if blockers:
            results.append((i, blockers))
    return results
