"""
Drag/Move Engine - relocate a booking on the day grid by pointer.

The grid is one column per room, 16 px per 15-minute slot, slot 0 at the
top (07:00). A drag lives in a serializable DragState that is passed through
pure handler functions:

    state = start_drag(None, booking, pointer_y, layout)        # grab
    state = drag_to(state, x, y, layout, day_bookings)          # every move
    saved = release(state, day_bookings)                        # drop
    state = None

Every move recomputes the candidate (room, start slot) and classifies it as
'valid' or 'conflict'. Releasing outside all room columns, or on the original
position, is a no-op. A conflict at release raises ConflictError and nothing
is written. DragSession keeps the single state slot for callers that want
an object.
"""

import logging
from dataclasses import asdict, dataclass, replace
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Any

from venuecrm.engine import scheduler
from venuecrm.engine.conflicts import has_conflict
from venuecrm.engine.errors import ConflictError, DragError
from venuecrm.engine.timegrid import booking_slots, index_to_time, TOTAL_SLOTS, SLOTS_PER_HOUR
from venuecrm.models import Booking

logger = logging.getLogger(__name__)

QUARTER_HEIGHT = 16  # px per 15-minute slot
HOUR_HEIGHT = QUARTER_HEIGHT * SLOTS_PER_HOUR

PREVIEW_VALID = 'valid'
PREVIEW_CONFLICT = 'conflict'


# =============================================================================
# GRID GEOMETRY
# =============================================================================

@dataclass
class RoomColumn:
    """Horizontal extent of one room column, in grid pixels (edges inclusive)."""
    room_name: str
    left: float
    right: float


@dataclass
class GridLayout:
    columns: List[RoomColumn]
    quarter_height: float = QUARTER_HEIGHT

    @classmethod
    def evenly(cls, rooms: Iterable[str], column_width: float, left: float = 0.0,
               quarter_height: float = QUARTER_HEIGHT) -> 'GridLayout':
        """Columns of equal width laid out left to right."""
        columns = []
        for i, room in enumerate(rooms):
            col_left = left + i * column_width
            columns.append(RoomColumn(room, col_left, col_left + column_width))
        return cls(columns, quarter_height)

    def room_at(self, x: float) -> Optional[str]:
        """Room whose column contains x; the first match wins on a shared edge."""
        for column in self.columns:
            if column.left <= x <= column.right:
                return column.room_name
        return None

    def slot_top(self, slot: int) -> float:
        return slot * self.quarter_height


# =============================================================================
# DRAG STATE
# =============================================================================

@dataclass
class DragState:
    booking_id: int
    booking_date: date
    offset_slots: int
    original_room: str
    original_start_slot: int
    duration_slots: int
    candidate_room: Optional[str] = None
    candidate_slot: Optional[int] = None
    preview: Optional[str] = None
    conflict_booking_id: Optional[int] = None

    @property
    def has_candidate(self) -> bool:
        return self.candidate_room is not None and self.candidate_slot is not None

    @property
    def is_changed(self) -> bool:
        return self.has_candidate and (
            self.candidate_room != self.original_room or self.candidate_slot != self.original_start_slot
        )

    @property
    def candidate_end_slot(self) -> Optional[int]:
        if self.candidate_slot is None:
            return None
        return self.candidate_slot + self.duration_slots

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['booking_date'] = self.booking_date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DragState':
        values = dict(data)
        if isinstance(values.get('booking_date'), str):
            values['booking_date'] = date.fromisoformat(values['booking_date'])
        return cls(**values)


def start_drag(state: Optional[DragState], booking: Booking, pointer_y: float, layout: GridLayout) -> DragState:
    """
    Grab a booking. pointer_y is the pointer position inside the column; the
    slot offset to the booking's top edge is kept so it does not jump.
    """
    if state is not None:
        raise DragError(f"Booking #{state.booking_id} is already being dragged")
    start, end = booking_slots(booking)
    offset = round((pointer_y - layout.slot_top(start)) / layout.quarter_height)
    logger.debug(f"start_drag: booking {booking.id} from {booking.room_name} slot {start}, offset {offset}")
    return DragState(
        booking_id=booking.id,
        booking_date=booking.date,
        offset_slots=offset,
        original_room=booking.room_name,
        original_start_slot=start,
        duration_slots=end - start,
    )


def drag_to(state: DragState, pointer_x: float, pointer_y: float,
            layout: GridLayout, day_bookings: Iterable[Booking]) -> DragState:
    """Recompute candidate position and preview for a pointer move."""
    room = layout.room_at(pointer_x)
    if room is None:
        return replace(state, candidate_room=None, candidate_slot=None, preview=None, conflict_booking_id=None)

    slot = round(pointer_y / layout.quarter_height - state.offset_slots)
    slot = max(0, min(slot, TOTAL_SLOTS - 1 - state.duration_slots))

    blocker = has_conflict(day_bookings, room, state.booking_date, slot, slot + state.duration_slots,
                           exclude_booking_id=state.booking_id)
    return replace(
        state,
        candidate_room=room,
        candidate_slot=slot,
        preview=PREVIEW_CONFLICT if blocker else PREVIEW_VALID,
        conflict_booking_id=blocker.id if blocker else None,
    )


def release(state: Optional[DragState], day_bookings: Iterable[Booking],
            commit: Optional[Callable[..., Booking]] = None) -> Optional[Booking]:
    """
    Drop the booking at its candidate position.

    Returns the saved booking, or None when there was nothing to do. The
    caller discards the state afterwards, whatever the outcome.
    """
    if state is None or not state.is_changed:
        return None

    blocker = has_conflict(day_bookings, state.candidate_room, state.booking_date,
                           state.candidate_slot, state.candidate_end_slot,
                           exclude_booking_id=state.booking_id)
    if blocker:
        error = ConflictError([blocker])
        logger.warning(f"release: move of booking {state.booking_id} aborted — {error}")
        raise error

    commit = commit or scheduler.move_booking
    hour, minute = index_to_time(state.candidate_slot)
    return commit(state.booking_id, state.candidate_room, hour, minute)


def cancel_drag(state: Optional[DragState]) -> None:
    """Abandon a drag. Nothing is written; there is no state to keep."""
    if state is not None:
        logger.debug(f"cancel_drag: booking {state.booking_id}")
    return None


# =============================================================================
# SESSION WRAPPER
# =============================================================================

class DragSession:
    """
    One day grid's interaction state: the day's bookings and at most one drag.
    """

    def __init__(self, layout: GridLayout, bookings: Iterable[Booking] = (),
                 commit: Optional[Callable[..., Booking]] = None):
        self.layout = layout
        self.bookings: List[Booking] = list(bookings)
        self.commit = commit
        self.state: Optional[DragState] = None

    @property
    def is_dragging(self) -> bool:
        return self.state is not None

    def load(self, bookings: Iterable[Booking]):
        """Replace the day's bookings, e.g. after a re-fetch."""
        self.bookings = list(bookings)

    def grab(self, booking_id: int, pointer_y: float) -> DragState:
        booking = next((b for b in self.bookings if b.id == booking_id), None)
        if booking is None:
            raise DragError(f"Booking #{booking_id} is not on this grid")
        self.state = start_drag(self.state, booking, pointer_y, self.layout)
        return self.state

    def pointer_move(self, pointer_x: float, pointer_y: float) -> Optional[DragState]:
        if self.state is None:
            return None
        self.state = drag_to(self.state, pointer_x, pointer_y, self.layout, self.bookings)
        return self.state

    def release(self) -> Optional[Booking]:
        try:
            saved = release(self.state, self.bookings, self.commit)
        finally:
            self.state = None
        if saved is not None:
            self.bookings = [saved if b.id == saved.id else b for b in self.bookings]
        return saved

    def cancel(self):
        self.state = cancel_drag(self.state)
