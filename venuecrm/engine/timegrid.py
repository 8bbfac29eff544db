"""
Time Model - wall-clock times <-> slot indexes on the operating day.

The operating day runs 07:00 through 01:45 the next morning in 15-minute
slots. Hours 0 and 1 are the post-midnight tail and map after hour 23:

    07:00 -> 0    23:45 -> 67    00:00 -> 68    01:45 -> 75

All duration and overlap arithmetic goes through slot indexes; raw hour
fields are never compared across midnight.
"""

from typing import Tuple

from venuecrm.engine.errors import ValidationError

FIRST_HOUR = 7
SLOTS_PER_HOUR = 4
SLOT_MINUTES = 15
HOURS = tuple(range(FIRST_HOUR, 24)) + (0, 1)  # 07:00–01:00, display order
TOTAL_SLOTS = len(HOURS) * SLOTS_PER_HOUR  # 76
QUARTER_MINUTES = (0, 15, 30, 45)


def is_operating_hour(hour: int) -> bool:
    return hour in HOURS


def hour_to_index(hour: int) -> int:
    """Row index of an hour on the operating day: 7 -> 0, 23 -> 16, 0 -> 17, 1 -> 18."""
    if not is_operating_hour(hour):
        raise ValidationError(f"Hour {hour} is outside the operating window (07:00–01:45)")
    if hour >= FIRST_HOUR:
        return hour - FIRST_HOUR
    return hour + (24 - FIRST_HOUR)


def slot_index(hour: int, minute: int = 0) -> int:
    """Zero-based slot index for a wall-clock time."""
    if not 0 <= minute < 60:
        raise ValidationError(f"Minute {minute} is out of range")
    return hour_to_index(hour) * SLOTS_PER_HOUR + minute // SLOT_MINUTES


def index_to_time(slot: int) -> Tuple[int, int]:
    """Inverse of slot_index. Out-of-range slots are clamped to the window."""
    clamped = max(0, min(slot, TOTAL_SLOTS - 1))
    hour_idx, quarter = divmod(clamped, SLOTS_PER_HOUR)
    return HOURS[hour_idx], quarter * SLOT_MINUTES


def format_time(hour: int, minute: int = 0) -> str:
    return f"{hour:02d}:{minute:02d}"


def format_slot(slot: int) -> str:
    return format_time(*index_to_time(slot))


def parse_time(text: str) -> Tuple[int, int]:
    """Parse 'HH:MM' (or 'H') into (hour, minute). Raises ValidationError."""
    raw = (text or '').strip()
    try:
        if ':' in raw:
            hour_str, minute_str = raw.split(':', 1)
            hour, minute = int(hour_str), int(minute_str)
        else:
            hour, minute = int(raw), 0
    except ValueError:
        raise ValidationError(f"Invalid time {text!r} — use HH:MM")
    if not 0 <= hour < 24 or not 0 <= minute < 60:
        raise ValidationError(f"Invalid time {text!r} — use HH:MM")
    return hour, minute


def validate_interval(start_hour: int, start_minute: int, end_hour: int, end_minute: int) -> Tuple[int, int]:
    """
    Check a booking interval and return its (start_slot, end_slot).

    Minutes must sit on the quarter hour, both ends inside the operating
    window, and the end strictly after the start.
    """
    for label, minute in (('start', start_minute), ('end', end_minute)):
        if minute not in QUARTER_MINUTES:
            raise ValidationError(f"The {label} minute must be one of 0, 15, 30, 45 (got {minute})")
    start = slot_index(start_hour, start_minute)
    end = slot_index(end_hour, end_minute)
    if end <= start:
        raise ValidationError(
            f"End time {format_time(end_hour, end_minute)} must be after "
            f"start time {format_time(start_hour, start_minute)}"
        )
    return start, end


def booking_slots(booking) -> Tuple[int, int]:
    """(start_slot, end_slot) of anything with start/end hour and minute fields."""
    return (
        slot_index(booking.start_hour, booking.start_minute or 0),
        slot_index(booking.end_hour, booking.end_minute or 0),
    )


def duration_slots(booking) -> int:
    start, end = booking_slots(booking)
    return end - start
