"""
Recurrence Expander - one booking template in, the concrete occurrences out.

Every occurrence shares room, time of day, title, contact and status with the
template; only the date differs. The expander does not look at existing
bookings: each occurrence is conflict-checked by the scheduler at commit time.
"""

import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from venuecrm.config import config
from venuecrm.engine.errors import ValidationError
from venuecrm.models import Booking, DateOption, RECURRENCE_TYPES

logger = logging.getLogger(__name__)


def occurrence_date(base: date, recurrence_type: str, i: int) -> date:
    """Date of occurrence i (0-based). Month steps clamp to the month's last day."""
    if recurrence_type == 'weekly':
        return base + timedelta(days=7 * i)
    if recurrence_type == 'biweekly':
        return base + timedelta(days=14 * i)
    if recurrence_type == 'monthly':
        return base + relativedelta(months=i)
    if recurrence_type == 'quarterly':
        return base + relativedelta(months=3 * i)
    raise ValidationError(f"Recurrence '{recurrence_type}' has no date step")


def _check_repeat_count(repeat_count: int) -> None:
    if not 1 <= repeat_count <= config.MAX_REPEAT_COUNT:
        raise ValidationError(f"Repeat count must be between 1 and {config.MAX_REPEAT_COUNT} (got {repeat_count})")


def _normalize_dates(dates: Iterable[date]) -> List[date]:
    unique = sorted(set(d for d in dates if d is not None))
    if not unique:
        raise ValidationError("Pick at least one date")
    if len(unique) > config.MAX_REPEAT_COUNT:
        raise ValidationError(f"At most {config.MAX_REPEAT_COUNT} dates can be scheduled at once (got {len(unique)})")
    return unique


def expand(
    template: Booking,
    recurrence_type: str = 'none',
    repeat_count: int = 1,
    dates: Optional[Sequence[date]] = None,
) -> List[Booking]:
    """
    Expand a template into bookings, ascending by date.

    none           -> the template's own date, once
    weekly/...     -> repeat_count occurrences stepped from the template date
    specific_dates -> one occurrence per distinct date in `dates`
    """
    if recurrence_type not in RECURRENCE_TYPES:
        raise ValidationError(f"Unknown recurrence '{recurrence_type}'. Choose from: {', '.join(RECURRENCE_TYPES)}")

    if recurrence_type == 'specific_dates':
        occurrence_dates = _normalize_dates(dates or [])
    else:
        if template.date is None:
            raise ValidationError("Pick a date")
        if recurrence_type == 'none':
            occurrence_dates = [template.date]
        else:
            _check_repeat_count(repeat_count)
            occurrence_dates = [occurrence_date(template.date, recurrence_type, i) for i in range(repeat_count)]

    logger.debug(f"expand: {recurrence_type} x{len(occurrence_dates)} from {template.date} in {template.room_name}")
    return [replace(template, id=None, date=d, external_event_id=None, reservation_number=None)
            for d in occurrence_dates]


def option_template(base: Booking, option: DateOption) -> Booking:
    """Overlay a DateOption's room, date, time and status on a base template."""
    return replace(
        base,
        id=None,
        room_name=option.room_name,
        date=option.date,
        start_hour=option.start_hour,
        start_minute=option.start_minute,
        end_hour=option.end_hour,
        end_minute=option.end_minute,
        status=option.status,
    )


def expand_options(
    base: Booking,
    options: Sequence[DateOption],
    recurrence_type: str = 'none',
    repeat_count: int = 1,
) -> List[Booking]:
    """
    Expand several DateOptions with one shared recurrence setting.

    Output is ascending by date; bookings on the same date keep the order of
    the options they came from (sorted() is stable).
    """
    expanded = []
    for option in options:
        template = option_template(base, option)
        if recurrence_type == 'specific_dates':
            expanded.extend(expand(template, 'specific_dates', dates=[option.date]))
        else:
            expanded.extend(expand(template, recurrence_type, repeat_count))
    return sorted(expanded, key=lambda b: b.date)
