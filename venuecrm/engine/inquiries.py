"""
Inquiry pipeline - stage changes and inquiry-to-booking conversion.

Conversion takes 1 to MAX_DATE_OPTIONS DateOptions, expands each with the
shared recurrence setting, and commits the bookings together with the
inquiry's new stage in one transaction:

    any created booking confirmed -> 'reserved'
    otherwise                     -> 'option'

If the write fails, neither the bookings nor the stage change are kept.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from venuecrm.bus.events import bus, EVENT_INQUIRY_CONVERTED, EVENT_INQUIRY_STATUS_CHANGED
from venuecrm.config import config
from venuecrm.engine import recurrence, scheduler, store
from venuecrm.engine.errors import ValidationError
from venuecrm.logging_config import log_call
from venuecrm.models import Booking, DateOption, Inquiry, PIPELINE_STAGES, TERMINAL_STAGES

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    inquiry: Inquiry
    bookings: List[Booking] = field(default_factory=list)
    skipped: List[Booking] = field(default_factory=list)


def _get_or_fail(inquiry_id: int) -> Inquiry:
    inquiry = store.get_inquiry(inquiry_id)
    if inquiry is None:
        raise ValidationError(f"Inquiry #{inquiry_id} not found")
    return inquiry


def usable_options(options: Sequence[DateOption]) -> List[DateOption]:
    """
    Options that carry both a date and a room.
    Raises ValidationError for too many options or when none is usable.
    """
    if not options:
        raise ValidationError("Add at least one date option")
    if len(options) > config.MAX_DATE_OPTIONS:
        raise ValidationError(f"At most {config.MAX_DATE_OPTIONS} date options can be scheduled (got {len(options)})")
    usable = [o for o in options if o.date is not None and o.room_name]
    if not usable:
        raise ValidationError("Pick a date and a room for at least one option")
    return usable


def stage_after_conversion(bookings: Sequence[Booking]) -> str:
    return 'reserved' if any(b.status == 'confirmed' for b in bookings) else 'option'


def booking_template(inquiry: Inquiry) -> Booking:
    """Fields every booking of this inquiry inherits."""
    return Booking(
        title=inquiry.event_type or 'Reservation',
        contact_name=inquiry.contact_name,
        contact_id=inquiry.contact_id,
        inquiry_id=inquiry.id,
        guest_count=inquiry.guest_count or None,
        notes=inquiry.message,
    )


@log_call
def convert_inquiry(
    inquiry_id: int,
    options: Sequence[DateOption],
    recurrence_type: str = 'none',
    repeat_count: int = 1,
    conflict_policy: Optional[str] = None,
) -> ConversionResult:
    """
    Turn an inquiry plus its staged DateOptions into bookings and move the
    inquiry to 'reserved' or 'option'. One call is one conversion: there is
    no partial or incremental mode.
    """
    inquiry = _get_or_fail(inquiry_id)
    usable = usable_options(options)
    if len(usable) < len(options):
        logger.info(f"convert_inquiry: ignoring {len(options) - len(usable)} incomplete date options")

    drafts = recurrence.expand_options(booking_template(inquiry), usable, recurrence_type, repeat_count)
    plan = scheduler.plan_batch(drafts, conflict_policy)

    new_status = stage_after_conversion(plan.accepted)
    created = store.commit_conversion(plan.accepted, inquiry_id, new_status)

    previous_status = inquiry.status
    inquiry.status = new_status
    scheduler.announce_created(created)
    bus.emit(EVENT_INQUIRY_STATUS_CHANGED, {
        'inquiry_id': inquiry_id,
        'inquiry': inquiry,
        'previous_status': previous_status,
        'status': new_status,
    })
    bus.emit(EVENT_INQUIRY_CONVERTED, {'inquiry_id': inquiry_id, 'booking_ids': [b.id for b in created]})
    logger.info(f"Inquiry ID {inquiry_id} converted: {len(created)} bookings, stage {previous_status} -> {new_status}")
    return ConversionResult(inquiry=inquiry, bookings=created, skipped=plan.skipped)


@log_call
def change_inquiry_status(inquiry_id: int, status: str) -> Inquiry:
    """Move an inquiry to another pipeline stage."""
    if status not in PIPELINE_STAGES:
        raise ValidationError(f"Unknown pipeline stage '{status}'. Choose from: {', '.join(PIPELINE_STAGES)}")
    current = _get_or_fail(inquiry_id)
    if current.status == status:
        return current
    if current.status in TERMINAL_STAGES:
        logger.info(f"change_inquiry_status: reopening inquiry {inquiry_id} from terminal stage '{current.status}'")

    updated = store.update_inquiry_status(inquiry_id, status)
    if updated is None:
        raise ValidationError(f"Inquiry #{inquiry_id} not found")
    bus.emit(EVENT_INQUIRY_STATUS_CHANGED, {
        'inquiry_id': inquiry_id,
        'inquiry': updated,
        'previous_status': current.status,
        'status': status,
    })
    return updated


def get_inquiry(inquiry_id: int) -> Optional[Inquiry]:
    return store.get_inquiry(inquiry_id)


def list_inquiries(status: Optional[str] = None) -> List[Inquiry]:
    if status and status not in PIPELINE_STAGES:
        raise ValidationError(f"Unknown pipeline stage '{status}'")
    return store.list_inquiries(status=status)


def get_inquiry_bookings(inquiry_id: int) -> List[Booking]:
    """Bookings created from this inquiry (linked by inquiry_id)."""
    return store.list_bookings(inquiry_id=inquiry_id)
