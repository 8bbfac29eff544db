"""
Booking Store - Database Operations
CRUD over bookings, inquiries, contact/company lookups and room settings.
No scheduling rules live here: callers run the conflict checks before writing.
The bookings table's exclusion constraint is the last line against races.
"""

import logging
from contextlib import contextmanager
from dataclasses import fields
from datetime import date
from typing import List, Optional, Dict, Any

import psycopg2
from psycopg2 import errors as pg_errors

from venuecrm.db.connection import get_db_cursor
from venuecrm.engine.errors import ConflictError, PersistenceError
from venuecrm.engine.timegrid import booking_slots
from venuecrm.models import Booking, Inquiry, Contact, Company, RoomSetting

logger = logging.getLogger(__name__)

_BOOKING_INSERT = """
    INSERT INTO bookings (
        reservation_number, room_name, date, start_hour, start_minute,
        end_hour, end_minute, start_slot, end_slot, title, contact_name,
        contact_id, inquiry_id, status, guest_count, room_setup, requirements,
        notes, preparation_status, external_event_id, created_at, updated_at
    ) VALUES (
        %(reservation_number)s, %(room_name)s, %(date)s, %(start_hour)s, %(start_minute)s,
        %(end_hour)s, %(end_minute)s, %(start_slot)s, %(end_slot)s, %(title)s, %(contact_name)s,
        %(contact_id)s, %(inquiry_id)s, %(status)s, %(guest_count)s, %(room_setup)s,
        %(requirements)s, %(notes)s, %(preparation_status)s, %(external_event_id)s, NOW(), NOW()
    ) RETURNING *
"""


@contextmanager
def db_cursor():
    """get_db_cursor() with driver errors translated into scheduling errors."""
    try:
        with get_db_cursor() as cur:
            yield cur
    except pg_errors.ExclusionViolation as e:
        logger.warning(f"Storage rejected overlapping booking: {e}")
        raise ConflictError([], "Conflict: another booking was saved in this slot just now — reload and try again") from e
    except psycopg2.Error as e:
        logger.error(f"Booking store failure: {e}")
        raise PersistenceError(f"Database error: {e}") from e


def _from_row(cls, row: Optional[Dict[str, Any]]):
    """Build a dataclass from a row, ignoring columns the model does not carry."""
    if row is None:
        return None
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in row.items() if k in names})


def _booking_params(booking: Booking) -> Dict[str, Any]:
    params = dict(booking.__dict__)
    params['start_slot'], params['end_slot'] = booking_slots(booking)
    return params


# =============================================================================
# BOOKINGS
# =============================================================================

def list_bookings(
    room_name: Optional[str] = None,
    booking_date: Optional[date] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
    inquiry_id: Optional[int] = None,
    contact_id: Optional[int] = None,
    limit: int = 1000,
) -> List[Booking]:
    """Bookings matching all given filters, by date then slot."""
    conditions = ["TRUE"]
    params: Dict[str, Any] = {}

    if room_name:
        conditions.append("room_name = %(room_name)s")
        params['room_name'] = room_name

    if booking_date:
        conditions.append("date = %(booking_date)s")
        params['booking_date'] = booking_date

    if date_from:
        conditions.append("date >= %(date_from)s")
        params['date_from'] = date_from

    if date_to:
        conditions.append("date <= %(date_to)s")
        params['date_to'] = date_to

    if status:
        conditions.append("status = %(status)s")
        params['status'] = status

    if inquiry_id is not None:
        conditions.append("inquiry_id = %(inquiry_id)s")
        params['inquiry_id'] = inquiry_id

    if contact_id is not None:
        conditions.append("contact_id = %(contact_id)s")
        params['contact_id'] = contact_id

    params['limit'] = limit
    where_clause = " AND ".join(conditions)

    with db_cursor() as cur:
        cur.execute(f"""
            SELECT * FROM bookings
            WHERE {where_clause}
            ORDER BY date ASC, start_slot ASC, room_name ASC
            LIMIT %(limit)s
        """, params)

        rows = cur.fetchall()
        logger.debug(f"list_bookings: {len(rows)} results (room={room_name}, date={booking_date})")
        return [_from_row(Booking, row) for row in rows]


def get_booking(booking_id: int) -> Optional[Booking]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM bookings WHERE id = %s", (booking_id,))
        booking = _from_row(Booking, cur.fetchone())
        if booking is None:
            logger.debug(f"get_booking: booking_id={booking_id} not found")
        return booking


def create_booking(booking: Booking) -> Booking:
    """Insert one booking. Returns the stored record with its id."""
    with db_cursor() as cur:
        cur.execute(_BOOKING_INSERT, _booking_params(booking))
        created = _from_row(Booking, cur.fetchone())
        logger.info(f"Created booking ID {created.id}: {created.title} in {created.room_name} on {created.date}")
        return created


def create_bookings(bookings: List[Booking]) -> List[Booking]:
    """Insert a batch in one transaction: all rows are stored or none are."""
    if not bookings:
        return []
    created = []
    with db_cursor() as cur:
        for booking in bookings:
            cur.execute(_BOOKING_INSERT, _booking_params(booking))
            created.append(_from_row(Booking, cur.fetchone()))
    logger.info(f"Created {len(created)} bookings in one batch")
    return created


def update_booking(booking: Booking) -> Optional[Booking]:
    """Write every mutable field of a stored booking. None if the id is unknown."""
    with db_cursor() as cur:
        cur.execute("""
            UPDATE bookings SET
                room_name = %(room_name)s, date = %(date)s,
                start_hour = %(start_hour)s, start_minute = %(start_minute)s,
                end_hour = %(end_hour)s, end_minute = %(end_minute)s,
                start_slot = %(start_slot)s, end_slot = %(end_slot)s,
                title = %(title)s, contact_name = %(contact_name)s,
                contact_id = %(contact_id)s, inquiry_id = %(inquiry_id)s,
                status = %(status)s, guest_count = %(guest_count)s,
                room_setup = %(room_setup)s, requirements = %(requirements)s,
                notes = %(notes)s, preparation_status = %(preparation_status)s,
                reservation_number = %(reservation_number)s,
                external_event_id = %(external_event_id)s,
                updated_at = NOW()
            WHERE id = %(id)s
            RETURNING *
        """, _booking_params(booking))

        updated = _from_row(Booking, cur.fetchone())
        if updated is None:
            logger.debug(f"update_booking: booking_id={booking.id} not found")
            return None
        logger.info(f"Updated booking ID {updated.id}")
        return updated


def set_external_event_id(booking_id: int, external_event_id: str) -> bool:
    """Remember the id the external CRM assigned to a booking."""
    with db_cursor() as cur:
        cur.execute(
            "UPDATE bookings SET external_event_id = %s WHERE id = %s",
            (external_event_id, booking_id),
        )
        return cur.rowcount > 0


def delete_booking(booking_id: int) -> bool:
    """Hard delete. Returns False if the booking did not exist."""
    with db_cursor() as cur:
        cur.execute("DELETE FROM bookings WHERE id = %s", (booking_id,))
        if cur.rowcount > 0:
            logger.info(f"Deleted booking ID {booking_id}")
            return True
        return False


# =============================================================================
# INQUIRIES
# =============================================================================

def get_inquiry(inquiry_id: int) -> Optional[Inquiry]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM inquiries WHERE id = %s", (inquiry_id,))
        return _from_row(Inquiry, cur.fetchone())


def list_inquiries(status: Optional[str] = None, limit: int = 500) -> List[Inquiry]:
    params: Dict[str, Any] = {'limit': limit}
    where_clause = "TRUE"
    if status:
        where_clause = "status = %(status)s"
        params['status'] = status

    with db_cursor() as cur:
        cur.execute(f"""
            SELECT * FROM inquiries
            WHERE {where_clause}
            ORDER BY created_at DESC
            LIMIT %(limit)s
        """, params)
        rows = cur.fetchall()
        logger.debug(f"list_inquiries: {len(rows)} results (status={status})")
        return [_from_row(Inquiry, row) for row in rows]


def update_inquiry_status(inquiry_id: int, status: str) -> Optional[Inquiry]:
    with db_cursor() as cur:
        cur.execute("""
            UPDATE inquiries SET status = %s, updated_at = NOW()
            WHERE id = %s
            RETURNING *
        """, (status, inquiry_id))
        inquiry = _from_row(Inquiry, cur.fetchone())
        if inquiry:
            logger.info(f"Inquiry ID {inquiry_id} moved to stage '{status}'")
        return inquiry


def commit_conversion(bookings: List[Booking], inquiry_id: int, status: str) -> List[Booking]:
    """
    Insert the converted bookings and move the inquiry to its new stage in a
    single transaction. Any failure rolls back both.
    """
    created = []
    with db_cursor() as cur:
        for booking in bookings:
            cur.execute(_BOOKING_INSERT, _booking_params(booking))
            created.append(_from_row(Booking, cur.fetchone()))
        cur.execute("""
            UPDATE inquiries SET status = %s, updated_at = NOW()
            WHERE id = %s
        """, (status, inquiry_id))
        if cur.rowcount == 0:
            raise PersistenceError(f"Inquiry #{inquiry_id} disappeared during conversion")
    logger.info(f"Converted inquiry ID {inquiry_id}: {len(created)} bookings, stage '{status}'")
    return created


# =============================================================================
# LOOKUPS (display only)
# =============================================================================

def get_contact(contact_id: int) -> Optional[Contact]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM contacts WHERE id = %s", (contact_id,))
        return _from_row(Contact, cur.fetchone())


def get_company(company_id: int) -> Optional[Company]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM companies WHERE id = %s", (company_id,))
        return _from_row(Company, cur.fetchone())


def list_room_settings() -> List[RoomSetting]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM room_settings ORDER BY room_name")
        return [_from_row(RoomSetting, row) for row in cur.fetchall()]
