"""
CRM Sync Outbox - outbound notifications to the external CRM.

Booking and inquiry events are turned into messages in the sync_outbox table
by bus handlers; nothing here can fail a local mutation. deliver_pending()
posts queued messages to CRM_SYNC_URL and owns the retry policy: a message
is marked delivered only after a 2xx answer (at-least-once), and abandoned
after CRM_SYNC_MAX_ATTEMPTS failures.

Message actions:
    push-booking         {'booking': {...}}
    delete-booking       {'external_event_id': '...'}
    push-inquiry-status  {'external_opportunity_id': '...', 'status': '...', 'name': '...'}
"""

import logging
from typing import Dict, Any, Optional

import requests
from psycopg2.extras import Json

from venuecrm.bus.events import (
    bus as default_bus, EventBus,
    EVENT_BOOKING_CREATED, EVENT_BOOKING_UPDATED, EVENT_BOOKING_MOVED, EVENT_BOOKING_DELETED,
    EVENT_INQUIRY_STATUS_CHANGED, EVENT_SYNC_ENQUEUED, EVENT_SYNC_DELIVERED, EVENT_SYNC_FAILED,
)
from venuecrm.config import config
from venuecrm.engine import store
from venuecrm.engine.store import db_cursor
from venuecrm.engine.errors import PersistenceError, SyncNotificationError
from venuecrm.models import Booking

logger = logging.getLogger(__name__)

ACTION_PUSH_BOOKING = 'push-booking'
ACTION_DELETE_BOOKING = 'delete-booking'
ACTION_PUSH_INQUIRY_STATUS = 'push-inquiry-status'


def booking_payload(booking: Booking) -> Dict[str, Any]:
    return {
        'id': booking.id,
        'reservation_number': booking.reservation_number,
        'room_name': booking.room_name,
        'date': booking.date.isoformat() if booking.date else None,
        'start_hour': booking.start_hour,
        'start_minute': booking.start_minute,
        'end_hour': booking.end_hour,
        'end_minute': booking.end_minute,
        'title': booking.title,
        'contact_name': booking.contact_name,
        'contact_id': booking.contact_id,
        'inquiry_id': booking.inquiry_id,
        'status': booking.status,
        'external_event_id': booking.external_event_id,
    }


# =============================================================================
# OUTBOX
# =============================================================================

def enqueue(action: str, payload: Dict[str, Any]) -> int:
    """Queue one message. Returns its outbox id."""
    with db_cursor() as cur:
        cur.execute("""
            INSERT INTO sync_outbox (action, payload, created_at)
            VALUES (%s, %s, NOW())
            RETURNING id
        """, (action, Json(payload)))
        message_id = cur.fetchone()['id']
    logger.debug(f"Queued sync message {message_id}: {action}")
    default_bus.emit(EVENT_SYNC_ENQUEUED, {'message_id': message_id, 'action': action})
    return message_id


def _safe_enqueue(action: str, payload: Dict[str, Any]) -> Optional[int]:
    try:
        return enqueue(action, payload)
    except PersistenceError as e:
        logger.warning(f"Could not queue '{action}' for CRM sync: {e}")
        return None


def on_booking_saved(event_data: Dict[str, Any]):
    booking = event_data.get('booking')
    if booking is None:
        return
    _safe_enqueue(ACTION_PUSH_BOOKING, {'booking': booking_payload(booking)})


def on_booking_deleted(event_data: Dict[str, Any]):
    external_id = event_data.get('external_event_id')
    if not external_id:
        logger.debug(f"Booking {event_data.get('booking_id')} was never synced, no delete to send")
        return
    _safe_enqueue(ACTION_DELETE_BOOKING, {'external_event_id': external_id})


def on_inquiry_status_changed(event_data: Dict[str, Any]):
    inquiry = event_data.get('inquiry')
    if inquiry is None or not inquiry.external_opportunity_id:
        return
    _safe_enqueue(ACTION_PUSH_INQUIRY_STATUS, {
        'external_opportunity_id': inquiry.external_opportunity_id,
        'status': event_data.get('status', inquiry.status),
        'name': inquiry.event_type,
    })


_HANDLERS = (
    (EVENT_BOOKING_CREATED, on_booking_saved),
    (EVENT_BOOKING_UPDATED, on_booking_saved),
    (EVENT_BOOKING_MOVED, on_booking_saved),
    (EVENT_BOOKING_DELETED, on_booking_deleted),
    (EVENT_INQUIRY_STATUS_CHANGED, on_inquiry_status_changed),
)


def register_sync_handlers(event_bus: EventBus = None):
    """Subscribe the outbox to scheduler events. Safe to call repeatedly."""
    event_bus = event_bus or default_bus
    for event_name, handler in _HANDLERS:
        if not event_bus.has_handler(event_name, handler):
            event_bus.on(event_name, handler)


# =============================================================================
# DELIVERY
# =============================================================================

def _post(action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    headers = {"Content-Type": "application/json"}
    if config.CRM_SYNC_TOKEN:
        headers["Authorization"] = f"Bearer {config.CRM_SYNC_TOKEN}"
    try:
        response = requests.post(
            config.CRM_SYNC_URL,
            json={'action': action, **payload},
            headers=headers,
            timeout=config.CRM_SYNC_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise SyncNotificationError(f"{action} failed: {e}") from e
    try:
        return response.json() or {}
    except ValueError:
        return {}


def _mark_delivered(message_id: int):
    with db_cursor() as cur:
        cur.execute("UPDATE sync_outbox SET delivered_at = NOW(), last_error = NULL WHERE id = %s", (message_id,))


def _mark_failed(message_id: int, attempts: int, error: str) -> bool:
    """Record a failed attempt. Returns True if the message is now abandoned."""
    abandoned = attempts >= config.CRM_SYNC_MAX_ATTEMPTS
    with db_cursor() as cur:
        cur.execute("""
            UPDATE sync_outbox
            SET attempts = %s, last_error = %s,
                abandoned_at = CASE WHEN %s THEN NOW() ELSE NULL END
            WHERE id = %s
        """, (attempts, error[:1000], abandoned, message_id))
    return abandoned


def _remember_external_id(payload: Dict[str, Any], answer: Dict[str, Any]):
    booking = payload.get('booking') or {}
    external_id = answer.get('external_event_id')
    if external_id and booking.get('id') and not booking.get('external_event_id'):
        store.set_external_event_id(booking['id'], external_id)


def deliver_pending(limit: int = 50) -> Dict[str, int]:
    """
    Post up to `limit` queued messages, oldest first.
    Returns counts: delivered, failed (will retry), abandoned.
    """
    stats = {'delivered': 0, 'failed': 0, 'abandoned': 0}
    if not config.CRM_SYNC_URL:
        logger.info("deliver_pending: CRM_SYNC_URL not set, leaving messages queued")
        return stats

    with db_cursor() as cur:
        cur.execute("""
            SELECT id, action, payload, attempts FROM sync_outbox
            WHERE delivered_at IS NULL AND abandoned_at IS NULL
            ORDER BY id ASC
            LIMIT %s
        """, (limit,))
        messages = cur.fetchall()

    for message in messages:
        message_id, action, payload = message['id'], message['action'], message['payload']
        try:
            answer = _post(action, payload)
        except SyncNotificationError as e:
            abandoned = _mark_failed(message_id, message['attempts'] + 1, str(e))
            stats['abandoned' if abandoned else 'failed'] += 1
            logger.warning(f"Sync message {message_id} {'abandoned' if abandoned else 'will retry'}: {e}")
            default_bus.emit(EVENT_SYNC_FAILED, {'message_id': message_id, 'action': action, 'abandoned': abandoned})
            continue

        _mark_delivered(message_id)
        if action == ACTION_PUSH_BOOKING:
            _remember_external_id(payload, answer)
        stats['delivered'] += 1
        default_bus.emit(EVENT_SYNC_DELIVERED, {'message_id': message_id, 'action': action})

    logger.info(f"deliver_pending: {stats}")
    return stats
