"""
Event Bus - Decoupled Module Communication
The scheduler emits booking/inquiry events; the sync outbox listens.
Handler failures are logged and never reach the code that emitted the event.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple synchronous event bus.
    Modules emit events, other modules register handlers to listen.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict
        """
        if event_name not in self._handlers:
            self._handlers[event_name] = []
        self._handlers[event_name].append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {handler.__name__}")

    def off(self, event_name: str, handler: Callable) -> bool:
        """Unregister a handler. Returns True if it was registered."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def has_handler(self, event_name: str, handler: Callable) -> bool:
        return handler in self._handlers.get(event_name, [])

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.

        Args:
            event_name: Name of the event
            event_data: Optional dict of data to pass to handlers
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with keys: {sorted(event_data.keys())}")

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {handler.__name__} for event '{event_name}': {e}")

    def clear(self):
        """Clear all handlers (useful for testing)."""
        self._handlers.clear()


# Singleton instance
bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# Booking events (scheduler)
EVENT_BOOKING_CREATED = 'booking_created'
EVENT_BOOKING_UPDATED = 'booking_updated'
EVENT_BOOKING_MOVED = 'booking_moved'
EVENT_BOOKING_DELETED = 'booking_deleted'
EVENT_BOOKINGS_BATCH_CREATED = 'bookings_batch_created'

# Inquiry events (converter / pipeline)
EVENT_INQUIRY_CONVERTED = 'inquiry_converted'
EVENT_INQUIRY_STATUS_CHANGED = 'inquiry_status_changed'

# Sync outbox events
EVENT_SYNC_ENQUEUED = 'sync_enqueued'
EVENT_SYNC_DELIVERED = 'sync_delivered'
EVENT_SYNC_FAILED = 'sync_failed'
