import logging
import threading
from typing import Any, Callable, Dict, List

from .events import EventTypes

# Type definition for event handlers
EventHandler = Callable[[Any], None]


class EventBus:
    """
    Synchronous Event Bus.

    - Thread-Safe: Uses a lock for subscriber registration.
    - Snapshot Execution: Iterates over a copy of handlers so handlers may
      subscribe or unsubscribe while an event is being delivered.
    - Sequential Consistency: Handlers run in subscription order.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[EventTypes, List[EventHandler]] = {}
        self._logger = logging.getLogger("EventBus")

    def subscribe(self, event_type: EventTypes, handler: EventHandler) -> None:
        """Register a callback for a specific event type."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: EventTypes, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event_type: EventTypes, data: Any = None) -> None:
        """Emit an event to all subscribers."""
        if event_type not in self._subscribers:
            return

        with self._lock:
            handlers_snapshot = list(self._subscribers.get(event_type, []))

        for handler in handlers_snapshot:
            with self._lock:
                if handler not in self._subscribers.get(event_type, []):
                    continue  # Unsubscribed by an earlier handler.

            try:
                handler(data)
            except Exception as e:
                # Log error but keep the bus alive (Fail-soft)
                self._logger.error(
                    f"Error in handler for {event_type.value}: {e}", exc_info=True
                )
