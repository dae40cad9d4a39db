"""
Event Bus implementation for machine-scoped domain events.

The Event Bus is a simple, synchronous dispatcher. The ingestion pipeline
publishes ``machine.status_changed`` and ``machine.readings_received``; hosts
subscribe to push updates to UIs or notification channels.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Optional, Dict, Any, Callable, List
import logging
import threading

logger = logging.getLogger(__name__)

STATUS_CHANGED = "machine.status_changed"
READINGS_RECEIVED = "machine.readings_received"


def _utc_now() -> datetime:
    """Get current UTC time (for default factory)."""
    return datetime.now(UTC)


@dataclass
class Event:
    """
    A domain event in the laundry-monitor system.

    Attributes:
        type: Event type (e.g., "machine.status_changed")
        source: Event source (e.g., "ingest")
        machine_id: Optional machine this event relates to
        room_id: Optional room the machine stands in
        payload: Event-specific data
        timestamp: When the event occurred
    """

    type: str
    source: str
    machine_id: Optional[int] = None
    room_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utc_now)


class EventFilter:
    """
    Filter for event subscriptions.

    Allows subscribers to filter events by type, machine, or room.
    """

    def __init__(
        self,
        event_type: Optional[str] = None,
        machine_id: Optional[int] = None,
        room_id: Optional[str] = None,
    ):
        """
        Initialize an event filter.

        Args:
            event_type: Filter by event type (None = all types)
            machine_id: Filter by machine ID (None = all machines)
            room_id: Filter by room ID (None = all rooms)
        """
        self.event_type = event_type
        self.machine_id = machine_id
        self.room_id = room_id

    def matches(self, event: Event) -> bool:
        """
        Check if an event matches this filter.

        Args:
            event: The event to check

        Returns:
            True if the event matches the filter
        """
        if self.event_type and event.type != self.event_type:
            return False

        if self.machine_id is not None and event.machine_id != self.machine_id:
            return False

        if self.room_id is not None and event.room_id != self.room_id:
            return False

        return True

    def __repr__(self) -> str:
        return (
            f"EventFilter(event_type={self.event_type!r}, "
            f"machine_id={self.machine_id!r}, room_id={self.room_id!r})"
        )


EventHandler = Callable[[Event], None]


class EventBus:
    """
    Simple, synchronous event bus for machine events.

    Handlers are wrapped in try/except so a bad subscriber can't fail ingestion.
    """

    def __init__(self) -> None:
        """Initialize the event bus."""
        self._handlers: List[tuple[EventFilter, EventHandler]] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        handler: EventHandler,
        event_filter: Optional[EventFilter] = None,
    ) -> None:
        """
        Subscribe to events.

        Args:
            handler: Callable that receives Event objects
            event_filter: Optional filter for events (None = receive all events)
        """
        if event_filter is None:
            event_filter = EventFilter()

        with self._lock:
            self._handlers.append((event_filter, handler))
        logger.debug(f"Subscribed handler {handler.__name__} with filter {event_filter}")

    def publish(self, event: Event) -> None:
        """
        Publish an event to all matching subscribers.

        Handlers are called synchronously and wrapped in try/except.

        Args:
            event: The event to publish
        """
        logger.debug(f"Publishing event: {event.type} from {event.source}")

        with self._lock:
            handlers = list(self._handlers)

        for event_filter, handler in handlers:
            if event_filter.matches(event):
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        f"Error in event handler {handler.__name__} "
                        f"for event {event.type}: {e}",
                        exc_info=True,
                    )

    def unsubscribe(self, handler: EventHandler) -> None:
        """
        Unsubscribe a handler from all events.

        Args:
            handler: The handler to unsubscribe
        """
        with self._lock:
            self._handlers = [(f, h) for f, h in self._handlers if h != handler]
        logger.debug(f"Unsubscribed handler {handler.__name__}")
