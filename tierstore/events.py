"""Event system for observing storage changes."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events a storage call can complete with."""

    CHANGE = "change"
    DELETE = "delete"
    CLEAR = "clear"
    IMPORT = "import"
    ERROR = "error"


@dataclass
class Event:
    """An event that occurred in the system."""

    type: EventType
    timestamp: datetime
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str | None:
        """Get the storage key if this event concerns one."""
        return self.data.get("key")

    @property
    def action(self) -> str | None:
        return self.data.get("action")

    @property
    def remote(self) -> bool:
        """Whether the event was caused by a peer's sync message."""
        return self.data.get("remote", False)


Handler = Callable[[Event], None]


@dataclass
class Subscription:
    """Token returned by ``EventBus.subscribe``."""

    bus: "EventBus"
    event_type: EventType
    handler: Handler
    active: bool = True

    def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if self.active:
            self.bus.unsubscribe(self.event_type, self.handler)
            self.active = False


class EventBus:
    """Synchronous event bus, dispatching in subscription order."""

    def __init__(self, history_limit: int = 1000):
        self._subscribers: dict[EventType, list[Handler]] = {}
        self._history: list[Event] = []
        self._history_limit = history_limit

    def subscribe(self, event_type: EventType | str, handler: Handler) -> Subscription:
        """Subscribe to events of a specific type."""
        event_type = EventType(event_type)
        self._subscribers.setdefault(event_type, []).append(handler)
        return Subscription(self, event_type, handler)

    def unsubscribe(self, event_type: EventType | str, handler: Handler) -> None:
        """Unsubscribe from events."""
        handlers = self._subscribers.get(EventType(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribers."""
        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        # Copy so handlers may unsubscribe while being dispatched
        for handler in list(self._subscribers.get(event.type, [])):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed on %s", handler, event.type.value)

    def emit(self, event_type: EventType, **data: Any) -> Event:
        """Build and publish an event."""
        event = Event(type=event_type, timestamp=datetime.now(), data=data)
        self.publish(event)
        return event

    def listener_count(self, event_type: EventType | str) -> int:
        return len(self._subscribers.get(EventType(event_type), []))

    def get_history(
        self, event_type: EventType | None = None, limit: int = 100
    ) -> list[Event]:
        """Get event history."""
        history = self._history

        if event_type:
            history = [e for e in history if e.type == event_type]

        return history[-limit:]

    def clear_history(self) -> None:
        """Clear event history."""
        self._history.clear()
