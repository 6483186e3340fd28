"""
Events published to dial members.

Delivery is keyed by recipient user id. The transport (websocket fan-out,
message queue, ...) lives outside this package behind the EventSink
interface.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events published to dial members."""

    DIAL_VALUE_CHANGED = "dial:value_changed"


@dataclass(frozen=True)
class DialValueChangedPayload:
    """Payload for a dial whose aggregate value changed."""

    id: int
    value: int


@dataclass(frozen=True)
class Event:
    """An event delivered to one user."""

    type: EventType
    payload: Any
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "payload": asdict(self.payload),
            "published_at": self.published_at.isoformat(),
        }


class EventSink(ABC):
    """Destination for events, keyed by recipient user id."""

    @abstractmethod
    def publish(self, user_id: int, event: Event) -> None:
        """Deliver event to a single user."""
        pass


class NopEventSink(EventSink):
    """Event sink that discards every event."""

    def publish(self, user_id: int, event: Event) -> None:
        pass


class InMemoryEventSink(EventSink):
    """
    Event sink that keeps published events in memory.

    Optional subscribers are called for every event; a failing subscriber
    is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._events: list[tuple[int, Event]] = []
        self._subscribers: list[Callable[[int, Event], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Callable[[int, Event], None]) -> None:
        """Register a handler called as handler(user_id, event)."""
        with self._lock:
            self._subscribers.append(handler)

    def publish(self, user_id: int, event: Event) -> None:
        with self._lock:
            self._events.append((user_id, event))
            handlers = list(self._subscribers)

        for handler in handlers:
            try:
                handler(user_id, event)
            except Exception as e:
                logger.warning(
                    f"Event handler error for user={user_id} type={event.type.value}: {e}"
                )

    @property
    def events(self) -> list[tuple[int, Event]]:
        """All (user_id, event) pairs published so far."""
        with self._lock:
            return list(self._events)

    def events_for(self, user_id: int) -> list[Event]:
        """Events delivered to one user."""
        return [event for uid, event in self.events if uid == user_id]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
