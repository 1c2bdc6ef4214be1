"""Player event system for broadcasting state changes.

Provides event types, event data structures, and an event emitter for
decoupled communication between the collection, scheduler, persistence
coordinator and UI/logging.

Usage:
    emitter = PlayerEventEmitter()
    emitter.subscribe(PlayerEventType.INDEX_CHANGED, lambda evt: print(evt.data["index"]))
    emitter.emit(PlayerEvent(PlayerEventType.INDEX_CHANGED, data={"index": 1}))
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Any, Optional
import logging
import time


class PlayerEventType(Enum):
    """Types of events that can occur while the player is alive."""

    # Collection / config mutations that must be persisted
    SNAPSHOT_CHANGED = auto()
    CAPACITY_EXCEEDED = auto()   # Import partially accepted (data: accepted, rejected)
    SESSION_RESTORED = auto()    # Startup restore finished (data: count, interval_ms)

    # Playback
    INDEX_CHANGED = auto()       # Displayed index moved (data: index)
    PLAYBACK_STARTED = auto()
    PLAYBACK_STOPPED = auto()

    # Non-fatal operational errors
    ERROR = auto()


@dataclass
class PlayerEvent:
    """Represents a player event with optional payload data.

    Attributes:
        event_type: Type of event that occurred
        data: Optional dictionary with event-specific data
        timestamp: Optional timestamp (set by the emitter when missing)
    """
    event_type: PlayerEventType
    data: Optional[dict[str, Any]] = None
    timestamp: Optional[float] = None

    def __str__(self) -> str:
        if self.data:
            data_str = ", ".join(f"{k}={v}" for k, v in self.data.items())
            return f"PlayerEvent({self.event_type.name}, {data_str})"
        return f"PlayerEvent({self.event_type.name})"


class PlayerEventEmitter:
    """Event bus for player state changes.

    Components subscribe to specific event types and receive notifications
    when those events occur. A subscriber that raises is logged and skipped;
    it never breaks the emitting operation.
    """

    def __init__(self):
        self._subscribers: dict[PlayerEventType, list[Callable[[PlayerEvent], None]]] = {}
        self.logger = logging.getLogger(__name__)

    def subscribe(
        self,
        event_type: PlayerEventType,
        callback: Callable[[PlayerEvent], None]
    ) -> None:
        """Subscribe to a specific event type.

        Args:
            event_type: Type of event to listen for
            callback: Function to call when event occurs (receives PlayerEvent)
        """
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []

        if callback not in self._subscribers[event_type]:
            self._subscribers[event_type].append(callback)
            self.logger.debug("[events] Subscribed to %s (total=%d)", event_type.name, len(self._subscribers[event_type]))

    def unsubscribe(
        self,
        event_type: PlayerEventType,
        callback: Callable[[PlayerEvent], None]
    ) -> None:
        """Unsubscribe from a specific event type."""
        if event_type in self._subscribers:
            if callback in self._subscribers[event_type]:
                self._subscribers[event_type].remove(callback)
                self.logger.debug("[events] Unsubscribed from %s (total=%d)", event_type.name, len(self._subscribers[event_type]))

    def emit(self, event: PlayerEvent) -> None:
        """Emit an event to all subscribed callbacks."""
        if event.timestamp is None:
            event.timestamp = time.time()

        if event.event_type is PlayerEventType.INDEX_CHANGED:
            self.logger.debug("[playback.trace] Emitting: %s", event)
        else:
            self.logger.debug("[events] Emitting: %s", event)

        # Copy so a callback may unsubscribe itself while we iterate
        for callback in list(self._subscribers.get(event.event_type, ())):
            try:
                callback(event)
            except Exception as e:
                self.logger.error("[events] Callback error for %s: %s", event.event_type.name, e, exc_info=True)

    def clear_all(self) -> None:
        """Remove all event subscribers (useful for testing/cleanup)."""
        self._subscribers.clear()
        self.logger.debug("[events] Cleared all subscribers")
