"""Thread-safe publish-subscribe bus for connection status reporting.

The connection supervisor publishes lifecycle and status events; the
terminal UI (or the plain stdout printer) subscribes to show them. Status
messages travel here and never enter the log history.

Typed events:
    StreamEvent.state_changed - connection state transitions
    StreamEvent.status        - informational status lines
    StreamEvent.auth_failed   - the service rejected the auth key
    StreamEvent.channel_error - transport reported an error
    StreamEvent.command_failed - a command could not be sent or was refused
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Event categories for subscription filtering."""
    STATE_CHANGED = "state.changed"
    STATUS = "status"
    AUTH_FAILED = "auth.failed"
    CHANNEL_ERROR = "channel.error"
    COMMAND_FAILED = "command.failed"
    HISTORY_CLEARED = "history.cleared"


@dataclass
class StreamEvent:
    """Status event with type, timestamp, human-readable message and payload."""
    event_type: EventType
    message: str = ""
    timestamp: float = field(default_factory=time.time)
    state: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def state_changed(cls, old: str, new: str) -> "StreamEvent":
        return cls(
            event_type=EventType.STATE_CHANGED,
            message=f"{old} -> {new}",
            state=new,
            data={"previous": old},
        )

    @classmethod
    def status(cls, message: str, **extra) -> "StreamEvent":
        return cls(event_type=EventType.STATUS, message=message, data=extra)

    @classmethod
    def auth_failed(cls, reason: str = "") -> "StreamEvent":
        return cls(
            event_type=EventType.AUTH_FAILED,
            message=f"Authentication failed: {reason}" if reason else "Authentication failed",
            data={"reason": reason},
        )

    @classmethod
    def channel_error(cls, reason: str = "") -> "StreamEvent":
        return cls(
            event_type=EventType.CHANNEL_ERROR,
            message="WebSocket error",
            data={"reason": reason},
        )

    @classmethod
    def command_failed(cls, command: str, reason: str = "") -> "StreamEvent":
        return cls(
            event_type=EventType.COMMAND_FAILED,
            message=f"{command} failed: {reason}" if reason else f"{command} failed",
            data={"command": command, "reason": reason},
        )

    @classmethod
    def history_cleared(cls, remote: bool) -> "StreamEvent":
        return cls(
            event_type=EventType.HISTORY_CLEARED,
            message="Log file cleared" if remote else "Screen cleared",
            data={"remote": remote},
        )


# Type alias for subscriber callbacks
Subscriber = Callable[[StreamEvent], None]


class EventBus:
    """Thread-safe publish-subscribe event bus.

    Subscribers register for specific event types. When an event is
    published, all matching subscribers are called synchronously in
    the publisher's thread. Each callback is wrapped in try/except
    so one bad subscriber never breaks others.

    Usage:
        bus = EventBus()
        bus.subscribe(EventType.STATE_CHANGED, my_handler)
        bus.publish(StreamEvent.status("Connecting to ws://192.168.8.1:8765"))

    Wildcard subscriptions:
        bus.subscribe(None, my_handler)  # receives ALL events
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # EventType -> set of callbacks; None key = wildcard subscribers
        self._subscribers: Dict[Optional[EventType], Set[Subscriber]] = {}
        self._stats = _BusStats()

    def subscribe(self, event_type: Optional[EventType],
                  callback: Subscriber) -> None:
        """Register a callback for an event type (or None for all events)."""
        with self._lock:
            if event_type not in self._subscribers:
                self._subscribers[event_type] = set()
            self._subscribers[event_type].add(callback)

    def unsubscribe(self, event_type: Optional[EventType],
                    callback: Subscriber) -> None:
        """Remove a previously registered callback."""
        with self._lock:
            subs = self._subscribers.get(event_type)
            if subs:
                subs.discard(callback)
                if not subs:
                    del self._subscribers[event_type]

    def publish(self, event: StreamEvent) -> None:
        """Deliver *event* to its type's subscribers and to wildcards."""
        with self._lock:
            targets: List[Subscriber] = []
            specific = self._subscribers.get(event.event_type)
            if specific:
                targets.extend(specific)
            wildcard = self._subscribers.get(None)
            if wildcard:
                targets.extend(wildcard)

        self._stats.inc_published()

        for callback in targets:
            self._safe_call(callback, event)

    def _safe_call(self, callback: Subscriber, event: StreamEvent) -> None:
        try:
            callback(event)
            self._stats.inc_delivered()
        except Exception:
            self._stats.inc_errors()
            logger.exception(
                "Event bus subscriber %s failed on %s",
                getattr(callback, "__name__", repr(callback)),
                event.event_type.value,
            )

    def subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        """Count subscribers for a specific event type (or all if None)."""
        with self._lock:
            if event_type is not None:
                return len(self._subscribers.get(event_type, set()))
            return sum(len(s) for s in self._subscribers.values())

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "total_published": self._stats.total_published,
            "total_delivered": self._stats.total_delivered,
            "total_errors": self._stats.total_errors,
        }

    def reset(self) -> None:
        """Remove all subscribers and reset stats."""
        with self._lock:
            self._subscribers.clear()
        self._stats.reset()


class _BusStats:
    """Thread-safe counters for event bus diagnostics."""
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_published = 0
        self._total_delivered = 0
        self._total_errors = 0

    def reset(self) -> None:
        with self._lock:
            self._total_published = 0
            self._total_delivered = 0
            self._total_errors = 0

    def inc_published(self) -> None:
        with self._lock:
            self._total_published += 1

    def inc_delivered(self) -> None:
        with self._lock:
            self._total_delivered += 1

    def inc_errors(self) -> None:
        with self._lock:
            self._total_errors += 1

    @property
    def total_published(self) -> int:
        with self._lock:
            return self._total_published

    @property
    def total_delivered(self) -> int:
        with self._lock:
            return self._total_delivered

    @property
    def total_errors(self) -> int:
        with self._lock:
            return self._total_errors
