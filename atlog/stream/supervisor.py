"""Connection supervisor: the log stream's state machine.

    disconnected --connect()--> connecting
    connecting   --open, no key--> authenticated   (GET_SYS_LOGS sent)
    connecting   --open, key-->    authenticating  (handshake sent)
    authenticating --success--> authenticated      (GET_SYS_LOGS sent)
    authenticating --failure--> closing            (channel closed)
    any          --close-->    disconnected        (reconnect in 5s unless manual)
    shutdown()   --> closing --> disconnected, permanently

Every handler runs on one event-loop thread, one at a time, so the
connection state and the pending batch need no locking here.
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from ..utils.event_bus import EventBus, StreamEvent
from ..utils.reconnect import ReconnectStrategy
from ..utils.timers import Scheduler, TimerHandle
from .auth import Authenticator
from .buffer import FLUSH_INTERVAL, BatchingBuffer
from .commands import CommandDispatcher
from .decoder import FrameDecoder
from .events import ConnectionState, FrameKind, LogEvent
from .history import BoundedHistory

logger = logging.getLogger(__name__)

# Builds the transport for a given listener (the supervisor itself).
TransportFactory = Callable[[Any], Any]


class ConnectionSupervisor:
    """Drive connect / authenticate / reconnect / shutdown for one connection.

    Args:
        transport_factory: Called once with this supervisor as listener;
            returns an object with ``open``, ``send`` and ``close``.
        scheduler: Timer source for flush and reconnect (an asyncio loop).
        address: ``ws://host:port`` of the AT WebServer.
        auth_key: Optional shared secret; empty or None disables the handshake.
        history: Sink for rendered lines (a new one is created if omitted).
        flush_interval: Batching window in seconds.
        reconnect: Delay policy; fixed 5s by default.
        bus: Receives status events.
    """

    def __init__(self, transport_factory: TransportFactory,
                 scheduler: Scheduler, address: str,
                 auth_key: Optional[str] = None,
                 history: Optional[BoundedHistory] = None,
                 flush_interval: float = FLUSH_INTERVAL,
                 reconnect: Optional[ReconnectStrategy] = None,
                 bus: Optional[EventBus] = None) -> None:
        self._scheduler = scheduler
        self._address = address
        self._bus = bus or EventBus()
        self._reconnect = reconnect or ReconnectStrategy.for_log_stream()

        self._state = ConnectionState.DISCONNECTED
        self._manual_close = False
        self._authenticated = False
        self._reconnect_timer: Optional[TimerHandle] = None

        self._history = history if history is not None else BoundedHistory()
        self._buffer = BatchingBuffer(self._history, scheduler, flush_interval)
        self._auth = Authenticator(auth_key)
        self._decoder = FrameDecoder()
        self._transport = transport_factory(self)
        self._commands = CommandDispatcher(
            self._transport.send, lambda: self._authenticated, self._history)

        self._connect_count = 0
        self._auth_failures = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    @property
    def manual_close(self) -> bool:
        return self._manual_close

    @property
    def address(self) -> str:
        return self._address

    @property
    def history(self) -> BoundedHistory:
        return self._history

    @property
    def buffer(self) -> BatchingBuffer:
        return self._buffer

    @property
    def commands(self) -> CommandDispatcher:
        return self._commands

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def transport(self) -> Any:
        return self._transport

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_timer is not None

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "authenticated": self._authenticated,
            "connect_attempts": self._connect_count,
            "auth_failures": self._auth_failures,
            "reconnect_attempts": self._reconnect.total_attempts,
            "pending": len(self._buffer.pending),
            "commands": self._commands.stats,
            "history": self._history.stats,
        }

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the channel. Ignored after shutdown or while already connected."""
        if self._manual_close:
            logger.debug("connect() after shutdown ignored")
            return
        if self._state != ConnectionState.DISCONNECTED:
            logger.debug("connect() ignored in state %s", self._state.value)
            return
        self._authenticated = False
        self._auth.reset()
        self._connect_count += 1
        self._set_state(ConnectionState.CONNECTING)
        self._bus.publish(StreamEvent.status(f"Connecting to {self._address}"))
        self._transport.open(self._address)

    def shutdown(self) -> None:
        """Manual close: stop for good and never reconnect.

        Pending events are flushed into the history before the channel is
        closed.
        """
        if self._manual_close:
            return
        self._manual_close = True
        self._cancel_reconnect()
        self._buffer.flush()
        if self._state == ConnectionState.DISCONNECTED:
            return
        self._set_state(ConnectionState.CLOSING)
        self._transport.close()

    def clear_history(self) -> None:
        """Clear local history and the service's log file.

        Raises NotAuthenticatedError when not authenticated.
        """
        self._commands.clear_history()
        self._bus.publish(StreamEvent.history_cleared(remote=True))

    def clear_screen(self) -> None:
        """Clear the local view only; nothing is sent."""
        self._buffer.discard()
        self._history.clear()
        self._bus.publish(StreamEvent.history_cleared(remote=False))

    # ------------------------------------------------------------------
    # Transport signals
    # ------------------------------------------------------------------

    def on_open(self) -> None:
        if self._state != ConnectionState.CONNECTING:
            logger.debug("on_open in state %s ignored", self._state.value)
            return
        if self._auth.required:
            self._set_state(ConnectionState.AUTHENTICATING)
            self._bus.publish(StreamEvent.status("Authenticating..."))
            self._auth.begin(self._transport.send)
        else:
            self._on_authenticated("WebSocket connected")

    def on_message(self, text: str) -> None:
        if self._auth.awaiting_response:
            self._handle_auth_response(text)
            return
        if self._state == ConnectionState.CLOSING:
            logger.debug("Frame received while closing, dropped")
            return

        frame = self._decoder.decode(text)
        if frame.kind == FrameKind.ACK:
            if frame.success is False:
                logger.warning("Command rejected by server: %s", frame.error or "no detail")
                self._bus.publish(StreamEvent.command_failed("Server command", frame.error or ""))
            self._buffer.push_many(frame.events, immediate=True)
        else:
            self._push(frame.events)

    def on_error(self, exc: Optional[BaseException] = None) -> None:
        reason = str(exc) if exc is not None else ""
        logger.warning("WebSocket error on %s: %s", self._address, reason or "unknown")
        self._bus.publish(StreamEvent.channel_error(reason))

    def on_close(self) -> None:
        self._authenticated = False
        self._auth.reset()
        self._set_state(ConnectionState.DISCONNECTED)
        if self._manual_close:
            self._bus.publish(StreamEvent.status("Disconnected"))
            return
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _handle_auth_response(self, text: str) -> None:
        result = self._auth.consume(text)
        if result.ok:
            self._on_authenticated("Authentication succeeded")
            return
        self._auth_failures += 1
        logger.warning("Authentication to %s failed: %s", self._address, result.message)
        self._bus.publish(StreamEvent.auth_failed(result.message))
        self._set_state(ConnectionState.CLOSING)
        self._transport.close()

    def _on_authenticated(self, message: str) -> None:
        self._authenticated = True
        self._set_state(ConnectionState.AUTHENTICATED)
        self._cancel_reconnect()
        self._reconnect.reset()
        self._bus.publish(StreamEvent.status(message))
        self._commands.fetch_history()

    def _push(self, events: Iterable[LogEvent]) -> None:
        for event in events:
            self._buffer.push(event)

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        delay = self._reconnect.next_delay()
        logger.info("Connection to %s lost, reconnecting in %.1fs", self._address, delay)
        self._bus.publish(StreamEvent.status(
            f"Disconnected, reconnecting in {delay:g}s", delay=delay))
        self._reconnect_timer = self._scheduler.call_later(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_timer = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _set_state(self, new: ConnectionState) -> None:
        old = self._state
        if old == new:
            return
        self._state = new
        logger.debug("Connection state %s -> %s", old.value, new.value)
        self._bus.publish(StreamEvent.state_changed(old.value, new.value))

