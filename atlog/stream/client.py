"""Run the log stream on a background event loop.

The supervisor, buffer and transport all live on one asyncio loop in a
daemon thread; that loop is the single event-handling context. Calls from
other threads (the curses UI) are marshalled onto it, so the connection
state and pending batch are only ever touched by the loop thread. The
history has its own lock because the UI reads it directly.

Usage:
    client = LogStreamClient(ViewerConfig())
    client.start()                 # non-blocking, spawns thread
    lines = client.history.snapshot()
    client.clear_history()         # raises NotAuthenticatedError if offline
    client.shutdown()
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Optional

from ..utils.config import ViewerConfig
from ..utils.event_bus import EventBus
from ..utils.reconnect import ReconnectStrategy
from .events import ConnectionState, NotAuthenticatedError
from .history import BoundedHistory
from .supervisor import ConnectionSupervisor
from .transport import WebSocketTransport

logger = logging.getLogger(__name__)

# How long shutdown() waits for the closing handshake before stopping the loop
SHUTDOWN_GRACE = 3.0


class LogStreamClient:
    """Thread-safe facade over a ConnectionSupervisor.

    Args:
        config: Connection settings (address, key, capacity, timings).
        bus: Status event bus; shared with the UI.
        transport_factory: Override for tests; defaults to WebSocketTransport.
    """

    def __init__(self, config: ViewerConfig, bus: Optional[EventBus] = None,
                 transport_factory: Optional[Callable[[Any], Any]] = None) -> None:
        self._config = config
        self._bus = bus or EventBus()
        self._history = BoundedHistory(int(config.get("max_lines")))
        self._transport_factory = transport_factory

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._supervisor: Optional[ConnectionSupervisor] = None
        self._started = threading.Event()

    # ------------------------------------------------------------------
    # Public API (called from any thread)
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self._config.websocket_url()

    @property
    def history(self) -> BoundedHistory:
        return self._history

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def state(self) -> ConnectionState:
        supervisor = self._supervisor
        if supervisor is None:
            return ConnectionState.DISCONNECTED
        return supervisor.state

    @property
    def authenticated(self) -> bool:
        supervisor = self._supervisor
        return supervisor is not None and supervisor.authenticated

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the event loop thread and begin connecting.

        Returns False if already running or the loop failed to come up.
        """
        if self.is_running:
            logger.debug("Log stream client already running")
            return False

        self._started.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="log-stream",
            daemon=True,
        )
        self._thread.start()
        self._started.wait(timeout=5.0)
        return self._started.is_set()

    def shutdown(self) -> None:
        """Manual close: stop reconnecting, close the channel, stop the loop."""
        loop = self._loop
        if loop is not None and loop.is_running():
            try:
                fut = asyncio.run_coroutine_threadsafe(self._shutdown_async(), loop)
                fut.result(timeout=SHUTDOWN_GRACE + 1.0)
            except Exception as e:
                logger.warning("Log stream shutdown incomplete: %s", e)
            try:
                loop.call_soon_threadsafe(loop.stop)
            except RuntimeError:
                pass  # Loop already closed
        if self._thread:
            self._thread.join(timeout=SHUTDOWN_GRACE)
            if self._thread.is_alive():
                logger.warning("Log stream thread did not exit within %.0fs", SHUTDOWN_GRACE)
            self._thread = None

    def clear_history(self) -> None:
        """Clear the history locally and on the service.

        Raises:
            NotAuthenticatedError: not connected, nothing was changed.
        """
        supervisor = self._supervisor
        if supervisor is None:
            raise NotAuthenticatedError("CLEAR_SYS_LOGS")
        self._call(supervisor.clear_history)

    def clear_screen(self) -> None:
        supervisor = self._supervisor
        if supervisor is None:
            self._history.clear()
            return
        self._call(supervisor.clear_screen)

    def toggle_pause(self) -> bool:
        return self._history.toggle_pause()

    @property
    def stats(self) -> dict:
        supervisor = self._supervisor
        if supervisor is None:
            return {"state": ConnectionState.DISCONNECTED.value,
                    "history": self._history.stats}
        return self._call(lambda: supervisor.stats)

    # ------------------------------------------------------------------
    # Loop thread internals
    # ------------------------------------------------------------------

    def _call(self, fn: Callable[[], Any], timeout: float = 2.0) -> Any:
        """Run *fn* on the loop thread and return (or raise) its result."""
        loop = self._loop
        if loop is None or not loop.is_running():
            raise NotAuthenticatedError()

        async def _invoke() -> Any:
            return fn()

        return asyncio.run_coroutine_threadsafe(_invoke(), loop).result(timeout)

    def _run_loop(self) -> None:
        """Entry point for the background thread."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            loop.call_soon(self._bootstrap)
            loop.run_forever()
            self._drain(loop)
        except Exception:
            logger.exception("Log stream loop error")
        finally:
            loop.close()
            self._loop = None

    def _bootstrap(self) -> None:
        loop = self._loop
        factory = self._transport_factory or (
            lambda listener: WebSocketTransport(listener, loop=loop))
        self._supervisor = ConnectionSupervisor(
            factory,
            loop,
            self._config.websocket_url(),
            auth_key=self._config.auth_key(),
            history=self._history,
            flush_interval=self._config.flush_interval(),
            reconnect=ReconnectStrategy.for_log_stream(
                float(self._config.get("reconnect_delay"))),
            bus=self._bus,
        )
        self._started.set()
        self._supervisor.connect()

    async def _shutdown_async(self) -> None:
        supervisor = self._supervisor
        if supervisor is not None:
            supervisor.shutdown()
            waited = 0.0
            while supervisor.state != ConnectionState.DISCONNECTED and waited < SHUTDOWN_GRACE:
                await asyncio.sleep(0.05)
                waited += 0.05

    @staticmethod
    def _drain(loop: asyncio.AbstractEventLoop) -> None:
        """Cancel leftover tasks so the loop closes cleanly."""
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
