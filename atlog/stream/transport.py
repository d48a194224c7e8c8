"""WebSocket transport channel for the log stream.

One ``WebSocketTransport`` owns at most one live session at a time. It has
no retry logic; it only reports lifecycle signals to its listener:

    on_open()            connection established
    on_message(text)     one inbound text frame
    on_error(exc)        non-fatal error, always followed by on_close()
    on_close()           session over (exactly once per open())

All methods must be called from the event loop thread.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

logger = logging.getLogger(__name__)

# Maximum inbound frame size (16 MB). A full GET_SYS_LOGS reply is a single
# frame, so this has to be generous.
MAX_FRAME_SIZE = 16 * 1024 * 1024


class TransportListener(Protocol):
    def on_open(self) -> None: ...

    def on_message(self, text: str) -> None: ...

    def on_error(self, exc: Optional[BaseException]) -> None: ...

    def on_close(self) -> None: ...


class WebSocketTransport:
    """Duplex text-frame channel built on the ``websockets`` asyncio client.

    Args:
        listener: Receives the lifecycle signals.
        loop: Event loop to run on (defaults to the running loop).
        open_timeout: Seconds allowed for TCP connect + handshake.
        close_timeout: Seconds allowed for the closing handshake.
    """

    def __init__(self, listener: TransportListener,
                 loop: Optional[asyncio.AbstractEventLoop] = None,
                 max_size: int = MAX_FRAME_SIZE,
                 open_timeout: float = 10.0,
                 close_timeout: float = 5.0) -> None:
        self._listener = listener
        self._loop = loop
        self._max_size = max_size
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout

        self._task: Optional["asyncio.Task[None]"] = None
        self._closer: Optional["asyncio.Task[None]"] = None
        self._conn: Optional[Any] = None
        self._outbox: Optional["asyncio.Queue[str]"] = None
        self._live = False
        self._address = ""

    @property
    def address(self) -> str:
        return self._address

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def is_live(self) -> bool:
        """True from open() until on_close() has been delivered."""
        return self._live

    def open(self, address: str) -> None:
        if self._live:
            logger.debug("Transport already live (%s), ignoring open(%s)",
                         self._address, address)
            return
        loop = self._loop or asyncio.get_running_loop()
        self._address = address
        self._live = True
        self._outbox = asyncio.Queue()
        self._task = loop.create_task(self._session(address))
        self._task.add_done_callback(self._session_done)

    def send(self, text: str) -> None:
        """Queue one text frame. Dropped if the channel is not open."""
        if self._conn is None or self._outbox is None:
            logger.debug("Transport not open, dropping outbound frame")
            return
        self._outbox.put_nowait(text)

    def close(self) -> None:
        """Begin teardown. on_close() follows once the session ends."""
        if not self._live or self._task is None:
            return
        conn = self._conn
        if conn is not None:
            loop = self._loop or asyncio.get_running_loop()
            if self._closer is None or self._closer.done():
                self._closer = loop.create_task(self._close_conn(conn))
        else:
            # Still connecting: abandon the handshake
            self._task.cancel()

    # ------------------------------------------------------------------
    # Session task
    # ------------------------------------------------------------------

    async def _session(self, address: str) -> None:
        try:
            async with connect(
                address,
                max_size=self._max_size,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
            ) as conn:
                self._conn = conn
                logger.info("WebSocket connected: %s", address)
                self._emit("on_open")
                writer = asyncio.ensure_future(self._write_loop(conn))
                try:
                    async for raw in conn:
                        if isinstance(raw, (bytes, bytearray)):
                            raw = bytes(raw).decode("utf-8", errors="replace")
                        self._emit("on_message", raw)
                finally:
                    writer.cancel()
        except asyncio.CancelledError:
            logger.debug("WebSocket session to %s cancelled", address)
        except ConnectionClosedOK:
            logger.debug("WebSocket closed cleanly: %s", address)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.debug("WebSocket connection error (%s): %s", address, e)
            self._emit("on_error", e)
        except Exception as e:
            logger.exception("Unexpected WebSocket session failure (%s)", address)
            self._emit("on_error", e)

    def _session_done(self, task: "asyncio.Task[None]") -> None:
        # Also runs for a task cancelled before its first step
        self._conn = None
        self._outbox = None
        self._live = False
        self._task = None
        logger.info("WebSocket disconnected: %s", self._address)
        self._emit("on_close")

    async def _write_loop(self, conn: Any) -> None:
        outbox = self._outbox
        if outbox is None:
            return
        while True:
            text = await outbox.get()
            try:
                await conn.send(text)
            except ConnectionClosed:
                return

    @staticmethod
    async def _close_conn(conn: Any) -> None:
        try:
            await conn.close()
        except (OSError, WebSocketException) as e:
            logger.debug("Error while closing WebSocket: %s", e)

    def _emit(self, signal: str, *args: Any) -> None:
        """Deliver a signal, isolating listener failures from the session."""
        try:
            getattr(self._listener, signal)(*args)
        except Exception:
            logger.exception("Transport listener failed in %s", signal)
