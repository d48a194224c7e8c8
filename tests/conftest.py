"""Shared fixtures for the at-log-viewer test suite."""

import asyncio
import json
import socket
import threading
from typing import Any, List, Optional

import pytest
from websockets.asyncio.server import serve

from atlog.stream.history import BoundedHistory
from atlog.stream.supervisor import ConnectionSupervisor
from atlog.utils.event_bus import EventBus, EventType
from atlog.utils.timers import ManualScheduler

ADDRESS = "ws://192.168.8.1:8765"


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------

class FakeTransport:
    """In-memory transport driven by the test.

    ``close()`` only records the request; the test completes it with
    :meth:`finish_close` (or sets ``auto_close``), mirroring the async
    teardown of a real socket.
    """

    def __init__(self, listener: Any, auto_close: bool = False) -> None:
        self.listener = listener
        self.auto_close = auto_close
        self.opened: List[str] = []
        self.sent: List[str] = []
        self.close_requests = 0
        self.is_open = False
        self.live = False

    # -- transport API used by the supervisor --

    def open(self, address: str) -> None:
        if self.live:
            return
        self.opened.append(address)
        self.live = True

    def send(self, text: str) -> None:
        if self.is_open:
            self.sent.append(text)

    def close(self) -> None:
        self.close_requests += 1
        if self.auto_close:
            self.finish_close()

    # -- test drivers --

    def accept(self) -> None:
        """The server accepted the connection."""
        self.is_open = True
        self.listener.on_open()

    def receive(self, frame: Any) -> None:
        text = frame if isinstance(frame, str) else json.dumps(frame)
        self.listener.on_message(text)

    def fail(self, reason: str = "connection refused") -> None:
        """Transport error followed by close, as a real socket reports it."""
        self.listener.on_error(OSError(reason))
        self.finish_close()

    def finish_close(self) -> None:
        if not self.live:
            return
        self.is_open = False
        self.live = False
        self.listener.on_close()

    def sent_json(self) -> List[Any]:
        return [json.loads(s) for s in self.sent]


class SupervisorHarness:
    """A supervisor wired to a FakeTransport and a ManualScheduler."""

    def __init__(self, auth_key: Optional[str] = None, max_lines: int = 1000,
                 auto_close: bool = False) -> None:
        self.scheduler = ManualScheduler()
        self.history = BoundedHistory(max_lines)
        self.bus = EventBus()
        self.events: List[Any] = []
        self.bus.subscribe(None, self.events.append)
        self.supervisor = ConnectionSupervisor(
            lambda listener: FakeTransport(listener, auto_close=auto_close),
            self.scheduler,
            ADDRESS,
            auth_key=auth_key,
            history=self.history,
            bus=self.bus,
        )
        self.transport: FakeTransport = self.supervisor.transport

    def states(self) -> List[str]:
        """Every state entered, in order."""
        return [e.state for e in self.events
                if e.event_type == EventType.STATE_CHANGED]

    def texts(self) -> List[str]:
        return [e.text for e in self.history.snapshot()]

    def connect_and_authenticate(self) -> None:
        self.supervisor.connect()
        self.transport.accept()
        if self.supervisor.state.value == "authenticating":
            self.transport.receive({"success": True})


@pytest.fixture
def harness():
    return SupervisorHarness()


@pytest.fixture
def auth_harness():
    return SupervisorHarness(auth_key="s3cret")


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def tmp_config(tmp_path):
    """Provide a temporary config file path."""
    return tmp_path / "settings.json"


# ---------------------------------------------------------------------------
# Fake AT WebServer (real WebSocket server on a background loop)
# ---------------------------------------------------------------------------

def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class FakeATServer:
    """Speaks the AT WebServer's log protocol on 127.0.0.1.

    Auth: first frame must be {"auth_key": key} when a key is set.
    Commands: GET_SYS_LOGS returns the stored lines newline-joined,
    CLEAR_SYS_LOGS empties them. ``push(line)`` broadcasts a system_log.
    """

    def __init__(self, auth_key: Optional[str] = None,
                 stored: Optional[List[str]] = None) -> None:
        self.port = _free_port()
        self.auth_key = auth_key
        self.stored: List[str] = list(stored or [])
        self.commands: List[str] = []
        self.connections = 0
        self._clients: set = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._stop: Optional[asyncio.Future] = None

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}"

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        assert self._ready.wait(5.0), "fake server failed to start"

    def stop(self) -> None:
        if self._loop and self._stop is not None:
            self._loop.call_soon_threadsafe(self._stop.set_result, None)
        if self._thread:
            self._thread.join(timeout=5.0)

    def push(self, line: str) -> None:
        text = json.dumps({"type": "system_log", "data": line})
        asyncio.run_coroutine_threadsafe(self._broadcast(text), self._loop).result(2.0)

    def _run(self) -> None:
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._serve())
        finally:
            self._loop.close()

    async def _serve(self) -> None:
        self._stop = asyncio.get_running_loop().create_future()
        async with serve(self._handler, "127.0.0.1", self.port):
            self._ready.set()
            await self._stop

    async def _broadcast(self, text: str) -> None:
        for ws in list(self._clients):
            await ws.send(text)

    async def _handler(self, ws) -> None:
        self.connections += 1
        if self.auth_key is not None:
            try:
                first = json.loads(await ws.recv())
            except (ValueError, TypeError):
                first = {}
            if first.get("auth_key") != self.auth_key:
                await ws.send(json.dumps({"error": "Authentication failed",
                                          "message": "bad key"}))
                await ws.close()
                return
            await ws.send(json.dumps({"success": True, "message": "ok"}))

        self._clients.add(ws)
        try:
            async for raw in ws:
                cmd = json.loads(raw).get("command", "")
                self.commands.append(cmd)
                if cmd == "GET_SYS_LOGS":
                    await ws.send(json.dumps({"success": True,
                                              "data": "\n".join(self.stored),
                                              "error": None}))
                elif cmd == "CLEAR_SYS_LOGS":
                    self.stored.clear()
                    await ws.send(json.dumps({"success": True, "data": None,
                                              "error": None}))
        except Exception:
            pass
        finally:
            self._clients.discard(ws)


@pytest.fixture
def at_server():
    server = FakeATServer(stored=["boot ok", "modem ready"])
    server.start()
    yield server
    server.stop()


@pytest.fixture
def at_server_with_key():
    server = FakeATServer(auth_key="s3cret", stored=["line1"])
    server.start()
    yield server
    server.stop()


@pytest.fixture
def make_harness():
    """Factory for harnesses with non-default settings."""
    return SupervisorHarness


@pytest.fixture
def refused_address():
    """A ws:// address nothing is listening on."""
    return f"ws://127.0.0.1:{_free_port()}"
