"""AT-Log Viewer TUI - Core Application

Curses-based terminal UI showing the AT WebServer system log live.
The log stream runs on its own event-loop thread (LogStreamClient); this
module only reads the shared history and forwards user commands.

Layout:
  header      - service address and connection state
  log pane    - bounded history, newest line at the bottom
  status bar  - last status message and key hints
"""

import curses
import logging
import threading
import time
from typing import Any, Optional

from ..stream.client import LogStreamClient
from ..stream.events import ConnectionState, NotAuthenticatedError
from ..utils.event_bus import EventType, StreamEvent
from .helpers import (
    CP_HEADER,
    CP_STATUS_BAR,
    _format_ts,
    _init_colors,
    safe_addstr,
    state_color,
)
from .log_view import draw_log

logger = logging.getLogger(__name__)

# Input timeout; also the redraw cadence (ms)
INPUT_TIMEOUT_MS = 200

PAGE_LINES = 20

_ERROR_EVENTS = frozenset({
    EventType.AUTH_FAILED,
    EventType.CHANNEL_ERROR,
    EventType.COMMAND_FAILED,
})

_STATE_LABELS = {
    ConnectionState.DISCONNECTED: "DISCONNECTED",
    ConnectionState.CONNECTING: "CONNECTING",
    ConnectionState.AUTHENTICATING: "AUTHENTICATING",
    ConnectionState.AUTHENTICATED: "CONNECTED",
    ConnectionState.CLOSING: "CLOSING",
}


class TuiApp:
    """Main TUI application controller."""

    def __init__(self, client: LogStreamClient):
        self._client = client
        self._running = False
        self._stdscr: Any = None

        # Last status message (written by the loop thread via the bus)
        self._status_lock = threading.Lock()
        self._status_msg = ""
        self._status_ts = 0.0
        self._status_error = False

        # "Clear log file?" confirmation pending
        self._confirm_clear = False

        # Search/filter state
        self._search_active = False
        self._search_query = ""

    def run(self) -> None:
        """Launch the TUI (blocks until quit)."""
        curses.wrapper(self._main)

    def _main(self, stdscr: Any) -> None:
        self._stdscr = stdscr
        _init_colors()

        curses.curs_set(0)  # hide cursor
        stdscr.nodelay(False)
        stdscr.timeout(INPUT_TIMEOUT_MS)

        self._client.bus.subscribe(None, self._on_stream_event)
        self._running = True
        self._client.start()
        try:
            while self._running:
                self._draw()
                self._handle_input()
        finally:
            self._client.bus.unsubscribe(None, self._on_stream_event)
            self._client.shutdown()

    # ── Status ───────────────────────────────────────────────────

    def _on_stream_event(self, event: StreamEvent) -> None:
        if event.event_type == EventType.STATE_CHANGED:
            return
        self._set_status(event.message, event.event_type in _ERROR_EVENTS,
                         event.timestamp)

    def _set_status(self, message: str, error: bool = False,
                    ts: Optional[float] = None) -> None:
        with self._status_lock:
            self._status_msg = message
            self._status_error = error
            self._status_ts = ts or time.time()

    # ── Input ────────────────────────────────────────────────────

    def _handle_input(self) -> None:
        """Process keyboard input."""
        try:
            key = self._stdscr.getch()
        except curses.error:
            return

        if key == -1:
            return

        # ── Search input mode ──
        if self._search_active:
            if key == 27:  # Escape: cancel search
                self._search_active = False
                self._search_query = ""
                return
            if key in (curses.KEY_ENTER, ord("\n"), ord("\r")):
                self._search_active = False
                return
            if key in (curses.KEY_BACKSPACE, 127, 8):
                self._search_query = self._search_query[:-1]
                return
            if 32 <= key <= 126:
                self._search_query += chr(key)
            return

        # ── Clear-log-file confirmation ──
        if self._confirm_clear:
            self._confirm_clear = False
            if key in (ord("y"), ord("Y")):
                self._clear_log_file()
            else:
                self._set_status("Clear cancelled")
            return

        history = self._client.history

        if key in (ord("q"), ord("Q")):
            self._running = False
            return

        if key == ord("p"):
            paused = self._client.toggle_pause()
            self._set_status("Auto-scroll paused" if paused else "Auto-scroll resumed")
            return

        if key == ord("c"):
            self._client.clear_screen()
            return

        if key == ord("X"):
            self._confirm_clear = True
            return

        if key == ord("/"):
            self._search_active = True
            self._search_query = ""
            return

        if key == 27 and self._search_query:
            self._search_query = ""
            return

        # Scrolling (offsets count up from the newest line)
        if key == curses.KEY_UP or key == ord("k"):
            history.scroll_up(1)
            return
        if key == curses.KEY_DOWN or key == ord("j"):
            history.scroll_down(1)
            return
        if key == curses.KEY_PPAGE:
            history.scroll_up(PAGE_LINES)
            return
        if key == curses.KEY_NPAGE:
            history.scroll_down(PAGE_LINES)
            return
        if key == curses.KEY_HOME or key == ord("g"):
            history.scroll_to_start()
            return
        if key == curses.KEY_END or key == ord("G"):
            history.scroll_to_end()
            return

    def _clear_log_file(self) -> None:
        try:
            self._client.clear_history()
        except NotAuthenticatedError as e:
            self._set_status(str(e), error=True)

    # ── Drawing ──────────────────────────────────────────────────

    def _draw(self) -> None:
        """Render the full TUI frame."""
        self._stdscr.erase()
        rows, cols = self._stdscr.getmaxyx()
        if rows < 5 or cols < 40:
            safe_addstr(self._stdscr, 0, 0, "Terminal too small")
            self._stdscr.refresh()
            return

        self._draw_header(cols)
        self._draw_status_bar(rows, cols)

        history = self._client.history
        draw_log(self._stdscr, 1, rows - 2, cols,
                 history.snapshot(), history.view_offset, self._search_query)

        self._stdscr.refresh()

    def _draw_header(self, cols: int) -> None:
        attr = curses.color_pair(CP_HEADER) | curses.A_BOLD
        safe_addstr(self._stdscr, 0, 0, " " * cols, attr)
        safe_addstr(self._stdscr, 0, 1, "AT-Log Viewer", attr)
        safe_addstr(self._stdscr, 0, 16, self._client.address, attr)

        state = self._client.state
        label = "● " + _STATE_LABELS.get(state, state.value.upper())
        history = self._client.history
        if history.paused:
            label += "  PAUSED"
        lines = f"{len(history)}/{history.max_lines}"
        right = f"{label}  {lines} "
        with self._status_lock:
            error = self._status_error and state != ConnectionState.AUTHENTICATED
        safe_addstr(self._stdscr, 0, max(0, cols - len(right) - 2), right,
                    state_color(state.value, error) | curses.A_BOLD)

    def _draw_status_bar(self, rows: int, cols: int) -> None:
        attr = curses.color_pair(CP_STATUS_BAR)
        y = rows - 1
        safe_addstr(self._stdscr, y, 0, " " * cols, attr)

        if self._confirm_clear:
            safe_addstr(self._stdscr, y, 1,
                        "Clear the log file on the device? This cannot be undone. (y/N)",
                        attr | curses.A_BOLD)
            return

        if self._search_active:
            left = f"Search: {self._search_query}_"
        elif self._search_query:
            left = f"Filter: {self._search_query}  [Esc]clear"
        else:
            with self._status_lock:
                msg, ts, err = self._status_msg, self._status_ts, self._status_error
            left = f"{_format_ts(ts)} {msg}" if msg else ""
            if err:
                attr |= curses.A_BOLD
        safe_addstr(self._stdscr, y, 1, left, attr)

        hint = "q:Quit p:Pause c:Clear X:Clear file /:Filter"
        if cols > len(left) + len(hint) + 6:
            safe_addstr(self._stdscr, y, cols - len(hint) - 2, hint,
                        curses.color_pair(CP_STATUS_BAR))


def run_tui(client: LogStreamClient) -> None:
    """Entry point for launching the TUI."""
    TuiApp(client).run()
