"""Shared helpers for the log viewer TUI.

Color constants, color-mapping functions, and the safe drawing utility.
"""

import curses
import time
from typing import Any, Optional


# ── Color pair IDs ────────────────────────────────────────────────

CP_NORMAL = 0
CP_HEADER = 1
CP_STATUS_BAR = 2
CP_SYSTEM_LOG = 3
CP_RAW_LOG = 4
CP_STATE_OK = 5
CP_STATE_PENDING = 6
CP_STATE_ERROR = 7
CP_STATE_IDLE = 8
CP_HIGHLIGHT = 9


def _init_colors() -> None:
    """Set up curses color pairs."""
    curses.start_color()
    curses.use_default_colors()

    curses.init_pair(CP_HEADER, curses.COLOR_WHITE, curses.COLOR_BLUE)
    curses.init_pair(CP_STATUS_BAR, curses.COLOR_BLACK, curses.COLOR_WHITE)
    curses.init_pair(CP_SYSTEM_LOG, curses.COLOR_YELLOW, -1)
    curses.init_pair(CP_RAW_LOG, curses.COLOR_WHITE, -1)
    curses.init_pair(CP_STATE_OK, curses.COLOR_GREEN, -1)
    curses.init_pair(CP_STATE_PENDING, curses.COLOR_YELLOW, -1)
    curses.init_pair(CP_STATE_ERROR, curses.COLOR_RED, -1)
    curses.init_pair(CP_STATE_IDLE, curses.COLOR_WHITE, -1)
    curses.init_pair(CP_HIGHLIGHT, curses.COLOR_BLACK, curses.COLOR_CYAN)


def state_color(state: str, error: bool = False) -> int:
    """Map a connection state value to a color pair."""
    if error:
        return curses.color_pair(CP_STATE_ERROR)
    mapping = {
        "authenticated": CP_STATE_OK,
        "connecting": CP_STATE_PENDING,
        "authenticating": CP_STATE_PENDING,
        "closing": CP_STATE_PENDING,
        "disconnected": CP_STATE_IDLE,
    }
    return curses.color_pair(mapping.get(state, CP_NORMAL))


def source_color(source: str) -> int:
    """System log lines and raw frames are drawn in different colors."""
    mapping = {
        "system": CP_SYSTEM_LOG,
        "raw": CP_RAW_LOG,
    }
    return curses.color_pair(mapping.get(source, CP_NORMAL))


def safe_addstr(win: Any, y: int, x: int, text: str,
                attr: int = 0, max_width: int = 0) -> None:
    """Write text to curses window, clipping to avoid curses errors."""
    rows, cols = win.getmaxyx()
    if y < 0 or y >= rows or x >= cols:
        return
    available = cols - x - 1  # leave 1 col margin to avoid bottom-right corner issue
    if max_width > 0:
        available = min(available, max_width)
    if available <= 0:
        return
    clipped = text[:available]
    try:
        win.addstr(y, x, clipped, attr)
    except curses.error:
        pass


def _format_ts(ts: Optional[float]) -> str:
    """Format a unix timestamp as HH:MM:SS."""
    if not ts:
        return "--:--:--"
    try:
        return time.strftime("%H:%M:%S", time.localtime(ts))
    except (OSError, ValueError):
        return "??:??:??"
