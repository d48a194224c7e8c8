"""Log pane - the bounded history rendered newest-at-bottom."""

import curses
from typing import Any, List, Sequence, Tuple

from ..stream.events import LogEvent
from .helpers import source_color, safe_addstr

# C0 controls and DEL would move the cursor or garble the pane
_CONTROL_TABLE = {c: " " for c in list(range(0x20)) + [0x7F]}


def printable(text: str) -> str:
    """Replace control characters with spaces for drawing."""
    return text.translate(_CONTROL_TABLE)


def filter_lines(lines: Sequence[LogEvent], query: str) -> List[LogEvent]:
    """Case-insensitive substring filter; empty query keeps everything."""
    if not query:
        return list(lines)
    q = query.lower()
    return [e for e in lines if q in e.text.lower()]


def filter_with_offset(lines: Sequence[LogEvent], query: str,
                       view_offset: int) -> Tuple[List[LogEvent], int]:
    """Filter *lines* and translate *view_offset* into the filtered list.

    The offset counts unfiltered lines above the newest one. The filtered
    view keeps the newest match at or above that position at the bottom.
    """
    if not query:
        return list(lines), view_offset
    q = query.lower()
    anchor = len(lines) - 1 - max(0, view_offset)
    shown: List[LogEvent] = []
    below = 0
    for idx, event in enumerate(lines):
        if q in event.text.lower():
            shown.append(event)
            if idx > anchor:
                below += 1
    return shown, below


def visible_window(total: int, height: int, view_offset: int) -> range:
    """Indices of the lines shown in a pane of *height* rows.

    ``view_offset`` counts lines between the bottom row and the newest line.
    """
    if total <= 0 or height <= 0:
        return range(0)
    offset = min(max(0, view_offset), total - 1)
    end = total - offset
    start = max(0, end - height)
    return range(start, end)


def draw_log(win: Any, top: int, height: int, cols: int,
             lines: Sequence[LogEvent], view_offset: int,
             search_query: str = "") -> int:
    """Render the log pane. Returns the number of lines after filtering."""
    shown, offset = filter_with_offset(lines, search_query, view_offset)

    if not shown:
        msg = "  No log lines match the filter." if search_query else "  Waiting for log lines..."
        safe_addstr(win, top + 1, 0, msg, curses.A_DIM, cols)
        return 0

    for row, idx in enumerate(visible_window(len(shown), height, offset)):
        event = shown[idx]
        source = getattr(event.source, "value", event.source)
        safe_addstr(win, top + row, 1, printable(event.text), source_color(source), cols)
    return len(shown)
