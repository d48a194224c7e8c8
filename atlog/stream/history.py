"""Bounded, ordered store of rendered log lines.

The history is the user-visible source of truth. It is written by the
batching buffer on the event-loop thread and read by the curses UI on the
main thread, so every access goes through one lock.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, Iterable, List, Tuple

from .events import LogEvent

logger = logging.getLogger(__name__)

MAX_LINES = 1000

# A view this many lines (or fewer) above the newest line still counts as
# "at the end" for auto-scroll decisions.
AT_END_SLACK = 2

ScrollListener = Callable[[], None]


class BoundedHistory:
    """FIFO-trimmed log history with a pause flag and a scroll position.

    Args:
        max_lines: Capacity. Oldest entries are dropped first.
    """

    def __init__(self, max_lines: int = MAX_LINES) -> None:
        if max_lines < 1:
            raise ValueError("max_lines must be >= 1")
        self._max_lines = max_lines
        self._lock = threading.Lock()
        self._lines: Deque[LogEvent] = deque(maxlen=max_lines)
        self._paused = False
        self._view_offset = 0
        self._scroll_listeners: List[ScrollListener] = []
        self._total_appended = 0
        self._total_trimmed = 0

    @property
    def max_lines(self) -> int:
        return self._max_lines

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    def snapshot(self) -> List[LogEvent]:
        """Current lines, oldest first."""
        with self._lock:
            return list(self._lines)

    def since(self, seen: int) -> Tuple[int, List[LogEvent]]:
        """Lines appended after the first *seen* appends, still retained.

        Returns ``(total_appended, new_lines)``; pass the returned total
        back in on the next call to follow the stream incrementally.
        """
        with self._lock:
            total = self._total_appended
            fresh = min(max(0, total - seen), len(self._lines))
            lines = list(self._lines)[len(self._lines) - fresh:] if fresh else []
            return total, lines

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append_batch(self, events: Iterable[LogEvent], was_at_end: bool) -> bool:
        """Append *events* in order, trimming from the front.

        Returns True if a "scroll to latest" signal was emitted, which
        happens when the view was at the end before the batch and the
        history is not paused.
        """
        batch = list(events)
        if not batch:
            return False

        with self._lock:
            overflow = max(0, len(self._lines) + len(batch) - self._max_lines)
            self._lines.extend(batch)
            self._total_appended += len(batch)
            self._total_trimmed += overflow
            follow = was_at_end and not self._paused
            if follow:
                self._view_offset = 0
            else:
                # Keep the same lines on screen while new ones arrive below
                self._view_offset = min(self._view_offset + len(batch),
                                        max(0, len(self._lines) - 1))

        if follow:
            self._emit_scroll()
        return follow

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()
            self._view_offset = 0

    # ------------------------------------------------------------------
    # Pause / view position
    # ------------------------------------------------------------------

    @property
    def paused(self) -> bool:
        with self._lock:
            return self._paused

    def set_paused(self, paused: bool) -> None:
        with self._lock:
            was_paused = self._paused
            self._paused = paused
            if was_paused and not paused:
                self._view_offset = 0
        if was_paused and not paused:
            self._emit_scroll()

    def toggle_pause(self) -> bool:
        """Flip the pause flag and return the new value."""
        new_value = not self.paused
        self.set_paused(new_value)
        return new_value

    @property
    def view_offset(self) -> int:
        """Lines between the bottom of the view and the newest line."""
        with self._lock:
            return self._view_offset

    @property
    def at_end(self) -> bool:
        with self._lock:
            return self._view_offset <= AT_END_SLACK

    def scroll_up(self, lines: int = 1) -> None:
        with self._lock:
            limit = max(0, len(self._lines) - 1)
            self._view_offset = min(self._view_offset + lines, limit)

    def scroll_down(self, lines: int = 1) -> None:
        with self._lock:
            self._view_offset = max(0, self._view_offset - lines)

    def scroll_to_start(self) -> None:
        with self._lock:
            self._view_offset = max(0, len(self._lines) - 1)

    def scroll_to_end(self) -> None:
        with self._lock:
            self._view_offset = 0

    # ------------------------------------------------------------------
    # Scroll signal
    # ------------------------------------------------------------------

    def add_scroll_listener(self, callback: ScrollListener) -> None:
        with self._lock:
            self._scroll_listeners.append(callback)

    def remove_scroll_listener(self, callback: ScrollListener) -> None:
        with self._lock:
            if callback in self._scroll_listeners:
                self._scroll_listeners.remove(callback)

    def _emit_scroll(self) -> None:
        with self._lock:
            listeners = list(self._scroll_listeners)
        for callback in listeners:
            try:
                callback()
            except Exception:
                logger.exception("Scroll listener %r failed", callback)

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "lines": len(self._lines),
                "max_lines": self._max_lines,
                "total_appended": self._total_appended,
                "total_trimmed": self._total_trimmed,
                "paused": self._paused,
            }
