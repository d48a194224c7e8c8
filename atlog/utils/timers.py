"""Scheduling primitives for the single-threaded streaming core.

Every timer in the core goes through a ``Scheduler``: anything with
``call_later(delay, callback) -> handle`` where ``handle.cancel()`` stops
the callback from running. ``asyncio`` event loops satisfy this directly.
``ManualScheduler`` is a virtual clock used by the test suite and by any
caller that wants to drive time by hand.
"""

import heapq
import itertools
import logging
from typing import Any, Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any],
                   *args: Any) -> TimerHandle: ...


class ManualTimer:
    """Handle returned by ManualScheduler.call_later()."""

    def __init__(self, when: float, callback: Callable[..., Any],
                 args: Tuple[Any, ...]) -> None:
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        self._callback(*self._args)


class ManualScheduler:
    """Deterministic scheduler with a virtual clock.

    Timers fire only from :meth:`advance`, in due-time order, one handler
    running to completion before the next starts. Timers scheduled by a
    handler fire in the same ``advance`` call if they fall due within it.

    Usage:
        sched = ManualScheduler()
        sched.call_later(0.2, flush)
        sched.advance(0.2)   # flush runs here
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, ManualTimer]] = []

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any],
                   *args: Any) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (timer.when, next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) timers."""
        return sum(1 for _, _, t in self._queue if not t.cancelled())

    def next_due(self) -> Optional[float]:
        live = [when for when, _, t in self._queue if not t.cancelled()]
        return min(live) if live else None

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers. Returns count fired."""
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled():
                continue
            self._now = when
            timer._run()
            fired += 1
        self._now = target
        return fired

    def run_all(self, limit: int = 1000) -> int:
        """Fire timers until none remain (bounded by *limit*)."""
        fired = 0
        while fired < limit:
            due = self.next_due()
            if due is None:
                break
            fired += self.advance(due - self._now)
        return fired
