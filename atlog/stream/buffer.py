"""Coalescing batch buffer between the frame decoder and the history.

Any number of pushes inside one flush window produce exactly one flush.
At most one flush timer is outstanding at a time.
"""

import logging
from typing import Iterable, List, Optional

from ..utils.timers import Scheduler, TimerHandle
from .events import LogEvent
from .history import BoundedHistory

logger = logging.getLogger(__name__)

FLUSH_INTERVAL = 0.2  # seconds


class BatchingBuffer:
    """Collect decoded events and move them to the history on a timer.

    Args:
        history: Destination sink.
        scheduler: Anything with ``call_later`` (an asyncio loop works).
        interval: Flush delay in seconds after the first pending push.
    """

    def __init__(self, history: BoundedHistory, scheduler: Scheduler,
                 interval: float = FLUSH_INTERVAL) -> None:
        self._history = history
        self._scheduler = scheduler
        self._interval = interval
        self._pending: List[LogEvent] = []
        self._flush_timer: Optional[TimerHandle] = None
        self._flush_count = 0

    @property
    def history(self) -> BoundedHistory:
        return self._history

    @property
    def pending(self) -> List[LogEvent]:
        return list(self._pending)

    @property
    def flush_scheduled(self) -> bool:
        return self._flush_timer is not None

    @property
    def flush_count(self) -> int:
        return self._flush_count

    def push(self, event: LogEvent) -> None:
        self._pending.append(event)
        if self._flush_timer is None:
            self._flush_timer = self._scheduler.call_later(
                self._interval, self._on_flush_timer)

    def push_many(self, events: Iterable[LogEvent], immediate: bool = False) -> None:
        """Push *events* in order.

        With *immediate*, and no flush already scheduled, the batch is
        flushed right away instead of waiting for the timer. A scheduled
        flush is left alone so earlier pending events keep their place.
        """
        batch = list(events)
        if not batch:
            return
        if immediate and self._flush_timer is None:
            self._pending.extend(batch)
            self.flush()
            return
        for event in batch:
            self.push(event)

    def flush(self) -> int:
        """Move every pending event into the history. Returns the count."""
        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush_timer = None

        if not self._pending:
            return 0

        batch, self._pending = self._pending, []
        was_at_end = self._history.at_end
        self._history.append_batch(batch, was_at_end)
        self._flush_count += 1
        logger.debug("Flushed %d log events", len(batch))
        return len(batch)

    def discard(self) -> int:
        """Drop pending events without rendering them."""
        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush_timer = None
        dropped = len(self._pending)
        self._pending = []
        return dropped

    def _on_flush_timer(self) -> None:
        # The timer has fired; drop the handle before flushing so flush()
        # does not cancel a callback that is already running.
        self._flush_timer = None
        self.flush()
