"""
AT-Log Viewer - Reconnect Strategy

Supplies the delay before the next connection attempt and counts
attempts for the status display. The log stream reconnects on a fixed
delay with no retry limit.
"""

import logging
import threading

logger = logging.getLogger(__name__)

LOG_STREAM_RECONNECT_DELAY = 5.0


class ReconnectStrategy:
    """Fixed-delay reconnect policy with attempt counters.

    Auth failures go through the same path, so a wrong key is retried
    forever at this pace.
    """

    def __init__(self, delay: float = LOG_STREAM_RECONNECT_DELAY):
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self._delay = delay
        self._lock = threading.Lock()

        self._attempt: int = 0
        self._total_attempts: int = 0

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def attempt(self) -> int:
        """Attempts since the last successful connection."""
        with self._lock:
            return self._attempt

    @property
    def total_attempts(self) -> int:
        """Total attempts across all reset cycles."""
        with self._lock:
            return self._total_attempts

    def next_delay(self) -> float:
        """Return the next delay in seconds and count the attempt."""
        with self._lock:
            self._attempt += 1
            self._total_attempts += 1
            if self._attempt > 1:
                logger.debug("Reconnect attempt %d", self._attempt)
        return self._delay

    def reset(self) -> None:
        """Reset the attempt counter after a successful connection."""
        with self._lock:
            self._attempt = 0

    @classmethod
    def for_log_stream(cls, delay: float = LOG_STREAM_RECONNECT_DELAY) -> "ReconnectStrategy":
        """Factory for the log stream's fixed reconnect delay."""
        return cls(delay)
