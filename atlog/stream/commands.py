"""Application commands sent to the AT WebServer over the log channel."""

import json
import logging
from enum import Enum
from typing import Callable

from .events import NotAuthenticatedError
from .history import BoundedHistory

logger = logging.getLogger(__name__)


class Command(str, Enum):
    FETCH_HISTORY = "GET_SYS_LOGS"
    CLEAR_HISTORY = "CLEAR_SYS_LOGS"


class CommandDispatcher:
    """Send commands, gated on the connection being authenticated.

    Args:
        send: Enqueues one text frame on the transport.
        is_authenticated: Reads the supervisor's current auth state.
        history: Cleared locally when a remote clear is issued.
    """

    def __init__(self, send: Callable[[str], None],
                 is_authenticated: Callable[[], bool],
                 history: BoundedHistory) -> None:
        self._send = send
        self._is_authenticated = is_authenticated
        self._history = history
        self._sent: dict = {c: 0 for c in Command}

    def fetch_history(self) -> bool:
        """Request the service's stored log. Returns False if not sent."""
        if not self._is_authenticated():
            logger.debug("Skipping %s: not authenticated", Command.FETCH_HISTORY.value)
            return False
        self._dispatch(Command.FETCH_HISTORY)
        return True

    def clear_history(self) -> None:
        """Clear the local history and ask the service to clear its log file.

        Raises:
            NotAuthenticatedError: the connection is not authenticated.
                Nothing is sent and the history is left untouched.
        """
        if not self._is_authenticated():
            raise NotAuthenticatedError(Command.CLEAR_HISTORY.value)
        self._history.clear()
        self._dispatch(Command.CLEAR_HISTORY)

    def _dispatch(self, command: Command) -> None:
        self._send(json.dumps({"command": command.value}))
        self._sent[command] += 1
        logger.info("Sent %s", command.value)

    @property
    def stats(self) -> dict:
        return {c.value: n for c, n in self._sent.items()}
