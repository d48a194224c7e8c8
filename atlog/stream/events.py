"""Data model shared by the log streaming components."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class LogSource(str, Enum):
    """Where a rendered line came from."""
    SYSTEM = "system"
    RAW = "raw"


class ConnectionState(str, Enum):
    """Connection lifecycle, owned by the ConnectionSupervisor."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    CLOSING = "closing"


class FrameKind(str, Enum):
    """Classification of one inbound text frame."""
    LOG = "log"
    ACK = "ack"
    RAW = "raw"


@dataclass(frozen=True)
class LogEvent:
    """One line of log output. Immutable once created."""
    source: LogSource
    text: str

    @classmethod
    def system(cls, text: str) -> "LogEvent":
        return cls(source=LogSource.SYSTEM, text=text)

    @classmethod
    def raw(cls, text: str) -> "LogEvent":
        return cls(source=LogSource.RAW, text=text)


@dataclass
class DecodedFrame:
    """Result of decoding a single inbound frame.

    ``success`` and ``error`` are only meaningful for ACK frames.
    """
    kind: FrameKind
    events: List[LogEvent] = field(default_factory=list)
    success: Optional[bool] = None
    error: Optional[str] = None


class LogStreamError(Exception):
    """Base class for errors reported by the log stream core."""


class NotAuthenticatedError(LogStreamError):
    """A command was requested while the connection is not authenticated."""

    def __init__(self, command: str = "") -> None:
        self.command = command
        msg = "Not connected to server"
        if command:
            msg = f"{msg}: cannot send {command}"
        super().__init__(msg)
