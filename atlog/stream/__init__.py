"""Real-time log streaming core.

Data flow:
    WebSocketTransport -> ConnectionSupervisor -> Authenticator (auth phase)
                                               -> FrameDecoder -> BatchingBuffer
                                               -> BoundedHistory (on flush)
"""

from .auth import Authenticator, AuthResult
from .buffer import BatchingBuffer
from .commands import Command, CommandDispatcher
from .decoder import FrameDecoder
from .events import (
    ConnectionState,
    DecodedFrame,
    FrameKind,
    LogEvent,
    LogSource,
    LogStreamError,
    NotAuthenticatedError,
)
from .history import MAX_LINES, BoundedHistory
from .supervisor import ConnectionSupervisor

__all__ = [
    "Authenticator",
    "AuthResult",
    "BatchingBuffer",
    "BoundedHistory",
    "Command",
    "CommandDispatcher",
    "ConnectionState",
    "ConnectionSupervisor",
    "DecodedFrame",
    "FrameDecoder",
    "FrameKind",
    "LogEvent",
    "LogSource",
    "LogStreamError",
    "MAX_LINES",
    "NotAuthenticatedError",
]
