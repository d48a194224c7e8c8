"""Classify inbound text frames into typed log events.

Recognized shapes, checked in priority order:

    {"type": "system_log", "data": "<line>"}      -> one system event
    {"success": <bool>, "data"?: "<lines>"}       -> command acknowledgment
    anything else                                 -> one raw event

Decoding never raises. Unparseable frames degrade to raw text.
"""

import json
import logging
from typing import Any, List, Union

from .events import DecodedFrame, FrameKind, LogEvent

logger = logging.getLogger(__name__)

SYSTEM_LOG_TYPE = "system_log"


def split_history(data: str) -> List[str]:
    """Split newline-joined history into lines, dropping blank ones.

    Only LF and CRLF end a line; any other control character is part
    of the line text.
    """
    return [line for line in data.replace("\r\n", "\n").split("\n") if line.strip()]


class FrameDecoder:
    """Stateless decoder for frames pushed by the AT WebServer."""

    def decode(self, frame: Union[str, bytes]) -> DecodedFrame:
        if isinstance(frame, (bytes, bytearray)):
            text = bytes(frame).decode("utf-8", errors="replace")
        else:
            text = frame

        try:
            data = json.loads(text)
        except (ValueError, TypeError):
            return self._raw(text)

        if not isinstance(data, dict):
            return self._raw(text)

        if data.get("type") == SYSTEM_LOG_TYPE and isinstance(data.get("data"), str):
            return DecodedFrame(
                kind=FrameKind.LOG,
                events=[LogEvent.system(data["data"])],
            )

        success = data.get("success")
        if isinstance(success, bool):
            return self._ack(data, success, text)

        return self._raw(text)

    def _ack(self, data: dict, success: bool, text: str) -> DecodedFrame:
        payload: Any = data.get("data")
        if payload is not None and not isinstance(payload, str):
            # Right keys, wrong payload type: not an acknowledgment we know
            return self._raw(text)

        error = data.get("error")
        events: List[LogEvent] = []
        if payload:
            events = [LogEvent.system(line) for line in split_history(payload)]
        return DecodedFrame(
            kind=FrameKind.ACK,
            events=events,
            success=success,
            error=str(error) if error is not None else None,
        )

    @staticmethod
    def _raw(text: str) -> DecodedFrame:
        logger.debug("Unrecognized frame, rendering as raw text: %.80s", text)
        return DecodedFrame(kind=FrameKind.RAW, events=[LogEvent.raw(text)])
