"""Optional credential handshake performed before any application traffic.

With no key configured the channel is trusted as soon as it opens. With a
key, the client sends ``{"auth_key": <key>}`` and the next inbound frame,
whatever it contains, is taken as the server's verdict.
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthResult:
    ok: bool
    message: str = ""


class Authenticator:
    """Single-slot auth handshake tracker.

    ``awaiting_response`` is raised by :meth:`begin` and lowered by the
    first call to :meth:`consume` (or by :meth:`reset` when the channel
    closes). While it is raised, the supervisor routes every inbound frame
    here instead of to the frame decoder.
    """

    def __init__(self, auth_key: Optional[str] = None) -> None:
        self._auth_key = auth_key or None
        self._awaiting = False

    @property
    def required(self) -> bool:
        return self._auth_key is not None

    @property
    def awaiting_response(self) -> bool:
        return self._awaiting

    def begin(self, send: Callable[[str], None]) -> None:
        """Send the handshake frame and wait for the verdict."""
        if not self.required:
            return
        self._awaiting = True
        send(json.dumps({"auth_key": self._auth_key}))
        logger.debug("Auth handshake sent")

    def consume(self, text: str) -> AuthResult:
        """Interpret *text* as the auth response.

        Only a JSON object with ``"success": true`` is accepted. Anything
        else is a failure, including unparseable text.
        """
        self._awaiting = False
        try:
            data = json.loads(text)
        except (ValueError, TypeError):
            return AuthResult(False, "unexpected response")

        if not isinstance(data, dict):
            return AuthResult(False, "unexpected response")
        if data.get("success") is True:
            return AuthResult(True, str(data.get("message") or ""))

        reason = data.get("message") or data.get("error") or "rejected"
        return AuthResult(False, str(reason))

    def reset(self) -> None:
        self._awaiting = False
