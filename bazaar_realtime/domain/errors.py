"""Realtime error taxonomy.

None of these escape the SocketManager.  The connection delivers them to
the ``connect_error`` / ``disconnect`` observers and the consumer decides
what the user sees.
"""

from __future__ import annotations


class RealtimeError(Exception):
    """Base class for every realtime connection failure."""


class ConnectionTimeoutError(RealtimeError):
    """The connection attempt (socket open + handshake) exceeded its timeout."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Connection attempt timed out after {timeout_ms} ms")


class TransportError(RealtimeError):
    """The socket could not be opened, or failed underneath us."""


class AuthRefusedError(TransportError):
    """The server rejected the handshake credentials."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Handshake refused: {reason}")


class UnexpectedDisconnect(RealtimeError):
    """A live connection dropped without the client asking for it.

    Kept on ``RealtimeConnection.last_disconnect`` with the close code, so a
    consumer told only the reason string can still inspect why.
    """

    def __init__(self, reason: str, code: int | None = None) -> None:
        self.reason = reason
        self.code = code
        super().__init__(f"Disconnected ({reason}, code={code})")
