"""Client side of the marketplace realtime channel.

A RealtimeConnection owns one WebSocket to the hub and keeps it alive:

    open() ──► connect + auth handshake ──► CONNECTED ──► frames dispatched
                  │ fail                        │ drop
                  ▼                             ▼
             connect_error               disconnect(reason)
                  └──────► backoff sleep ◄──────┘
                              │ attempts exhausted
                              ▼
                       reconnect_failed  (settles in DISCONNECTED)

Observers are plain callables registered with on().  They run on the event
loop thread and must not block.  An observer that raises is logged and
otherwise ignored so one broken consumer cannot kill the connection.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from bazaar_realtime.domain.credentials import Credentials
from bazaar_realtime.domain.enums import ConnectionState, DisconnectReason
from bazaar_realtime.domain.errors import (
    AuthRefusedError,
    ConnectionTimeoutError,
    RealtimeError,
    TransportError,
    UnexpectedDisconnect,
)
from bazaar_realtime.models.frames import (
    AuthFrame,
    ConnectedFrame,
    ConnectErrorFrame,
    EventFrame,
    dump_frame,
    parse_frame,
)
from bazaar_realtime.models.options import ConnectionOptions
from bazaar_realtime.transport.backoff import ReconnectionBackoff

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]
Connector = Callable[[str], Awaitable[Any]]

CONNECT = "connect"
DISCONNECT = "disconnect"
CONNECT_ERROR = "connect_error"
RECONNECT_FAILED = "reconnect_failed"

LIFECYCLE_EVENTS = frozenset({CONNECT, DISCONNECT, CONNECT_ERROR, RECONNECT_FAILED})

# Normal closure: the hub ended the session on purpose, do not retry.
_SERVER_CLOSE_CODE = 1000


def websocket_connector(url: str) -> Awaitable[Any]:
    """Open a client WebSocket; the attempt timeout is applied by the caller."""
    return websockets.connect(url, open_timeout=None)


class RealtimeConnection:
    """One authenticated, self-reconnecting socket to the realtime hub.

    Args:
        url: Hub endpoint, e.g. ``ws://host/ws/realtime``.
        credentials: Sent in the auth frame of every (re)connect attempt.
        options: Transport and reconnection policy.
        connector: Coroutine factory that opens the socket.  Defaults to
            ``websockets.connect``; tests inject an in-memory fake.
        backoff: Delay schedule between attempts.  Built from *options*
            when omitted.
    """

    def __init__(
        self,
        url: str,
        credentials: Credentials,
        options: ConnectionOptions | None = None,
        *,
        connector: Connector | None = None,
        backoff: ReconnectionBackoff | None = None,
    ) -> None:
        self.options = options or ConnectionOptions()
        if "websocket" not in self.options.transports:
            raise ValueError("The websocket transport must be enabled")
        if "polling" in self.options.transports:
            logger.warning("Polling transport is not available, using websocket only")

        self.url = url
        self.credentials = credentials
        self.sid: str | None = None
        self.attempts = 0
        self.last_disconnect: UnexpectedDisconnect | None = None
        self._connector = connector or websocket_connector
        self._backoff = backoff or ReconnectionBackoff(
            min_ms=self.options.reconnection_delay,
            max_ms=self.options.reconnection_delay_max,
            jitter=self.options.randomization_factor,
        )
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._state = ConnectionState.NO_CONNECTION
        self._task: asyncio.Task | None = None
        self._ws: Any = None

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def terminated(self) -> bool:
        return self._state is ConnectionState.TERMINATED

    def on(self, event: str, handler: Handler) -> None:
        """Register *handler* for a lifecycle event or a server-pushed event."""
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def open(self) -> None:
        """Start connecting in the background and return immediately.

        Must be called from inside a running event loop.
        """
        if self.terminated:
            raise TransportError("Connection was terminated; create a new one")
        if self._task is not None and not self._task.done():
            return
        self._state = ConnectionState.CONNECTING
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"realtime:{self.credentials}"
        )

    async def emit(self, event: str, data: Any = None) -> None:
        """Send an event frame to the hub.

        Raises:
            TransportError: If the connection is not currently live.
        """
        if not self.connected or self._ws is None:
            raise TransportError(f"Cannot emit '{event}' while {self._state.value}")
        try:
            await self._ws.send(dump_frame(EventFrame(event=event, data=data)))
        except (ConnectionClosed, OSError) as exc:
            raise TransportError(str(exc)) from exc

    def disconnect(self) -> None:
        """Terminate the connection for good.  Idempotent.

        Cancels any in-flight attempt or backoff sleep; the socket is closed
        by the background task as it unwinds.
        """
        if self.terminated:
            return
        was_connected = self.connected
        self._state = ConnectionState.TERMINATED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info("Realtime connection %s terminated (sid=%s)", self.credentials, self.sid)
        if was_connected:
            self._fire(DISCONNECT, DisconnectReason.CLIENT.value)

    async def wait_closed(self) -> None:
        """Wait until the background task has fully unwound."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    # ── Connection loop ──────────────────────────────────────────────────

    async def _run(self) -> None:
        attempts = 0
        try:
            while True:
                self._set_state(ConnectionState.CONNECTING)
                try:
                    ws, sid = await asyncio.wait_for(
                        self._establish(), self.options.timeout_seconds
                    )
                except asyncio.TimeoutError:
                    await self._abandon_attempt(ConnectionTimeoutError(self.options.timeout))
                except RealtimeError as exc:
                    await self._abandon_attempt(exc)
                except (OSError, WebSocketException, ValidationError) as exc:
                    await self._abandon_attempt(TransportError(str(exc) or type(exc).__name__))
                else:
                    attempts = 0
                    self.attempts = 0
                    self._backoff.reset()
                    self.sid = sid
                    self._set_state(ConnectionState.CONNECTED)
                    logger.info("Realtime connected as %s (sid=%s)", self.credentials, sid)
                    self._fire(CONNECT)

                    reason = await self._serve(ws)
                    self._ws = None
                    self.last_disconnect = UnexpectedDisconnect(reason.value, ws.close_code)
                    self._set_state(ConnectionState.DISCONNECTED)
                    logger.warning("Realtime %s", self.last_disconnect)
                    self._fire(DISCONNECT, reason.value)
                    if reason is DisconnectReason.SERVER:
                        return

                if not self.options.reconnection:
                    return
                if attempts >= self.options.reconnection_attempts:
                    logger.error(
                        "Giving up after %d reconnection attempt(s) for %s",
                        attempts,
                        self.credentials,
                    )
                    self._fire(RECONNECT_FAILED)
                    return

                attempts += 1
                self.attempts = attempts
                delay_ms = self._backoff.duration()
                logger.info(
                    "Reconnection attempt %d/%d in %d ms",
                    attempts,
                    self.options.reconnection_attempts,
                    delay_ms,
                )
                await asyncio.sleep(delay_ms / 1000.0)
        finally:
            await self._close_socket()

    async def _establish(self) -> tuple[Any, str]:
        """Open the socket and complete the auth handshake."""
        ws = await self._connector(self.url)
        self._ws = ws
        auth = AuthFrame(
            token=self.credentials.token,
            user_id=self.credentials.user_id,
            role=self.credentials.role,
        )
        await ws.send(dump_frame(auth))
        reply = parse_frame(await ws.recv())
        if isinstance(reply, ConnectErrorFrame):
            raise AuthRefusedError(reply.message)
        if not isinstance(reply, ConnectedFrame):
            raise TransportError(f"Unexpected handshake frame '{reply.type}'")
        return ws, reply.sid

    async def _serve(self, ws: Any) -> DisconnectReason:
        """Dispatch inbound frames until the socket closes."""
        try:
            async for raw in ws:
                self._dispatch(raw)
        except ConnectionClosed as exc:
            logger.debug("Socket closed abnormally: %s", exc)
            return DisconnectReason.TRANSPORT_ERROR
        if ws.close_code == _SERVER_CLOSE_CODE:
            return DisconnectReason.SERVER
        return DisconnectReason.TRANSPORT_CLOSE

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            frame = parse_frame(raw)
        except ValidationError as exc:
            logger.warning("Dropping malformed frame: %s", exc)
            return
        if not isinstance(frame, EventFrame):
            logger.debug("Ignoring '%s' frame after handshake", frame.type)
            return
        if frame.event in LIFECYCLE_EVENTS:
            logger.warning("Hub tried to emit reserved event '%s'", frame.event)
            return
        self._fire(frame.event, frame.data)

    async def _abandon_attempt(self, error: RealtimeError) -> None:
        await self._close_socket()
        self._set_state(ConnectionState.DISCONNECTED)
        logger.warning("Realtime connect error for %s: %s", self.credentials, error)
        self._fire(CONNECT_ERROR, error)

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as exc:
            logger.debug("Ignoring error while closing socket: %s", exc)

    # ── Internals ────────────────────────────────────────────────────────

    def _set_state(self, state: ConnectionState) -> None:
        # disconnect() may run inside an observer; never leave TERMINATED.
        if not self.terminated:
            self._state = state

    def _fire(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                logger.exception("Observer for '%s' raised", event)
