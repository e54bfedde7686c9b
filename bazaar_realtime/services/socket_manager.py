"""Single-owner manager for the process-wide realtime connection.

Many independently mounted consumers (screens, widgets, background
workers) want live marketplace events, but the user session must hold at
most ONE socket to the hub.  The SocketManager owns that socket:

    activate()        consumer mounts    → reuse, replace or create
    deactivate(seq)   consumer unmounts  → after a grace delay, maybe tear down
    force_disconnect  logout             → tear down unconditionally
    get_handle()      read-only peek

Design notes:
    - Construct one SocketManager at application startup and inject it.
      There is no module-level socket.
    - All methods must run on the event loop thread.  Nothing here is locked;
      correctness relies on the loop being single-threaded.
    - The grace delay lets a consumer that unmounts and immediately remounts
      (route transition) keep the socket instead of bouncing it.
    - Whether a departing consumer was the last one is decided by an
      injected TeardownPolicy.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from bazaar_realtime.domain.credentials import Credentials
from bazaar_realtime.domain.enums import ConnectionState
from bazaar_realtime.domain.errors import RealtimeError
from bazaar_realtime.models.options import ConnectionOptions
from bazaar_realtime.services.teardown import LatestActivationPolicy, TeardownPolicy
from bazaar_realtime.transport.connection import (
    CONNECT,
    CONNECT_ERROR,
    DISCONNECT,
    RealtimeConnection,
)

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[Credentials, ConnectionOptions], RealtimeConnection]


def connection_factory(url: str, **kwargs) -> ConnectionFactory:
    """Build a factory producing RealtimeConnections against *url*."""

    def _create(credentials: Credentials, options: ConnectionOptions) -> RealtimeConnection:
        return RealtimeConnection(url, credentials, options, **kwargs)

    return _create


@dataclass(frozen=True)
class SocketCallbacks:
    """Consumer hooks, all optional, invoked on the event loop thread."""

    on_connect: Optional[Callable[[], None]] = None
    on_disconnect: Optional[Callable[[str], None]] = None
    on_error: Optional[Callable[[RealtimeError], None]] = None


@dataclass(frozen=True)
class Activation:
    """What a consumer gets back from activate().

    Hand ``sequence`` and ``epoch`` back to deactivate() on unmount.
    ``epoch`` changes on every force_disconnect(), which restarts sequences.
    """

    sequence: int
    connection: RealtimeConnection
    reused: bool
    epoch: int = 0


class SocketManager:
    """Owns zero-or-one RealtimeConnection shared by every consumer.

    Args:
        factory: Creates a new, unopened connection for given credentials.
        options: Reconnection policy passed to every connection created.
        teardown_delay: Grace period in seconds before a deactivation is
            allowed to close the socket.
        policy: Decides whether a deactivated consumer was the last one.
        verify_identity: When True, a connected socket authenticated as a
            different account (user id or role) is replaced instead of
            reused.  A new token for the same account reuses the socket.
    """

    def __init__(
        self,
        factory: ConnectionFactory,
        options: ConnectionOptions | None = None,
        teardown_delay: float = 0.1,
        policy: TeardownPolicy | None = None,
        verify_identity: bool = True,
    ) -> None:
        if teardown_delay < 0:
            raise ValueError("teardown_delay must be >= 0")
        self._factory = factory
        self._options = options or ConnectionOptions()
        self._teardown_delay = teardown_delay
        self._policy = policy or LatestActivationPolicy()
        self._verify_identity = verify_identity
        self._connection: RealtimeConnection | None = None
        self._credentials: Credentials | None = None
        self._sequence = 0
        self._epoch = 0
        self._pending: set[asyncio.TimerHandle] = set()
        self.connections_created = 0

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def latest_sequence(self) -> int:
        return self._sequence

    @property
    def state(self) -> ConnectionState:
        if self._connection is None:
            return ConnectionState.NO_CONNECTION
        return self._connection.state

    def get_handle(self) -> RealtimeConnection | None:
        """Return the held connection, if any.  No side effects."""
        return self._connection

    def activate(
        self,
        credentials: Credentials,
        callbacks: SocketCallbacks | None = None,
    ) -> Activation:
        """Register a mounting consumer and return the shared connection.

        Never raises for connection problems; those arrive later through
        ``callbacks.on_error``.
        """
        callbacks = callbacks or SocketCallbacks()
        self._sequence += 1
        sequence = self._sequence
        self._policy.on_activate(sequence)
        logger.debug("[socket #%d] consumer mounted", sequence)

        held = self._connection
        if held is not None and held.connected:
            if self._reusable(credentials):
                logger.info("[socket #%d] reusing existing connection", sequence)
                if callbacks.on_connect is not None:
                    callbacks.on_connect()
                return Activation(sequence=sequence, connection=held, reused=True, epoch=self._epoch)
            logger.warning(
                "[socket #%d] session changed from %s to %s, replacing connection",
                sequence,
                self._credentials,
                credentials,
            )

        if held is not None:
            logger.info("[socket #%d] discarding %s connection", sequence, held.state.value)
            self._terminate()

        connection = self._factory(credentials, self._options)
        self.connections_created += 1
        self._connection = connection
        self._credentials = credentials
        self._observe(connection, sequence, callbacks)
        connection.open()
        logger.info("[socket #%d] creating new connection for %s", sequence, credentials)
        return Activation(sequence=sequence, connection=connection, reused=False, epoch=self._epoch)

    def deactivate(self, sequence: int, epoch: int | None = None) -> None:
        """Register an unmounting consumer.

        The teardown decision is taken after the grace delay, on the
        running event loop.  A deactivation carrying the epoch of an
        activation made before the last force_disconnect() is ignored:
        its sequence number may now belong to a newer consumer.
        """
        if epoch is not None and epoch != self._epoch:
            logger.debug("[socket #%d] stale unmount from epoch %d ignored", sequence, epoch)
            return
        self._policy.on_deactivate(sequence)
        logger.debug("[socket #%d] consumer unmounted", sequence)
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def _check() -> None:
            self._pending.discard(handle)
            self._teardown_if_last(sequence)

        handle = loop.call_later(self._teardown_delay, _check)
        self._pending.add(handle)

    def force_disconnect(self) -> None:
        """Tear everything down, e.g. on logout.

        Also resets the activation counter and drops pending teardown
        checks so none of them can close a connection created later.
        """
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()
        if self._connection is not None:
            logger.info("Force disconnecting shared connection")
            self._terminate()
        self._sequence = 0
        self._epoch += 1
        self._policy.reset()

    @asynccontextmanager
    async def mounted(
        self,
        credentials: Credentials,
        callbacks: SocketCallbacks | None = None,
    ) -> AsyncIterator[RealtimeConnection]:
        """Hold the shared connection for the duration of an ``async with``."""
        activation = self.activate(credentials, callbacks)
        try:
            yield activation.connection
        finally:
            self.deactivate(activation.sequence, activation.epoch)

    # ── Internals ────────────────────────────────────────────────────────

    def _reusable(self, credentials: Credentials) -> bool:
        if not self._verify_identity or self._credentials is None:
            return True
        return self._credentials.identity == credentials.identity

    def _teardown_if_last(self, sequence: int) -> None:
        if self._connection is None:
            return
        if self._policy.should_teardown(sequence, self._sequence):
            logger.info("[socket #%d] last consumer gone, disconnecting", sequence)
            self._terminate()
        else:
            logger.debug("[socket #%d] other consumers active, keeping connection", sequence)

    def _terminate(self) -> None:
        connection, self._connection = self._connection, None
        self._credentials = None
        if connection is not None:
            connection.disconnect()

    @staticmethod
    def _observe(
        connection: RealtimeConnection,
        sequence: int,
        callbacks: SocketCallbacks,
    ) -> None:
        def _on_connect() -> None:
            logger.debug("[socket #%d] connected (sid=%s)", sequence, connection.sid)
            if callbacks.on_connect is not None:
                callbacks.on_connect()

        def _on_disconnect(reason: str) -> None:
            logger.debug("[socket #%d] disconnected: %s", sequence, reason)
            if callbacks.on_disconnect is not None:
                callbacks.on_disconnect(reason)

        def _on_error(error: RealtimeError) -> None:
            logger.debug("[socket #%d] connection error: %s", sequence, error)
            if callbacks.on_error is not None:
                callbacks.on_error(error)

        connection.on(CONNECT, _on_connect)
        connection.on(DISCONNECT, _on_disconnect)
        connection.on(CONNECT_ERROR, _on_error)
