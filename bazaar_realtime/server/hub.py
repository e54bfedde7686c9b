"""Registry of live client sockets on the hub side.

Design notes:
    - An asyncio.Lock guards the registry so concurrent handlers never
      corrupt it; sends happen outside the lock.
    - Sockets are keyed by (role, user_id).  One account may be connected
      from several devices, so each key maps to a set of sockets.
    - A socket whose send fails is dropped on the spot.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from bazaar_realtime.domain.enums import UserRole
from bazaar_realtime.models.frames import EventFrame, dump_frame

logger = logging.getLogger(__name__)

SessionKey = tuple[UserRole, str]


class HubStats:
    """Connection counts for observability endpoints."""

    __slots__ = ("total_connections", "users", "by_role", "delivered", "dropped")

    def __init__(self) -> None:
        self.total_connections = 0
        self.users = 0
        self.by_role: dict[str, int] = {}
        self.delivered = 0
        self.dropped = 0

    def to_dict(self) -> dict:
        return {
            "total_connections": self.total_connections,
            "users": self.users,
            "by_role": dict(self.by_role),
            "delivered": self.delivered,
            "dropped": self.dropped,
        }


class RealtimeHub:
    """Tracks authenticated sockets and pushes events to them."""

    def __init__(self) -> None:
        self._sessions: dict[SessionKey, dict[str, WebSocket]] = {}
        self._lock = asyncio.Lock()
        self._delivered = 0
        self._dropped = 0

    # ── Registration ─────────────────────────────────────────────────────

    async def register(self, role: UserRole, user_id: str, sid: str, ws: WebSocket) -> None:
        async with self._lock:
            self._sessions.setdefault((role, user_id), {})[sid] = ws
        logger.info("Hub registered %s:%s sid=%s", role.value, user_id, sid)

    async def unregister(self, role: UserRole, user_id: str, sid: str) -> None:
        async with self._lock:
            self._discard((role, user_id), sid)
        logger.info("Hub unregistered %s:%s sid=%s", role.value, user_id, sid)

    async def connection_count(self, role: UserRole | None = None) -> int:
        async with self._lock:
            return sum(
                len(sockets)
                for (key_role, _), sockets in self._sessions.items()
                if role is None or key_role == role
            )

    async def stats(self) -> HubStats:
        async with self._lock:
            stats = HubStats()
            for (role, _), sockets in self._sessions.items():
                stats.total_connections += len(sockets)
                stats.by_role[role.value] = stats.by_role.get(role.value, 0) + len(sockets)
            stats.users = len(self._sessions)
            stats.delivered = self._delivered
            stats.dropped = self._dropped
            return stats

    # ── Delivery ─────────────────────────────────────────────────────────

    async def send_to_user(self, role: UserRole, user_id: str, event: str, data: Any = None) -> int:
        """Push *event* to every socket of one account.  Returns sockets reached."""
        async with self._lock:
            targets = [((role, user_id), sid, ws) for sid, ws in self._sessions.get((role, user_id), {}).items()]
        return await self._deliver(targets, event, data)

    async def broadcast_role(self, role: UserRole, event: str, data: Any = None) -> int:
        """Push *event* to every connected account of *role*."""
        async with self._lock:
            targets = [
                (key, sid, ws)
                for key, sockets in self._sessions.items()
                if key[0] == role
                for sid, ws in sockets.items()
            ]
        return await self._deliver(targets, event, data)

    async def _deliver(
        self,
        targets: list[tuple[SessionKey, str, WebSocket]],
        event: str,
        data: Any,
    ) -> int:
        text = dump_frame(EventFrame(event=event, data=data))
        delivered = 0
        dead: list[tuple[SessionKey, str]] = []
        for key, sid, ws in targets:
            try:
                await ws.send_text(text)
                delivered += 1
            except Exception as exc:
                logger.warning("Dropping dead socket sid=%s: %s", sid, exc)
                dead.append((key, sid))

        async with self._lock:
            for key, sid in dead:
                self._discard(key, sid)
            self._delivered += delivered
            self._dropped += len(dead)
        logger.debug("Delivered '%s' to %d socket(s)", event, delivered)
        return delivered

    def _discard(self, key: SessionKey, sid: str) -> None:
        """Must be called while holding self._lock."""
        sockets = self._sessions.get(key)
        if sockets is None:
            return
        sockets.pop(sid, None)
        if not sockets:
            del self._sessions[key]
