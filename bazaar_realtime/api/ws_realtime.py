"""WebSocket endpoint marketplace clients hold their shared connection to.

Path: /ws/realtime

The first frame must be an auth frame whose token verifies and whose
claimed identity matches the token.  The hub then answers ``connected``
with a fresh sid and registers the socket so backend services can push
events to it.  A refused handshake gets ``connect_error`` and close 4401.

Inbound client events are only logged, except ``ping`` which is echoed
back as ``pong``.  Binary frames are skipped.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from bazaar_realtime.domain.errors import AuthRefusedError
from bazaar_realtime.foundation.identifiers import new_sid
from bazaar_realtime.models.frames import (
    AUTH_REFUSED_CLOSE_CODE,
    AuthFrame,
    ConnectedFrame,
    ConnectErrorFrame,
    EventFrame,
    dump_frame,
    parse_frame,
)
from bazaar_realtime.server.auth import TokenVerifier
from bazaar_realtime.server.hub import RealtimeHub

logger = logging.getLogger(__name__)


def create_realtime_router(
    hub: RealtimeHub,
    verifier: TokenVerifier,
    handshake_timeout: float = 10.0,
) -> APIRouter:
    """Factory that wires the realtime endpoint to a concrete hub.

    Args:
        hub: Registry the authenticated sockets are added to.
        verifier: Checks the token presented in the auth frame.
        handshake_timeout: Seconds a client gets to send its auth frame.
    """
    router = APIRouter()

    async def _authenticate(websocket: WebSocket) -> AuthFrame:
        raw = await asyncio.wait_for(websocket.receive_text(), handshake_timeout)
        frame = parse_frame(raw)
        if not isinstance(frame, AuthFrame):
            raise AuthRefusedError(f"expected auth frame, got '{frame.type}'")
        user_id, role = verifier.verify(frame.token)
        if (user_id, role) != (frame.user_id, frame.role):
            raise AuthRefusedError("claimed identity does not match token")
        return frame

    async def _refuse(websocket: WebSocket, message: str) -> None:
        logger.info("Realtime handshake refused: %s", message)
        await websocket.send_text(dump_frame(ConnectErrorFrame(message=message)))
        await websocket.close(code=AUTH_REFUSED_CLOSE_CODE)

    @router.websocket("/ws/realtime")
    async def realtime(websocket: WebSocket) -> None:
        await websocket.accept()

        # ── Handshake ────────────────────────────────────────────────────
        try:
            auth = await _authenticate(websocket)
        except asyncio.TimeoutError:
            await _refuse(websocket, "handshake timeout")
            return
        except ValidationError:
            await _refuse(websocket, "malformed auth frame")
            return
        except AuthRefusedError as exc:
            await _refuse(websocket, exc.reason)
            return
        except WebSocketDisconnect:
            logger.debug("Client left during handshake")
            return

        sid = new_sid()
        await websocket.send_text(dump_frame(ConnectedFrame(sid=sid)))
        await hub.register(auth.role, auth.user_id, sid, websocket)

        # ── Session ──────────────────────────────────────────────────────
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text")
                if raw is None:
                    logger.debug("Ignoring binary frame from sid=%s", sid)
                    continue
                try:
                    frame = parse_frame(raw)
                except ValidationError:
                    logger.debug("Ignoring malformed frame from sid=%s", sid)
                    continue
                if not isinstance(frame, EventFrame):
                    continue
                if frame.event == "ping":
                    await websocket.send_text(dump_frame(EventFrame(event="pong", data=frame.data)))
                else:
                    logger.info(
                        "Client event '%s' from %s:%s",
                        frame.event,
                        auth.role.value,
                        auth.user_id,
                    )
        except WebSocketDisconnect:
            logger.info("Realtime client sid=%s disconnected", sid)
        finally:
            await hub.unregister(auth.role, auth.user_id, sid)

    return router
