"""bazaar-realtime — realtime hub for the marketplace.

This is the server entry point.  It wires the RealtimeHub, the token
verifier and the HTTP/WebSocket endpoints together.  Clients reach it
through a SocketManager (see bazaar_realtime.client).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from bazaar_realtime.api.notify import create_notify_router
from bazaar_realtime.api.ws_realtime import create_realtime_router
from bazaar_realtime.config import settings
from bazaar_realtime.server.auth import TokenVerifier
from bazaar_realtime.server.hub import RealtimeHub

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ── State ────────────────────────────────────────────────────────────────────

hub = RealtimeHub()
verifier = TokenVerifier(settings.jwt_secret, settings.jwt_algorithm)

# ── App ──────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.app_name,
    description="Realtime event hub for customers, sellers, delivery partners and admins",
    version="0.1.0",
    debug=settings.debug,
)

# ── Routes ───────────────────────────────────────────────────────────────────

app.include_router(create_realtime_router(hub, verifier, settings.handshake_timeout_seconds))
app.include_router(create_notify_router(hub))


# ── Health ───────────────────────────────────────────────────────────────────

@app.get("/health")
async def health() -> dict:
    stats = await hub.stats()
    return {"status": "ok", **stats.to_dict()}
