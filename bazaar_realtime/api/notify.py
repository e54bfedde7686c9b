"""HTTP endpoint backend services call to push realtime events.

Path: POST /notify

Targets one account when ``userId`` is given, otherwise every connected
account of ``role``.  Delivery is best effort: offline users simply get
nothing, and the response reports how many sockets were reached.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from bazaar_realtime.domain.enums import UserRole
from bazaar_realtime.server.hub import RealtimeHub

logger = logging.getLogger(__name__)


class NotifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: UserRole = Field(..., description="Account kind to target")
    user_id: Optional[str] = Field(default=None, min_length=1, alias="userId")
    event: str = Field(..., min_length=1, description="Event name, e.g. 'order:new'")
    data: Any = None


class NotifyResponse(BaseModel):
    delivered: int


def create_notify_router(hub: RealtimeHub) -> APIRouter:
    router = APIRouter()

    @router.post("/notify", response_model=NotifyResponse)
    async def notify(request: NotifyRequest) -> NotifyResponse:
        if request.user_id is not None:
            delivered = await hub.send_to_user(request.role, request.user_id, request.event, request.data)
        else:
            delivered = await hub.broadcast_role(request.role, request.event, request.data)
        logger.info(
            "Notify '%s' → %s%s reached %d socket(s)",
            request.event,
            request.role.value,
            f":{request.user_id}" if request.user_id else "",
            delivered,
        )
        return NotifyResponse(delivered=delivered)

    return router
