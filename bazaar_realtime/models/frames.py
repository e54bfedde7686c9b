"""Wire frames exchanged between the client connection and the hub.

Every frame is a JSON text message with a ``type`` discriminator.
The first client frame must be ``auth``; the hub answers ``connected``
or ``connect_error`` and then both sides speak ``event`` frames.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from bazaar_realtime.domain.enums import UserRole

# Close code the hub uses after refusing a handshake.
AUTH_REFUSED_CLOSE_CODE = 4401


class AuthFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["auth"] = "auth"
    token: str
    user_id: str = Field(..., alias="userId")
    role: UserRole = Field(..., alias="userType")


class ConnectedFrame(BaseModel):
    type: Literal["connected"] = "connected"
    sid: str


class ConnectErrorFrame(BaseModel):
    type: Literal["connect_error"] = "connect_error"
    message: str


class EventFrame(BaseModel):
    type: Literal["event"] = "event"
    event: str = Field(..., min_length=1)
    data: Any = None


Frame = Annotated[
    Union[AuthFrame, ConnectedFrame, ConnectErrorFrame, EventFrame],
    Field(discriminator="type"),
]

frame_adapter: TypeAdapter[Frame] = TypeAdapter(Frame)


def parse_frame(raw: str | bytes) -> Frame:
    """Decode one JSON frame.  Raises pydantic.ValidationError on garbage."""
    return frame_adapter.validate_json(raw)


def dump_frame(frame: BaseModel) -> str:
    return frame.model_dump_json(by_alias=True)
