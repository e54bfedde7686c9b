"""Pydantic model for the realtime connection configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Transport = Literal["websocket", "polling"]


class ConnectionOptions(BaseModel):
    """Transport and reconnection policy for one realtime connection.

    Durations are milliseconds.  The camelCase aliases match the option
    names the web client uses, so the same config blob can be shared.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    transports: tuple[Transport, ...] = Field(
        default=("websocket",),
        min_length=1,
        description="Transports to try, in order of preference",
    )
    reconnection: bool = True
    reconnection_attempts: int = Field(default=5, ge=0, alias="reconnectionAttempts")
    reconnection_delay: int = Field(default=2000, ge=0, alias="reconnectionDelay")
    reconnection_delay_max: int = Field(default=10000, ge=0, alias="reconnectionDelayMax")
    randomization_factor: float = Field(default=0.5, ge=0.0, le=1.0, alias="randomizationFactor")
    timeout: int = Field(default=20000, gt=0)

    @model_validator(mode="after")
    def _ceiling_not_below_delay(self) -> ConnectionOptions:
        if self.reconnection_delay_max < self.reconnection_delay:
            raise ValueError("reconnection_delay_max must be >= reconnection_delay")
        return self

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0
