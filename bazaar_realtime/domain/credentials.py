"""Credentials a realtime session authenticates with."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from bazaar_realtime.domain.enums import UserRole


class Credentials(BaseModel):
    """Token plus the identity it was issued for.

    Frozen so the manager can keep the credentials of the held connection
    and compare them against later activations.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    token: str = Field(..., min_length=1, repr=False)
    user_id: str = Field(..., min_length=1, alias="userId")
    role: UserRole = Field(..., alias="userType")

    @property
    def identity(self) -> tuple[str, UserRole]:
        return (self.user_id, self.role)

    def __str__(self) -> str:
        return f"{self.role.value}:{self.user_id}"
