"""Verification of marketplace access tokens presented in the handshake.

Tokens are issued elsewhere by the marketplace backend.  Their payload
carries the account id under ``userId`` and the account kind under
``userType``; the hub only checks signature, expiry and those two claims.
"""

from __future__ import annotations

from jose import JWTError, jwt

from bazaar_realtime.domain.enums import UserRole
from bazaar_realtime.domain.errors import AuthRefusedError


class TokenVerifier:
    """Decodes and checks HS-signed JWTs."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        if not secret:
            raise ValueError("A JWT secret is required")
        self._secret = secret
        self._algorithm = algorithm

    def verify(self, token: str) -> tuple[str, UserRole]:
        """Return ``(user_id, role)`` for a valid token.

        Raises:
            AuthRefusedError: Bad signature, expired, or missing claims.
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            raise AuthRefusedError(f"invalid token: {exc}") from exc

        user_id = claims.get("userId")
        user_type = claims.get("userType")
        if not user_id or not user_type:
            raise AuthRefusedError("token is missing userId/userType claims")
        try:
            role = UserRole(user_type)
        except ValueError as exc:
            raise AuthRefusedError(f"unknown userType '{user_type}'") from exc
        return str(user_id), role

    def issue(self, user_id: str, role: UserRole, **claims) -> str:
        """Sign a token in the backend's format.  Used by tooling and tests."""
        payload = {"userId": user_id, "userType": role.value, **claims}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)
