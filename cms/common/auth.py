from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, MutableMapping

import jwt
from jwt import PyJWTError

from cms.common.config import Settings
from cms.common.permissions import Roles

logger = logging.getLogger("auth")


class AuthenticationError(Exception):
    """Raised when authentication fails."""


@dataclass(frozen=True)
class Principal:
    user_id: str
    username: str
    role: str
    token: str | None
    claims: Mapping[str, Any]
    source: str

    def has_role(self, role: str) -> bool:
        if role == "*":
            return True
        return role == self.role

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return any(self.has_role(role) for role in roles)

    def missing_roles(self, roles: Iterable[str]) -> list[str]:
        return [role for role in roles if not self.has_role(role)]


def issue_session_token(
    settings: Settings,
    *,
    user_id: int,
    username: str,
    role: str,
    now: datetime | None = None,
) -> str:
    """Sign a session token for a logged-in account."""
    if not settings.AUTH_TOKEN_SECRET:
        raise AuthenticationError("Authentication secret is not configured")
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(minutes=max(1, settings.AUTH_SESSION_TTL_MINUTES))
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "username": username,
        "role": role,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(
        payload, settings.AUTH_TOKEN_SECRET, algorithm=settings.AUTH_TOKEN_ALGORITHM
    )


class Authenticator:
    def __init__(self, settings: Settings):
        self._settings = settings

    def authenticate(
        self,
        authorization_header: str | None,
        session_cookie: str | None,
    ) -> Principal:
        if authorization_header and authorization_header.strip():
            scheme, _, credentials = authorization_header.partition(" ")
            if scheme.lower() != "bearer" or not credentials.strip():
                raise AuthenticationError("Invalid authorization header")
            return self._principal_from_token(credentials.strip(), source="bearer")

        if session_cookie:
            return self._principal_from_token(session_cookie, source="session")

        raise AuthenticationError("Not authenticated")

    def _principal_from_token(self, token: str, *, source: str) -> Principal:
        claims = self._decode_token(token)

        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Token missing 'sub' claim")

        role = claims.get("role")
        if not Roles.is_valid(role):
            role = Roles.GUEST

        return Principal(
            user_id=str(subject),
            username=str(claims.get("username") or ""),
            role=role,
            token=token,
            claims=claims,
            source=source,
        )

    def _decode_token(self, token: str) -> MutableMapping[str, Any]:
        secret = self._settings.AUTH_TOKEN_SECRET
        if not secret:
            raise AuthenticationError("Authentication secret is not configured")

        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[self._settings.AUTH_TOKEN_ALGORITHM],
            )
        except PyJWTError as exc:
            logger.debug("token_decode_error", exc_info=exc)
            raise AuthenticationError("Invalid authentication token") from exc
