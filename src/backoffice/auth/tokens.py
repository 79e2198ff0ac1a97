"""Bearer token issuance and verification (PyJWT, HS256)."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from backoffice.auth.exceptions import TokenExpiredError, TokenInvalidError
from backoffice.constants import TOKEN_LIFETIME_SECONDS
from backoffice.db.models import User
from backoffice.settings import AppSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Verified claim set. ``permissions`` is the snapshot taken at issuance."""

    user_id: str
    username: str
    permissions: tuple[str, ...]
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Creates and validates signed access tokens.

    Tokens are not persisted and cannot be revoked; they carry the user's
    permission names as of issuance and expire after a fixed 24 hours.
    """

    ALGORITHM = "HS256"
    TOKEN_TYPE = "access"

    def __init__(self, settings: AppSettings) -> None:
        secret = settings.SESSION_SECRET
        if not secret or not secret.strip():
            raise ValueError("SESSION_SECRET must be set to a non-empty value for token signing")
        self._secret = secret
        self._lifetime = timedelta(seconds=TOKEN_LIFETIME_SECONDS)

    @property
    def lifetime_seconds(self) -> int:
        return int(self._lifetime.total_seconds())

    def issue(self, user: User, permission_names: list[str]) -> str:
        """Sign a token for *user* embedding *permission_names*."""
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "id": user.id,
            "username": user.username,
            "permissions": list(permission_names),
            "type": self.TOKEN_TYPE,
            "iat": now,
            "exp": now + self._lifetime,
        }
        return jwt.encode(payload, self._secret, algorithm=self.ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode and validate *token*.

        Raises:
            TokenExpiredError: If the token has expired.
            TokenInvalidError: If the token is malformed, tampered with, or of the wrong type.
        """
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[self.ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenInvalidError(f"Invalid token: {exc}") from exc

        if payload.get("type") != self.TOKEN_TYPE:
            raise TokenInvalidError("Token is not an access token")

        user_id = payload.get("id")
        username = payload.get("username")
        permissions = payload.get("permissions")
        if not isinstance(user_id, str) or not isinstance(username, str):
            raise TokenInvalidError("Token missing identity claims")
        if not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions):
            raise TokenInvalidError("Token has a malformed 'permissions' claim")

        return TokenClaims(
            user_id=user_id,
            username=username,
            permissions=tuple(permissions),
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        )
