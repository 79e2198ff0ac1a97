"""Authenticated principals and the resolver that produces them from a request."""

import logging
from dataclasses import dataclass
from typing import ClassVar

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.auth.directory import PrincipalDirectory
from backoffice.auth.exceptions import AuthenticationError
from backoffice.auth.sessions import SessionChannel
from backoffice.auth.tokens import TokenClaims, TokenService
from backoffice.constants import SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TokenPrincipal:
    """Caller authenticated by bearer token.

    Permissions come from the token snapshot and may be stale by up to the
    token lifetime; roles are always looked up live.
    """

    channel: ClassVar[str] = "token"

    user_id: str
    username: str
    claims: TokenClaims

    async def permission_names(self, directory: PrincipalDirectory, session: AsyncSession) -> list[str]:
        return list(self.claims.permissions)

    async def role_names(self, directory: PrincipalDirectory, session: AsyncSession) -> list[str]:
        return await directory.get_role_names(session, self.user_id)


@dataclass(frozen=True, slots=True)
class SessionPrincipal:
    """Caller authenticated by session cookie; everything is looked up live."""

    channel: ClassVar[str] = "session"

    user_id: str
    username: str

    async def permission_names(self, directory: PrincipalDirectory, session: AsyncSession) -> list[str]:
        return await directory.get_permission_names(session, self.user_id)

    async def role_names(self, directory: PrincipalDirectory, session: AsyncSession) -> list[str]:
        return await directory.get_role_names(session, self.user_id)


Principal = TokenPrincipal | SessionPrincipal


class PrincipalResolver:
    """Turns a request into a principal.

    An ``Authorization`` header, when present, is the only channel
    considered: a non-bearer scheme raises :class:`AuthenticationError` (401)
    and a bad token raises ``TokenInvalidError``/``TokenExpiredError`` (403).
    Without the header, the session cookie is tried. Returns ``None`` when
    neither channel yields a principal.
    """

    def __init__(self, tokens: TokenService, sessions: SessionChannel, directory: PrincipalDirectory) -> None:
        self._tokens = tokens
        self._sessions = sessions
        self._directory = directory

    async def resolve(self, request: Request, session: AsyncSession) -> Principal | None:
        header = request.headers.get("authorization")
        if header is not None:
            scheme, _, credentials = header.partition(" ")
            token = credentials.strip()
            if scheme.lower() != "bearer" or not token:
                raise AuthenticationError("Malformed Authorization header")
            claims = self._tokens.verify(token)
            await self._touch_last_login(session, claims.user_id)
            return TokenPrincipal(user_id=claims.user_id, username=claims.username, claims=claims)

        cookie = request.cookies.get(SESSION_COOKIE_NAME)
        if not cookie:
            return None
        user_id = self._sessions.resolve(cookie)
        if user_id is None:
            return None
        user = await self._directory.get_user(session, user_id)
        if user is None or not user.is_active:
            return None
        return SessionPrincipal(user_id=user.id, username=user.username)

    async def _touch_last_login(self, session: AsyncSession, user_id: str) -> None:
        try:
            async with session.begin_nested():
                await self._directory.touch_last_login(session, user_id)
        except SQLAlchemyError:
            logger.warning("Could not update last login for user %s", user_id, exc_info=True)
