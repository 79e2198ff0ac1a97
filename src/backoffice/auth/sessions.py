"""Cookie session channel: server-side session table keyed by an encrypted session id."""

import logging
import secrets
import time
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Response

from backoffice.constants import SESSION_COOKIE_NAME, SESSION_MAX_AGE_SECONDS
from backoffice.settings import AppSettings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _SessionRecord:
    user_id: str
    expires_at: float


class SessionChannel:
    """Issues and resolves cookie sessions.

    The cookie carries a Fernet token wrapping a random session id, so a
    tampered or foreign cookie fails decryption before the table is consulted.
    The table only maps ``sid -> user_id``; the user's roles and permissions
    are looked up fresh on every request.
    """

    def __init__(self, settings: AppSettings, max_age_seconds: int = SESSION_MAX_AGE_SECONDS) -> None:
        key = settings.SESSION_COOKIE_KEY
        if not key:
            logger.warning("SESSION_COOKIE_KEY not set; generated a per-process key, sessions end on restart")
            key = Fernet.generate_key().decode()
        self._fernet = Fernet(key.encode())
        self._max_age = max_age_seconds
        self._secure = settings.BEHIND_TLS
        self._sessions: dict[str, _SessionRecord] = {}

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def open(self, user_id: str) -> str:
        """Create a session for *user_id* and return the cookie value."""
        sid = secrets.token_urlsafe(32)
        self._sessions[sid] = _SessionRecord(user_id=user_id, expires_at=time.time() + self._max_age)
        return self._fernet.encrypt(sid.encode()).decode()

    def resolve(self, cookie_value: str) -> str | None:
        """Return the user id bound to *cookie_value*, or ``None`` if unknown or expired."""
        sid = self._decode(cookie_value)
        if sid is None:
            return None
        record = self._sessions.get(sid)
        if record is None:
            return None
        if record.expires_at <= time.time():
            del self._sessions[sid]
            return None
        return record.user_id

    def close(self, cookie_value: str) -> bool:
        """Drop the session behind *cookie_value*. Returns ``False`` if none existed."""
        sid = self._decode(cookie_value)
        if sid is None:
            return False
        return self._sessions.pop(sid, None) is not None

    def purge_expired(self) -> int:
        now = time.time()
        expired = [sid for sid, record in self._sessions.items() if record.expires_at <= now]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("Purged %d expired sessions", len(expired))
        return len(expired)

    def set_cookie(self, response: Response, cookie_value: str) -> None:
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=cookie_value,
            max_age=self._max_age,
            httponly=True,
            secure=self._secure,
            samesite="lax",
            path="/",
        )

    def delete_cookie(self, response: Response) -> None:
        response.delete_cookie(SESSION_COOKIE_NAME, path="/", httponly=True, secure=self._secure, samesite="lax")

    def _decode(self, cookie_value: str) -> str | None:
        try:
            return self._fernet.decrypt(cookie_value.encode(), ttl=self._max_age).decode()
        except (InvalidToken, UnicodeError):
            return None
