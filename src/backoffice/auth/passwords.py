"""Password hashing and verification (scrypt via ``cryptography``).

Stored format is ``hex(derived_key) + "." + hex(salt)``. The work factor is a
fixed constant; derivations run in a worker thread so a login never stalls
the event loop.
"""

import functools
import logging
import os
import secrets

import anyio
from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from backoffice.auth.exceptions import InternalError
from backoffice.constants import (
    BOOTSTRAP_LEGACY_PASSWORD,
    BOOTSTRAP_PASSWORD_SENTINEL,
    SCRYPT_KEY_LENGTH,
    SCRYPT_N,
    SCRYPT_P,
    SCRYPT_R,
    SCRYPT_SALT_BYTES,
)

logger = logging.getLogger(__name__)


class CredentialStore:
    """Salts, hashes, and verifies passwords.

    Usage::

        store = CredentialStore()
        stored = await store.hash("s3cret")
        assert await store.verify("s3cret", stored)
    """

    async def hash(self, password: str) -> str:
        """Return a freshly salted scrypt hash of *password*."""
        salt = os.urandom(SCRYPT_SALT_BYTES)
        key = await anyio.to_thread.run_sync(functools.partial(self._derive, password, salt))
        return f"{key.hex()}.{salt.hex()}"

    async def verify(self, supplied: str, stored: str) -> bool:
        """Return ``True`` if *supplied* matches *stored*.

        A malformed stored value fails closed (``False``). The bootstrap
        sentinel is never accepted here; see :meth:`verify_bootstrap`.
        """
        parsed = self._parse(stored)
        if parsed is None:
            return False
        expected, salt = parsed
        return await anyio.to_thread.run_sync(functools.partial(self._check, supplied, salt, expected))

    @staticmethod
    def is_bootstrap_sentinel(stored: str) -> bool:
        return secrets.compare_digest(stored, BOOTSTRAP_PASSWORD_SENTINEL)

    def verify_bootstrap(self, supplied: str, stored: str, *, enabled: bool) -> bool:
        """Accept the fixed legacy password for the unrotated seeded admin.

        Only reachable when the caller has confirmed bootstrap mode is still
        open (flag enabled and no admin credential rotated yet).
        """
        if not enabled or not self.is_bootstrap_sentinel(stored):
            return False
        accepted = secrets.compare_digest(supplied.encode("utf-8"), BOOTSTRAP_LEGACY_PASSWORD.encode("utf-8"))
        if accepted:
            logger.warning("Seeded admin authenticated with the legacy bootstrap password; rotate it")
        return accepted

    @staticmethod
    def _parse(stored: str) -> tuple[bytes, bytes] | None:
        parts = stored.split(".")
        if len(parts) != 2:
            return None
        try:
            expected = bytes.fromhex(parts[0])
            salt = bytes.fromhex(parts[1])
        except ValueError:
            return None
        if len(expected) != SCRYPT_KEY_LENGTH or not salt:
            return None
        return expected, salt

    @staticmethod
    def _kdf(salt: bytes) -> Scrypt:
        return Scrypt(salt=salt, length=SCRYPT_KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)

    def _derive(self, password: str, salt: bytes) -> bytes:
        try:
            return self._kdf(salt).derive(password.encode("utf-8"))
        except (MemoryError, ValueError) as exc:
            raise InternalError("Password key derivation failed") from exc

    def _check(self, supplied: str, salt: bytes, expected: bytes) -> bool:
        try:
            self._kdf(salt).verify(supplied.encode("utf-8"), expected)
        except InvalidKey:
            return False
        except (MemoryError, ValueError) as exc:
            raise InternalError("Password key derivation failed") from exc
        return True
