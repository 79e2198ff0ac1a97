"""Domain exceptions for the access-control core.

Every exception carries the HTTP status it maps to; the application
registers one handler that renders ``{"detail": ...}`` from ``exc.detail``.
"""

from typing import Any


class BackofficeError(Exception):
    """Base exception for access-control and directory errors."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    @property
    def detail(self) -> Any:
        return self.message


class AuthenticationError(BackofficeError):
    """No, invalid, or expired credential or token.

    401 when nothing usable was presented, 403 when a bearer token was
    presented but failed verification.
    """

    status_code = 401


class TokenInvalidError(AuthenticationError):
    """Bearer token is malformed, tampered with, or of the wrong type."""

    status_code = 403


class TokenExpiredError(TokenInvalidError):
    """Bearer token is past its expiry."""


class AuthorizationError(BackofficeError):
    """Valid principal lacking a required role or permission."""

    status_code = 403

    def __init__(
        self,
        message: str,
        *,
        required: list[str],
        missing: list[str] | None = None,
        user_roles: list[str] | None = None,
    ) -> None:
        self.required = required
        self.missing = missing
        self.user_roles = user_roles
        super().__init__(message)

    @property
    def detail(self) -> dict[str, Any]:
        body: dict[str, Any] = {"message": self.message, "required": self.required}
        if self.missing is not None:
            body["missing"] = self.missing
        if self.user_roles is not None:
            body["userRoles"] = self.user_roles
        return body


class ValidationError(BackofficeError):
    """Malformed or disallowed input."""

    status_code = 400


class ConflictError(ValidationError):
    """Uniqueness violation on username, role name, or permission name."""

    status_code = 409


class NotFoundError(BackofficeError):
    """Referenced entity does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InternalError(BackofficeError):
    """Unexpected directory or crypto failure."""

    status_code = 500
