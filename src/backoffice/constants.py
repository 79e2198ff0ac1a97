"""Centralized constants for the back-office access-control service."""

import enum
from dataclasses import dataclass

# --- Service identity ---


class ServiceName(enum.StrEnum):
    """Service names used for logging and identification."""

    API = "api"


# --- Application metadata ---

APP_TITLE = "Back-office API"
APP_DESCRIPTION = "Access control, role administration, and audit trail for the back-office"
APP_VERSION = "0.1.0"


# --- Route configuration ---


@dataclass(frozen=True, slots=True)
class _Route:
    """A route prefix paired with its OpenAPI tag."""

    prefix: str
    tag: str


class Routes:
    """API route prefixes and tags."""

    AUTH = _Route("", "auth")
    ADMIN = _Route("/admin", "admin")
    LOGIN = "/login"
    HEALTH = "/healthz"


# --- Credentials and tokens ---

TOKEN_LIFETIME_SECONDS = 24 * 60 * 60
SESSION_MAX_AGE_SECONDS = 24 * 60 * 60
SESSION_COOKIE_NAME = "backoffice.sid"

# Fixed scrypt work factor (memory-hard, ~16 MiB per derivation).
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_KEY_LENGTH = 64
SCRYPT_SALT_BYTES = 16

# Stored-hash placeholder for the seeded admin when no bootstrap password is configured.
BOOTSTRAP_PASSWORD_SENTINEL = "admin_hashed_password"
BOOTSTRAP_LEGACY_PASSWORD = "Admin"
BOOTSTRAP_ADMIN_USERNAME = "Admin"


# --- Audit vocabulary ---


class AuditAction(enum.StrEnum):
    """Verbs recorded in the audit trail."""

    ACCESS_GRANTED = "ACCESS_GRANTED"
    ACCESS_DENIED = "ACCESS_DENIED"
    ACCESS_ERROR = "ACCESS_ERROR"
    LOGIN = "LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ASSIGN = "ASSIGN"
    REVOKE = "REVOKE"


class AuditResource(enum.StrEnum):
    """Subjects recorded in the audit trail."""

    AUTH = "AUTH"
    ROLE_CHECK = "ROLE_CHECK"
    PERMISSION_CHECK = "PERMISSION_CHECK"
    USER = "USER"
    ROLE = "ROLE"
    PERMISSION = "PERMISSION"
    USER_ROLE = "USER_ROLE"
    ROLE_PERMISSION = "ROLE_PERMISSION"


# --- Bootstrap catalogue ---

ADMIN_ROLE = "Admin"

SEED_ROLES: dict[str, str] = {
    ADMIN_ROLE: "Full access to every resource",
    "Manager": "Runs day-to-day operations and reporting",
    "Cashier": "Takes orders and records payments",
    "Kitchen": "Works the order queue",
    "Staff": "Read-only access to orders and items",
}

# resource -> actions used by the business handlers
PERMISSION_CATALOGUE: dict[str, tuple[str, ...]] = {
    "orders": ("view", "create", "edit", "delete", "export"),
    "items": ("view", "create", "edit", "delete"),
    "expenses": ("view", "create", "edit", "delete", "export"),
    "stock": ("view", "create", "edit"),
    "payments": ("view", "create", "edit"),
    "reports": ("view", "export"),
    "settings": ("view", "edit"),
    "users": ("view", "create", "edit", "delete"),
    "roles": ("view", "create", "edit", "delete"),
}

# Admin is wired to every permission; the others get these grants.
SEED_ROLE_GRANTS: dict[str, tuple[str, ...]] = {
    "Manager": (
        "view:orders",
        "create:orders",
        "edit:orders",
        "export:orders",
        "view:items",
        "create:items",
        "edit:items",
        "view:expenses",
        "create:expenses",
        "edit:expenses",
        "export:expenses",
        "view:stock",
        "create:stock",
        "edit:stock",
        "view:payments",
        "create:payments",
        "edit:payments",
        "view:reports",
        "export:reports",
        "view:settings",
    ),
    "Cashier": ("view:orders", "create:orders", "view:items", "view:payments", "create:payments"),
    "Kitchen": ("view:orders", "edit:orders", "view:items", "view:stock"),
    "Staff": ("view:orders", "view:items"),
}


def permission_name(action: str, resource: str) -> str:
    """Build a permission name following the ``action:resource`` convention."""
    return f"{action}:{resource}"
