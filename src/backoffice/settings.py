"""Application settings loaded from environment variables."""

import functools

from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """Back-office service configuration."""

    # Storage
    DATABASE_URL: str = "sqlite+aiosqlite://"  # in-memory by default
    DATABASE_ECHO: bool = False

    # Bearer tokens (HS256 signing secret)
    SESSION_SECRET: str = ""

    # Session channel
    SESSION_COOKIE_KEY: str = ""  # Fernet key; generated per process when empty
    BEHIND_TLS: bool = False  # Secure cookie flag only behind TLS termination

    # Bootstrap admin
    BOOTSTRAP_ADMIN_PASSWORD: str = ""  # Empty = seed the legacy sentinel instead
    LEGACY_BOOTSTRAP_LOGIN_ENABLED: bool = True

    # CORS
    CORS_ALLOWED_ORIGINS: str = "http://localhost:5173"  # comma-separated origins

    # Rate limiting
    RATE_LIMIT_LOGIN_PER_MINUTE: int = 10

    # Audit outbox
    AUDIT_FLUSH_INTERVAL_SECONDS: float = 2.0
    AUDIT_BUFFER_SIZE: int = 50

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = {"env_prefix": ""}


@functools.lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Return cached application settings singleton."""
    return AppSettings()
