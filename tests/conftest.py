"""Shared fixtures: in-memory database, directory services, and a live test application."""

from collections.abc import AsyncGenerator, Callable, Generator
from typing import Annotated, Any

import pytest
from cryptography.fernet import Fernet
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from httpx import Response
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.auth.dependencies import require_permission, require_role
from backoffice.auth.directory import PrincipalDirectory
from backoffice.auth.passwords import CredentialStore
from backoffice.auth.principal import Principal
from backoffice.db.session import DatabaseManager
from backoffice.main import create_app
from backoffice.settings import AppSettings

TEST_COOKIE_KEY = Fernet.generate_key().decode()
TEST_SIGNING_SECRET = "test-signing-secret"
ADMIN_PASSWORD = "admin-pass"


# --- Database-level fixtures ---


@pytest.fixture
async def db() -> AsyncGenerator[DatabaseManager]:
    manager = DatabaseManager("sqlite+aiosqlite://")
    await manager.create_schema()
    yield manager
    await manager.dispose()


@pytest.fixture
async def session(db: DatabaseManager) -> AsyncGenerator[AsyncSession]:
    async with db.session() as sess:
        yield sess


@pytest.fixture
def directory() -> PrincipalDirectory:
    return PrincipalDirectory()


@pytest.fixture
def credentials() -> CredentialStore:
    return CredentialStore()


# --- Application fixtures ---


@pytest.fixture
def settings_overrides() -> dict[str, Any]:
    """Override in a test module to tweak the application settings."""
    return {}


@pytest.fixture
def settings(settings_overrides: dict[str, Any]) -> AppSettings:
    values: dict[str, Any] = {
        "DATABASE_URL": "sqlite+aiosqlite://",
        "SESSION_SECRET": TEST_SIGNING_SECRET,
        "SESSION_COOKIE_KEY": TEST_COOKIE_KEY,
        "BOOTSTRAP_ADMIN_PASSWORD": ADMIN_PASSWORD,
        "RATE_LIMIT_LOGIN_PER_MINUTE": 1000,
        "AUDIT_FLUSH_INTERVAL_SECONDS": 60.0,
        "AUDIT_BUFFER_SIZE": 10_000,
    }
    values.update(settings_overrides)
    return AppSettings(**values)


def _add_business_routes(app: FastAPI) -> None:
    """Stand-ins for order/report handlers that consume the gates."""

    async def list_orders(principal: Annotated[Principal, Depends(require_permission("view:orders"))]) -> dict:
        return {"user": principal.username, "orders": []}

    async def purge_orders(
        principal: Annotated[Principal, Depends(require_permission("view:orders", "delete:orders"))],
    ) -> dict:
        return {"purged": 0}

    async def reports(principal: Annotated[Principal, Depends(require_role("Admin", "Manager"))]) -> dict:
        return {"user": principal.username}

    app.add_api_route("/orders", list_orders, methods=["GET"])
    app.add_api_route("/orders/purge", purge_orders, methods=["POST"])
    app.add_api_route("/reports", reports, methods=["GET"])


@pytest.fixture
def app(settings: AppSettings) -> FastAPI:
    application = create_app(settings)
    _add_business_routes(application)
    return application


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def login(client: TestClient) -> Callable[[str, str], Response]:
    def _login(username: str, password: str) -> Response:
        return client.post("/login", json={"username": username, "password": password})

    return _login


@pytest.fixture
def admin_headers(login: Callable[[str, str], Response], client: TestClient) -> dict[str, str]:
    """Bearer header for the seeded Admin; the session cookie is dropped so only the token is used."""
    resp = login("Admin", ADMIN_PASSWORD)
    assert resp.status_code == 200
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def make_user(client: TestClient, admin_headers: dict[str, str]) -> Callable[..., dict[str, Any]]:
    """Create a user through the admin API, bound to the named seeded roles."""

    def _make(username: str, password: str = "pw-12345", roles: tuple[str, ...] = ()) -> dict[str, Any]:
        role_ids = {r["name"]: r["id"] for r in client.get("/admin/roles", headers=admin_headers).json()}
        resp = client.post(
            "/admin/users",
            json={"username": username, "password": password, "role_ids": [role_ids[name] for name in roles]},
            headers=admin_headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make


@pytest.fixture
def audit_logs(client: TestClient, admin_headers: dict[str, str]) -> Callable[..., dict[str, Any]]:
    """Query the audit trail as the seeded Admin."""

    def _query(**params: Any) -> dict[str, Any]:
        resp = client.get("/admin/audit-logs", params=params, headers=admin_headers)
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _query
