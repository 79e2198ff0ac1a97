"""Tests for the authorization gates as seen by business endpoints."""

from collections.abc import Callable
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from httpx import Response

from backoffice.auth.directory import PrincipalDirectory

Login = Callable[..., Response]
MakeUser = Callable[..., dict[str, Any]]
AuditQuery = Callable[..., dict[str, Any]]


@pytest.fixture
def token_for(client: TestClient, login: Login, make_user: MakeUser) -> Callable[..., tuple[dict[str, Any], dict]]:
    """Create a user with the given roles, log in, and return (user, bearer headers) with no cookie left behind."""

    def _token_for(username: str, *roles: str) -> tuple[dict[str, Any], dict[str, str]]:
        user = make_user(username, roles=roles)
        resp = login(username, "pw-12345")
        assert resp.status_code == 200
        client.cookies.clear()
        return user, {"Authorization": f"Bearer {resp.json()['token']}"}

    return _token_for


def _role_id(client: TestClient, headers: dict[str, str], name: str) -> str:
    return next(r["id"] for r in client.get("/admin/roles", headers=headers).json() if r["name"] == name)


class TestFailClosed:
    """No principal means no access, whatever the gate."""

    @pytest.mark.parametrize(("method", "path"), [("GET", "/orders"), ("POST", "/orders/purge"), ("GET", "/reports")])
    def test_anonymous_is_401(self, client: TestClient, method: str, path: str) -> None:
        resp = client.request(method, path)
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Authentication required"}

    def test_anonymous_denial_is_audited(self, client: TestClient, audit_logs: AuditQuery) -> None:
        client.get("/orders")
        logs = audit_logs(action="ACCESS_DENIED", resource="AUTH")["logs"]
        assert len(logs) == 1
        assert logs[0]["user_id"] is None
        assert logs[0]["success"] is False
        assert logs[0]["metadata"]["url"] == "/orders"
        assert logs[0]["metadata"]["method"] == "GET"


class TestRequirePermission:
    """AND semantics over the listed permissions."""

    def test_granted(self, client: TestClient, token_for: Callable[..., Any], audit_logs: AuditQuery) -> None:
        user, headers = token_for("cashier1", "Cashier")
        resp = client.get("/orders", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["user"] == "cashier1"

        logs = audit_logs(userId=user["id"], resource="PERMISSION_CHECK")["logs"]
        assert [(e["action"], e["success"]) for e in logs] == [("ACCESS_GRANTED", True)]
        assert logs[0]["error_message"] == "Required permissions: [view:orders]"

    def test_all_required(self, client: TestClient, token_for: Callable[..., Any]) -> None:
        _, headers = token_for("staff1", "Staff")
        resp = client.post("/orders/purge", headers=headers)
        assert resp.status_code == 403
        assert resp.json() == {
            "detail": {
                "message": "Insufficient permissions",
                "required": ["view:orders", "delete:orders"],
                "missing": ["delete:orders"],
            }
        }

    def test_denial_is_audited_with_missing_list(
        self, client: TestClient, token_for: Callable[..., Any], audit_logs: AuditQuery
    ) -> None:
        user, headers = token_for("staff1", "Staff")
        client.post("/orders/purge", headers=headers)

        logs = audit_logs(userId=user["id"], action="ACCESS_DENIED")["logs"]
        assert len(logs) == 1
        assert logs[0]["resource"] == "PERMISSION_CHECK"
        assert logs[0]["actor_name"] == "staff1"
        assert logs[0]["error_message"] == (
            "Required permissions: [view:orders, delete:orders], Missing: [delete:orders]"
        )

    def test_admin_holds_everything(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        assert client.post("/orders/purge", headers=admin_headers).status_code == 200

    def test_user_without_roles(self, client: TestClient, token_for: Callable[..., Any]) -> None:
        _, headers = token_for("nobody")
        resp = client.get("/orders", headers=headers)
        assert resp.status_code == 403
        assert resp.json()["detail"]["missing"] == ["view:orders"]


class TestRequireRole:
    """OR semantics over the listed roles."""

    @pytest.mark.parametrize("role", ["Admin", "Manager"])
    def test_any_listed_role_suffices(self, client: TestClient, token_for: Callable[..., Any], role: str) -> None:
        _, headers = token_for("boss", role)
        assert client.get("/reports", headers=headers).status_code == 200

    def test_granted_entry_names_both_role_sets(
        self, client: TestClient, token_for: Callable[..., Any], audit_logs: AuditQuery
    ) -> None:
        user, headers = token_for("boss", "Manager")
        assert client.get("/reports", headers=headers).status_code == 200

        logs = audit_logs(userId=user["id"], resource="ROLE_CHECK")["logs"]
        assert [(e["action"], e["error_message"]) for e in logs] == [
            ("ACCESS_GRANTED", "Required roles: [Admin, Manager], User roles: [Manager]")
        ]

    def test_other_role_denied(
        self, client: TestClient, token_for: Callable[..., Any], audit_logs: AuditQuery
    ) -> None:
        user, headers = token_for("cashier1", "Cashier")
        resp = client.get("/reports", headers=headers)
        assert resp.status_code == 403
        assert resp.json() == {
            "detail": {
                "message": "Insufficient role permissions",
                "required": ["Admin", "Manager"],
                "userRoles": ["Cashier"],
            }
        }

        logs = audit_logs(userId=user["id"], resource="ROLE_CHECK")["logs"]
        assert len(logs) == 1
        assert logs[0]["action"] == "ACCESS_DENIED"
        assert logs[0]["error_message"] == "Required roles: [Admin, Manager], User roles: [Cashier]"

    def test_inactive_role_does_not_count(
        self, client: TestClient, token_for: Callable[..., Any], admin_headers: dict[str, str]
    ) -> None:
        _, headers = token_for("manager1", "Manager")
        manager_id = _role_id(client, admin_headers, "Manager")
        resp = client.put(f"/admin/roles/{manager_id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/reports", headers=headers).status_code == 403


class TestFreshness:
    """Token permissions are a login-time snapshot; cookie sessions and roles are live."""

    def test_token_keeps_revoked_permission_until_expiry(
        self, client: TestClient, token_for: Callable[..., Any], admin_headers: dict[str, str]
    ) -> None:
        user, headers = token_for("cashier1", "Cashier")
        cashier_id = _role_id(client, admin_headers, "Cashier")
        resp = client.delete(f"/admin/users/{user['id']}/roles/{cashier_id}", headers=admin_headers)
        assert resp.status_code == 200

        assert client.get("/orders", headers=headers).status_code == 200

    def test_session_sees_revocation_immediately(
        self,
        client: TestClient,
        login: Login,
        make_user: MakeUser,
        admin_headers: dict[str, str],
    ) -> None:
        user = make_user("cashier1", roles=("Cashier",))
        login("cashier1", "pw-12345")
        assert client.get("/orders").status_code == 200

        cashier_id = _role_id(client, admin_headers, "Cashier")
        client.delete(f"/admin/users/{user['id']}/roles/{cashier_id}", headers=admin_headers)

        assert client.get("/orders").status_code == 403

    def test_role_checks_are_live_for_tokens(
        self, client: TestClient, token_for: Callable[..., Any], admin_headers: dict[str, str]
    ) -> None:
        user, headers = token_for("cashier1", "Cashier")
        assert client.get("/reports", headers=headers).status_code == 403

        manager_id = _role_id(client, admin_headers, "Manager")
        client.post(f"/admin/users/{user['id']}/roles", json={"role_id": manager_id}, headers=admin_headers)

        assert client.get("/reports", headers=headers).status_code == 200


class TestAccessError:
    """Unexpected failures inside a check answer 500 and are audited as errors."""

    def test_directory_failure(
        self, client: TestClient, login: Login, make_user: MakeUser, audit_logs: AuditQuery
    ) -> None:
        user = make_user("cashier1", roles=("Cashier",))
        login("cashier1", "pw-12345")

        with patch.object(PrincipalDirectory, "get_permission_names", side_effect=RuntimeError("directory down")):
            resp = client.get("/orders")

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Permission verification failed"}

        client.cookies.clear()
        logs = audit_logs(userId=user["id"], action="ACCESS_ERROR")["logs"]
        assert len(logs) == 1
        assert logs[0]["resource"] == "PERMISSION_CHECK"
        assert logs[0]["error_message"] == "directory down"

    def test_role_lookup_failure(self, client: TestClient, login: Login, make_user: MakeUser) -> None:
        make_user("cashier1", roles=("Cashier",))
        login("cashier1", "pw-12345")

        with patch.object(PrincipalDirectory, "get_role_names", side_effect=RuntimeError("directory down")):
            resp = client.get("/reports")

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Role verification failed"}


class TestOneEntryPerDecision:
    def test_each_gated_request_is_audited_once(
        self, client: TestClient, token_for: Callable[..., Any], audit_logs: AuditQuery
    ) -> None:
        user, headers = token_for("cashier1", "Cashier")
        client.get("/orders", headers=headers)
        client.get("/reports", headers=headers)
        client.get("/user", headers=headers)

        logs = audit_logs(userId=user["id"])["logs"]
        assert sorted((e["action"], e["resource"]) for e in logs) == [
            ("ACCESS_DENIED", "ROLE_CHECK"),
            ("ACCESS_GRANTED", "AUTH"),
            ("ACCESS_GRANTED", "PERMISSION_CHECK"),
            ("LOGIN", "AUTH"),
        ]
