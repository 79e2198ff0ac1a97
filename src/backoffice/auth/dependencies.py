"""Authorization gates as FastAPI dependencies.

Three gates, all producing the resolved principal:

- ``authenticate`` -- any authenticated principal.
- ``require_role("Admin", "Manager")`` -- principal holds at least one role.
- ``require_permission("view:orders", "edit:orders")`` -- principal holds all.

Each gated request leaves exactly one audit entry: ``ACCESS_GRANTED``,
``ACCESS_DENIED`` (no principal, or check failed), or ``ACCESS_ERROR``
(anything unexpected, answered with 500).

Usage::

    @router.get("/orders")
    async def list_orders(principal: Annotated[Principal, Depends(require_permission("view:orders"))]): ...
"""

import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Annotated, Any, TypeAlias

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.schemas import AuditRecord
from backoffice.auth.exceptions import AuthenticationError, AuthorizationError, InternalError
from backoffice.auth.permissions import PermissionSet
from backoffice.auth.principal import Principal
from backoffice.constants import AuditAction, AuditResource
from backoffice.dependencies import AccessContext, Context, DBSession

logger = logging.getLogger(__name__)

_Check: TypeAlias = Callable[[Principal, AccessContext, AsyncSession], Awaitable[str]]
_Gate: TypeAlias = Callable[..., Coroutine[Any, Any, Principal]]


_ERROR_MESSAGES = {
    AuditResource.AUTH: "Authentication failed",
    AuditResource.ROLE_CHECK: "Role verification failed",
    AuditResource.PERMISSION_CHECK: "Permission verification failed",
}


def _bracketed(names: list[str]) -> str:
    return "[" + ", ".join(names) + "]"


def _describe_roles(required: list[str], held: list[str]) -> str:
    return f"Required roles: {_bracketed(required)}, User roles: {_bracketed(held)}"


class AccessGate:
    """Resolves the principal, runs one check, and audits the outcome."""

    async def authenticate(self, request: Request, context: Context, session: DBSession) -> Principal:
        return await self._guard(request, context, session, AuditResource.AUTH, None)

    def require_role(self, *role_names: str) -> _Gate:
        """Return a dependency granting access if the principal holds any of *role_names*."""
        required = list(role_names)

        async def _check(principal: Principal, context: AccessContext, session: AsyncSession) -> str:
            held = await principal.role_names(context.directory, session)
            if not any(name in held for name in required):
                raise AuthorizationError("Insufficient role permissions", required=required, user_roles=held)
            return _describe_roles(required, held)

        async def _dependency(request: Request, context: Context, session: DBSession) -> Principal:
            return await self._guard(request, context, session, AuditResource.ROLE_CHECK, _check)

        return _dependency

    def require_permission(self, *permission_names: str) -> _Gate:
        """Return a dependency granting access only if the principal holds all of *permission_names*."""
        required = list(permission_names)

        async def _check(principal: Principal, context: AccessContext, session: AsyncSession) -> str:
            held = PermissionSet(await principal.permission_names(context.directory, session))
            missing = held.missing(*required)
            if missing:
                raise AuthorizationError("Insufficient permissions", required=required, missing=missing)
            return f"Required permissions: {_bracketed(required)}"

        async def _dependency(request: Request, context: Context, session: DBSession) -> Principal:
            return await self._guard(request, context, session, AuditResource.PERMISSION_CHECK, _check)

        return _dependency

    async def _guard(
        self,
        request: Request,
        context: AccessContext,
        session: AsyncSession,
        resource: str,
        check: _Check | None,
    ) -> Principal:
        principal: Principal | None = None
        granted: str | None = None
        try:
            principal = await context.resolver.resolve(request, session)
            if principal is None:
                raise AuthenticationError("Authentication required")
            if check is not None:
                granted = await check(principal, context, session)
        except AuthenticationError as exc:
            self._record(request, context, AuditAction.ACCESS_DENIED, AuditResource.AUTH, False, None, exc.message)
            raise
        except AuthorizationError as exc:
            logger.warning(
                "Access denied on %s: %s",
                request.url.path,
                exc.message,
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "user_id": principal.user_id if principal else None,
                    "audit_action": AuditAction.ACCESS_DENIED,
                },
            )
            self._record(request, context, AuditAction.ACCESS_DENIED, resource, False, principal, self._describe(exc))
            raise
        except Exception as exc:
            logger.exception("Access check failed for %s", request.url.path)
            message = _ERROR_MESSAGES.get(resource, "Authentication failed")
            self._record(request, context, AuditAction.ACCESS_ERROR, resource, False, principal, str(exc) or message)
            raise InternalError(message) from exc

        self._record(request, context, AuditAction.ACCESS_GRANTED, resource, True, principal, granted)
        return principal

    @staticmethod
    def _describe(exc: AuthorizationError) -> str:
        if exc.user_roles is not None:
            return _describe_roles(exc.required, exc.user_roles)
        return f"Required permissions: {_bracketed(exc.required)}, Missing: {_bracketed(exc.missing or [])}"

    @staticmethod
    def _record(
        request: Request,
        context: AccessContext,
        action: str,
        resource: str,
        success: bool,
        principal: Principal | None,
        error_message: str | None,
    ) -> None:
        try:
            record = AuditRecord.from_request(
                request,
                action,
                resource,
                success,
                user_id=principal.user_id if principal else None,
                actor_name=principal.username if principal else None,
                error_message=error_message,
            )
        except Exception:
            logger.exception("Could not build audit entry for %s %s", action, resource)
            return
        context.audit.record(record)


_gate = AccessGate()
authenticate = _gate.authenticate
require_role = _gate.require_role
require_permission = _gate.require_permission

# Type alias for Annotated dependencies
CurrentPrincipal = Annotated[Principal, Depends(authenticate)]
