"""Admin API endpoints: users, roles, permissions, assignments, and the audit trail."""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.admin.schemas import (
    ActionResponse,
    AdminUserResponse,
    AssignmentResponse,
    PermissionAssignment,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
    RoleAssignment,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    UserCreate,
    UserUpdate,
)
from backoffice.audit.schemas import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    AuditLogFilters,
    AuditLogPage,
    AuditLogResponse,
    AuditRecord,
)
from backoffice.auth.dependencies import require_permission, require_role
from backoffice.auth.exceptions import NotFoundError, ValidationError
from backoffice.auth.principal import Principal
from backoffice.constants import ADMIN_ROLE, AuditAction, AuditResource
from backoffice.db.models import User
from backoffice.dependencies import AccessContext, Context, DBSession

logger = logging.getLogger(__name__)

router = APIRouter()

_view_users = require_permission("view:users")
_create_users = require_permission("create:users")
_edit_users = require_permission("edit:users")
_delete_users = require_permission("delete:users")
_view_roles = require_permission("view:roles")
_create_roles = require_permission("create:roles")
_edit_roles = require_permission("edit:roles")
_delete_roles = require_permission("delete:roles")
_admin_only = require_role(ADMIN_ROLE)


def _record(
    request: Request,
    context: AccessContext,
    principal: Principal,
    action: AuditAction,
    resource: AuditResource,
    resource_id: str,
) -> None:
    context.audit.record(
        AuditRecord.from_request(
            request,
            action,
            resource,
            True,
            user_id=principal.user_id,
            actor_name=principal.username,
            resource_id=resource_id,
        )
    )


async def _user_response(context: AccessContext, session: AsyncSession, user: User) -> AdminUserResponse:
    roles = [r.name for r in await context.directory.list_user_roles(session, user.id)]
    return AdminUserResponse.model_validate(user).model_copy(update={"roles": roles})


# --- Users ---


@router.get("/users", response_model=list[AdminUserResponse], dependencies=[Depends(_view_users)])
async def list_users(context: Context, session: DBSession) -> list[AdminUserResponse]:
    """List all users with their assigned role names."""
    users = await context.directory.list_users(session)
    roles = await context.directory.role_names_by_user(session)
    return [AdminUserResponse.model_validate(u).model_copy(update={"roles": roles.get(u.id, [])}) for u in users]


@router.post("/users", response_model=AdminUserResponse, status_code=201)
async def create_user(
    request: Request,
    body: UserCreate,
    principal: Annotated[Principal, Depends(_create_users)],
    context: Context,
    session: DBSession,
) -> AdminUserResponse:
    """Create a user, optionally bound to roles."""
    for role_id in dict.fromkeys(body.role_ids):
        await context.directory.get_role_or_raise(session, role_id)
    password_hash = await context.credentials.hash(body.password)
    user = await context.directory.create_user(session, body.username, password_hash, is_active=body.is_active)
    for role_id in dict.fromkeys(body.role_ids):
        await context.directory.assign_role(session, user.id, role_id, assigned_by=principal.user_id)
    _record(request, context, principal, AuditAction.CREATE, AuditResource.USER, user.id)
    return await _user_response(context, session, user)


@router.get("/users/{user_id}", response_model=AdminUserResponse, dependencies=[Depends(_view_users)])
async def get_user(user_id: str, context: Context, session: DBSession) -> AdminUserResponse:
    user = await context.directory.get_user_or_raise(session, user_id)
    return await _user_response(context, session, user)


@router.put("/users/{user_id}", response_model=AdminUserResponse)
async def update_user(
    request: Request,
    user_id: str,
    body: UserUpdate,
    principal: Annotated[Principal, Depends(_edit_users)],
    context: Context,
    session: DBSession,
) -> AdminUserResponse:
    """Update username, password, or active flag."""
    password_hash = await context.credentials.hash(body.password) if body.password is not None else None
    user = await context.directory.update_user(
        session,
        user_id,
        username=body.username,
        password_hash=password_hash,
        is_active=body.is_active,
    )
    _record(request, context, principal, AuditAction.UPDATE, AuditResource.USER, user.id)
    return await _user_response(context, session, user)


@router.delete("/users/{user_id}", response_model=ActionResponse)
async def delete_user(
    request: Request,
    user_id: str,
    principal: Annotated[Principal, Depends(_delete_users)],
    context: Context,
    session: DBSession,
) -> ActionResponse:
    """Delete a user and its role assignments. Deleting yourself is refused."""
    if user_id == principal.user_id:
        raise ValidationError("You cannot delete your own account")
    await context.directory.delete_user(session, user_id)
    _record(request, context, principal, AuditAction.DELETE, AuditResource.USER, user_id)
    return ActionResponse(success=True, message=f"User {user_id} deleted")


@router.get("/users/{user_id}/roles", response_model=list[RoleResponse], dependencies=[Depends(_view_users)])
async def list_user_roles(user_id: str, context: Context, session: DBSession) -> list[RoleResponse]:
    await context.directory.get_user_or_raise(session, user_id)
    roles = await context.directory.list_user_roles(session, user_id)
    return [RoleResponse.model_validate(r) for r in roles]


@router.post("/users/{user_id}/roles", response_model=AssignmentResponse)
async def assign_user_role(
    request: Request,
    user_id: str,
    body: RoleAssignment,
    principal: Annotated[Principal, Depends(_edit_users)],
    context: Context,
    session: DBSession,
) -> AssignmentResponse:
    link, created = await context.directory.assign_role(session, user_id, body.role_id, assigned_by=principal.user_id)
    if not created:
        return AssignmentResponse(created=False, message="Role already assigned")
    _record(request, context, principal, AuditAction.ASSIGN, AuditResource.USER_ROLE, link.id)
    return AssignmentResponse(created=True, message="Role assigned")


@router.delete("/users/{user_id}/roles/{role_id}", response_model=ActionResponse)
async def remove_user_role(
    request: Request,
    user_id: str,
    role_id: str,
    principal: Annotated[Principal, Depends(_edit_users)],
    context: Context,
    session: DBSession,
) -> ActionResponse:
    if not await context.directory.remove_role(session, user_id, role_id):
        raise NotFoundError("Role assignment", f"{user_id}/{role_id}")
    _record(request, context, principal, AuditAction.REVOKE, AuditResource.USER_ROLE, f"{user_id}/{role_id}")
    return ActionResponse(success=True, message="Role removed")


# --- Roles ---


@router.get("/roles", response_model=list[RoleResponse], dependencies=[Depends(_view_roles)])
async def list_roles(context: Context, session: DBSession) -> list[RoleResponse]:
    return [RoleResponse.model_validate(r) for r in await context.directory.list_roles(session)]


@router.post("/roles", response_model=RoleResponse, status_code=201)
async def create_role(
    request: Request,
    body: RoleCreate,
    principal: Annotated[Principal, Depends(_create_roles)],
    context: Context,
    session: DBSession,
) -> RoleResponse:
    role = await context.directory.create_role(session, body.name, body.description, is_active=body.is_active)
    _record(request, context, principal, AuditAction.CREATE, AuditResource.ROLE, role.id)
    return RoleResponse.model_validate(role)


@router.get("/roles/{role_id}", response_model=RoleResponse, dependencies=[Depends(_view_roles)])
async def get_role(role_id: str, context: Context, session: DBSession) -> RoleResponse:
    return RoleResponse.model_validate(await context.directory.get_role_or_raise(session, role_id))


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    request: Request,
    role_id: str,
    body: RoleUpdate,
    principal: Annotated[Principal, Depends(_edit_roles)],
    context: Context,
    session: DBSession,
) -> RoleResponse:
    role = await context.directory.update_role(
        session, role_id, name=body.name, description=body.description, is_active=body.is_active
    )
    _record(request, context, principal, AuditAction.UPDATE, AuditResource.ROLE, role.id)
    return RoleResponse.model_validate(role)


@router.delete("/roles/{role_id}", response_model=ActionResponse)
async def delete_role(
    request: Request,
    role_id: str,
    principal: Annotated[Principal, Depends(_delete_roles)],
    context: Context,
    session: DBSession,
) -> ActionResponse:
    """Delete a role; its permission grants and user assignments go with it."""
    await context.directory.delete_role(session, role_id)
    _record(request, context, principal, AuditAction.DELETE, AuditResource.ROLE, role_id)
    return ActionResponse(success=True, message=f"Role {role_id} deleted")


@router.get(
    "/roles/{role_id}/permissions",
    response_model=list[PermissionResponse],
    dependencies=[Depends(_view_roles)],
)
async def list_role_permissions(role_id: str, context: Context, session: DBSession) -> list[PermissionResponse]:
    await context.directory.get_role_or_raise(session, role_id)
    permissions = await context.directory.list_role_permissions(session, role_id)
    return [PermissionResponse.model_validate(p) for p in permissions]


@router.post("/roles/{role_id}/permissions", response_model=AssignmentResponse)
async def assign_role_permission(
    request: Request,
    role_id: str,
    body: PermissionAssignment,
    principal: Annotated[Principal, Depends(_edit_roles)],
    context: Context,
    session: DBSession,
) -> AssignmentResponse:
    link, created = await context.directory.assign_permission(session, role_id, body.permission_id)
    if not created:
        return AssignmentResponse(created=False, message="Permission already granted")
    _record(request, context, principal, AuditAction.ASSIGN, AuditResource.ROLE_PERMISSION, link.id)
    return AssignmentResponse(created=True, message="Permission granted")


@router.delete("/roles/{role_id}/permissions/{permission_id}", response_model=ActionResponse)
async def remove_role_permission(
    request: Request,
    role_id: str,
    permission_id: str,
    principal: Annotated[Principal, Depends(_edit_roles)],
    context: Context,
    session: DBSession,
) -> ActionResponse:
    if not await context.directory.remove_permission(session, role_id, permission_id):
        raise NotFoundError("Permission grant", f"{role_id}/{permission_id}")
    _record(
        request, context, principal, AuditAction.REVOKE, AuditResource.ROLE_PERMISSION, f"{role_id}/{permission_id}"
    )
    return ActionResponse(success=True, message="Permission removed")


# --- Permissions ---


@router.get("/permissions", response_model=list[PermissionResponse], dependencies=[Depends(_view_roles)])
async def list_permissions(context: Context, session: DBSession) -> list[PermissionResponse]:
    return [PermissionResponse.model_validate(p) for p in await context.directory.list_permissions(session)]


@router.post("/permissions", response_model=PermissionResponse, status_code=201)
async def create_permission(
    request: Request,
    body: PermissionCreate,
    principal: Annotated[Principal, Depends(_create_roles)],
    context: Context,
    session: DBSession,
) -> PermissionResponse:
    permission = await context.directory.create_permission(
        session, body.name, resource=body.resource, action=body.action, description=body.description
    )
    _record(request, context, principal, AuditAction.CREATE, AuditResource.PERMISSION, permission.id)
    return PermissionResponse.model_validate(permission)


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    request: Request,
    permission_id: str,
    body: PermissionUpdate,
    principal: Annotated[Principal, Depends(_edit_roles)],
    context: Context,
    session: DBSession,
) -> PermissionResponse:
    permission = await context.directory.update_permission(
        session, permission_id, name=body.name, description=body.description
    )
    _record(request, context, principal, AuditAction.UPDATE, AuditResource.PERMISSION, permission.id)
    return PermissionResponse.model_validate(permission)


@router.delete("/permissions/{permission_id}", response_model=ActionResponse)
async def delete_permission(
    request: Request,
    permission_id: str,
    principal: Annotated[Principal, Depends(_delete_roles)],
    context: Context,
    session: DBSession,
) -> ActionResponse:
    await context.directory.delete_permission(session, permission_id)
    _record(request, context, principal, AuditAction.DELETE, AuditResource.PERMISSION, permission_id)
    return ActionResponse(success=True, message=f"Permission {permission_id} deleted")


# --- Audit trail ---


@router.get("/audit-logs", response_model=AuditLogPage, dependencies=[Depends(_admin_only)])
async def list_audit_logs(
    context: Context,
    session: DBSession,
    user_id: str | None = Query(default=None, alias="userId"),
    action: str | None = Query(default=None),
    resource: str | None = Query(default=None),
    date_from: datetime | None = Query(default=None, alias="dateFrom"),
    date_to: datetime | None = Query(default=None, alias="dateTo"),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(default=0, ge=0),
) -> AuditLogPage:
    """Query the audit trail, newest first."""
    filters = AuditLogFilters(
        user_id=user_id,
        action=action,
        resource=resource,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    entries, total = await context.audit.query(session, **filters.model_dump())
    return AuditLogPage(logs=[AuditLogResponse.from_entry(e) for e in entries], total=total, filters=filters)
