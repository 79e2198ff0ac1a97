"""Pydantic schemas for admin API endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from backoffice.auth.schemas import UserPublic

# --- Users ---


class AdminUserResponse(UserPublic):
    """User record with the names of its assigned roles."""

    roles: list[str] = []


class UserCreate(BaseModel):
    """Request body for POST /admin/users."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)
    is_active: bool = True
    role_ids: list[str] = []


class UserUpdate(BaseModel):
    """Request body for PUT /admin/users/{user_id}. Omitted fields are left unchanged."""

    username: str | None = Field(default=None, min_length=1, max_length=255)
    password: str | None = Field(default=None, min_length=1)
    is_active: bool | None = None


# --- Roles ---


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    is_active: bool
    created_at: datetime


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    is_active: bool = True


class RoleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    is_active: bool | None = None


# --- Permissions ---


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    resource: str
    action: str
    description: str | None
    created_at: datetime


class PermissionCreate(BaseModel):
    """``name`` follows ``action:resource``; resource and action default to its halves."""

    name: str = Field(min_length=3, max_length=100)
    resource: str | None = None
    action: str | None = None
    description: str | None = None


class PermissionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = None


# --- Assignments ---


class RoleAssignment(BaseModel):
    """Request body for POST /admin/users/{user_id}/roles."""

    role_id: str


class PermissionAssignment(BaseModel):
    """Request body for POST /admin/roles/{role_id}/permissions."""

    permission_id: str


class AssignmentResponse(BaseModel):
    """Result of an assignment. ``created`` is ``False`` when the link already existed."""

    created: bool
    message: str


class ActionResponse(BaseModel):
    """Generic response for admin actions."""

    success: bool
    message: str
