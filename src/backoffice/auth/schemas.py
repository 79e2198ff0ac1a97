"""Pydantic schemas for authentication endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserPublic(BaseModel):
    """User record safe to return to clients (no password hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    is_active: bool
    last_login_at: datetime | None
    created_at: datetime


class LoginRequest(BaseModel):
    """Request body for POST /login."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class LoginResponse(BaseModel):
    """Successful login: bearer token plus the permissions it was issued with."""

    user: UserPublic
    token: str
    permissions: list[str]
    roles: list[str]


class UserPermissionsResponse(BaseModel):
    """Freshly resolved permission and role names for the caller."""

    permissions: list[str]
    roles: list[str]


class MessageResponse(BaseModel):
    message: str
