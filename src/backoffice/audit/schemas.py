"""Audit record type and response schemas."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, NamedTuple, TypeVar

from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backoffice.db.base import utc_now
from backoffice.db.models import AuditLogEntry

# --- Pagination ---

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 200


T = TypeVar("T")


class PaginatedResult(NamedTuple, Generic[T]):
    """Named return type for paginated service queries."""

    items: list[T]
    total: int


# --- Records ---


@dataclass(slots=True)
class AuditRecord:
    """One audit event, captured at the moment it happened.

    ``created_at`` is fixed here, not at flush time, so ordering reflects
    when decisions were made.
    """

    action: str
    resource: str
    success: bool
    user_id: str | None = None
    resource_id: str | None = None
    error_message: str | None = None
    actor_name: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_request(
        cls,
        request: Request,
        action: str,
        resource: str,
        success: bool,
        *,
        user_id: str | None = None,
        actor_name: str | None = None,
        resource_id: str | None = None,
        error_message: str | None = None,
    ) -> "AuditRecord":
        """Build a record carrying the request's client address, user agent, and route."""
        return cls(
            action=action,
            resource=resource,
            success=success,
            user_id=user_id,
            resource_id=resource_id,
            error_message=error_message,
            actor_name=actor_name,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            metadata={
                "url": str(request.url.path),
                "method": request.method,
                "path_params": dict(request.path_params),
                "query": dict(request.query_params),
            },
        )

    def to_model(self) -> AuditLogEntry:
        return AuditLogEntry(
            user_id=self.user_id,
            action=self.action,
            resource=self.resource,
            resource_id=self.resource_id,
            success=self.success,
            error_message=self.error_message,
            actor_name=self.actor_name,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            entry_metadata=json.dumps(self.metadata, default=str) if self.metadata is not None else None,
            created_at=self.created_at,
        )


def client_ip(request: Request) -> str | None:
    """First ``X-Forwarded-For`` hop, falling back to the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# --- Responses ---


class AuditLogResponse(BaseModel):
    """Response schema for one audit entry."""

    id: int
    user_id: str | None
    action: str
    resource: str
    resource_id: str | None
    success: bool
    error_message: str | None
    actor_name: str | None
    ip_address: str | None
    user_agent: str | None
    metadata: dict[str, Any] | None
    created_at: datetime

    @field_validator("metadata", mode="before")
    @classmethod
    def _parse_metadata(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value)
        return value

    @classmethod
    def from_entry(cls, entry: AuditLogEntry) -> "AuditLogResponse":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            action=entry.action,
            resource=entry.resource,
            resource_id=entry.resource_id,
            success=entry.success,
            error_message=entry.error_message,
            actor_name=entry.actor_name,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            metadata=entry.entry_metadata,  # type: ignore[arg-type]
            created_at=entry.created_at,
        )


class AuditLogFilters(BaseModel):
    """Echo of the filters applied to an audit query, under the query-string names."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(default=None, alias="userId")
    action: str | None = None
    resource: str | None = None
    date_from: datetime | None = Field(default=None, alias="dateFrom")
    date_to: datetime | None = Field(default=None, alias="dateTo")
    limit: int = DEFAULT_PAGE_LIMIT
    offset: int = 0


class AuditLogPage(BaseModel):
    """Paginated audit query result."""

    logs: list[AuditLogResponse]
    total: int
    filters: AuditLogFilters
