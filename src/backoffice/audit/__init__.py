"""Audit trail: record and query access decisions and administrative actions."""

from backoffice.audit.schemas import AuditRecord, PaginatedResult
from backoffice.audit.service import AuditLog

__all__ = ["AuditLog", "AuditRecord", "PaginatedResult"]
