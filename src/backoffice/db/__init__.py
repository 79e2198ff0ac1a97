"""Database package -- convenience re-exports.

Importing this module registers all models with Base.metadata.
"""

from backoffice.db.base import Base
from backoffice.db.models import AuditLogEntry, Permission, Role, RolePermission, User, UserRole
from backoffice.db.session import DatabaseManager

__all__ = [
    # Base
    "Base",
    # Models
    "AuditLogEntry",
    "Permission",
    "Role",
    "RolePermission",
    "User",
    "UserRole",
    # Session
    "DatabaseManager",
]
