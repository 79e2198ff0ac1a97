"""Administration of users, roles, permissions, and the audit trail."""
