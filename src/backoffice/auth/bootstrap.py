"""First-run seeding of roles, the permission catalogue, and the Admin account."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.auth.directory import PrincipalDirectory
from backoffice.auth.passwords import CredentialStore
from backoffice.constants import (
    ADMIN_ROLE,
    BOOTSTRAP_ADMIN_USERNAME,
    BOOTSTRAP_PASSWORD_SENTINEL,
    PERMISSION_CATALOGUE,
    SEED_ROLE_GRANTS,
    SEED_ROLES,
    permission_name,
)
from backoffice.db.models import Role

logger = logging.getLogger(__name__)


async def seed_directory(
    session: AsyncSession,
    directory: PrincipalDirectory,
    credentials: CredentialStore,
    admin_password: str = "",
) -> bool:
    """Seed an empty directory. Returns ``False`` if roles already exist.

    With *admin_password* set, the Admin account gets a real hash and the
    legacy bootstrap login is never reachable. Without it, the account
    stores the bootstrap sentinel until someone rotates the password.
    """
    role_count = (await session.execute(select(func.count(Role.id)))).scalar() or 0
    if role_count:
        logger.debug("Directory already seeded (%d roles)", role_count)
        return False

    roles = {name: await directory.create_role(session, name, description) for name, description in SEED_ROLES.items()}

    permissions = {}
    for resource, actions in PERMISSION_CATALOGUE.items():
        for action in actions:
            name = permission_name(action, resource)
            permissions[name] = await directory.create_permission(
                session, name, resource=resource, action=action, description=f"{action.title()} {resource}"
            )

    for permission in permissions.values():
        await directory.assign_permission(session, roles[ADMIN_ROLE].id, permission.id)
    for role_name, grants in SEED_ROLE_GRANTS.items():
        for name in grants:
            await directory.assign_permission(session, roles[role_name].id, permissions[name].id)

    if admin_password:
        password_hash = await credentials.hash(admin_password)
    else:
        password_hash = BOOTSTRAP_PASSWORD_SENTINEL
        logger.warning(
            "BOOTSTRAP_ADMIN_PASSWORD not set; seeded '%s' with the legacy bootstrap credential",
            BOOTSTRAP_ADMIN_USERNAME,
        )
    admin = await directory.create_user(session, BOOTSTRAP_ADMIN_USERNAME, password_hash)
    await directory.assign_role(session, admin.id, roles[ADMIN_ROLE].id, assigned_by=None)

    logger.info("Seeded %d roles, %d permissions, and user '%s'", len(roles), len(permissions), admin.username)
    return True
