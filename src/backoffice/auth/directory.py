"""Principal directory: users, roles, permissions, and the links between them."""

import logging
from collections.abc import Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.auth.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.constants import ADMIN_ROLE, BOOTSTRAP_PASSWORD_SENTINEL
from backoffice.db.base import utc_now
from backoffice.db.models import Permission, Role, RolePermission, User, UserRole

logger = logging.getLogger(__name__)


class PrincipalDirectory:
    """Authoritative store of the permission graph.

    Stateless: every method takes the caller's ``AsyncSession`` and only
    flushes, leaving commit/rollback to the session owner.

    Usage::

        directory = PrincipalDirectory()
        link, created = await directory.assign_role(session, user.id, role.id, assigned_by=admin.id)
        names = await directory.get_permission_names(session, user.id)
    """

    # --- Users ---

    async def create_user(
        self,
        session: AsyncSession,
        username: str,
        password_hash: str,
        is_active: bool = True,
    ) -> User:
        if await self.get_user_by_username(session, username) is not None:
            raise ConflictError(f"Username '{username}' already exists")
        user = User(username=username, password_hash=password_hash, is_active=is_active)
        await self._insert(session, user, f"Username '{username}' already exists")
        logger.info("Created user '%s' (%s)", username, user.id)
        return user

    async def get_user(self, session: AsyncSession, user_id: str) -> User | None:
        result = await session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_or_raise(self, session: AsyncSession, user_id: str) -> User:
        user = await self.get_user(session, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def get_user_by_username(self, session: AsyncSession, username: str) -> User | None:
        result = await session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def list_users(self, session: AsyncSession) -> Sequence[User]:
        result = await session.execute(select(User).order_by(User.username))
        return result.scalars().all()

    async def update_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        username: str | None = None,
        password_hash: str | None = None,
        is_active: bool | None = None,
    ) -> User:
        user = await self.get_user_or_raise(session, user_id)
        if username is not None and username != user.username:
            if await self.get_user_by_username(session, username) is not None:
                raise ConflictError(f"Username '{username}' already exists")
            user.username = username
        if password_hash is not None:
            user.password_hash = password_hash
        if is_active is not None:
            user.is_active = is_active
        await self._flush_unique(session, f"Username '{username}' already exists")
        return user

    async def delete_user(self, session: AsyncSession, user_id: str) -> None:
        """Delete a user and its role assignments."""
        await self.get_user_or_raise(session, user_id)
        await session.execute(delete(UserRole).where(UserRole.user_id == user_id))
        await session.execute(delete(User).where(User.id == user_id))
        await session.flush()
        logger.info("Deleted user %s", user_id)

    async def touch_last_login(self, session: AsyncSession, user_id: str) -> None:
        await session.execute(update(User).where(User.id == user_id).values(last_login_at=utc_now()))
        await session.flush()

    async def has_rotated_admin_credential(self, session: AsyncSession) -> bool:
        """Return ``True`` once any Admin-role user holds a real password hash."""
        stmt = (
            select(func.count(User.id))
            .join(UserRole, UserRole.user_id == User.id)
            .join(Role, Role.id == UserRole.role_id)
            .where(Role.name == ADMIN_ROLE, User.password_hash != BOOTSTRAP_PASSWORD_SENTINEL)
        )
        return ((await session.execute(stmt)).scalar() or 0) > 0

    # --- Roles ---

    async def create_role(
        self,
        session: AsyncSession,
        name: str,
        description: str | None = None,
        is_active: bool = True,
    ) -> Role:
        if await self.get_role_by_name(session, name) is not None:
            raise ConflictError(f"Role '{name}' already exists")
        role = Role(name=name, description=description, is_active=is_active)
        await self._insert(session, role, f"Role '{name}' already exists")
        logger.info("Created role '%s' (%s)", name, role.id)
        return role

    async def get_role(self, session: AsyncSession, role_id: str) -> Role | None:
        result = await session.execute(select(Role).where(Role.id == role_id))
        return result.scalar_one_or_none()

    async def get_role_or_raise(self, session: AsyncSession, role_id: str) -> Role:
        role = await self.get_role(session, role_id)
        if role is None:
            raise NotFoundError("Role", role_id)
        return role

    async def get_role_by_name(self, session: AsyncSession, name: str) -> Role | None:
        result = await session.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def list_roles(self, session: AsyncSession) -> Sequence[Role]:
        result = await session.execute(select(Role).order_by(Role.name))
        return result.scalars().all()

    async def update_role(
        self,
        session: AsyncSession,
        role_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        is_active: bool | None = None,
    ) -> Role:
        role = await self.get_role_or_raise(session, role_id)
        if name is not None and name != role.name:
            if await self.get_role_by_name(session, name) is not None:
                raise ConflictError(f"Role '{name}' already exists")
            role.name = name
        if description is not None:
            role.description = description
        if is_active is not None:
            role.is_active = is_active
        await self._flush_unique(session, f"Role '{name}' already exists")
        return role

    async def delete_role(self, session: AsyncSession, role_id: str) -> None:
        """Delete a role together with its permission grants and user assignments."""
        await self.get_role_or_raise(session, role_id)
        await session.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
        await session.execute(delete(UserRole).where(UserRole.role_id == role_id))
        await session.execute(delete(Role).where(Role.id == role_id))
        await session.flush()
        logger.info("Deleted role %s", role_id)

    # --- Permissions ---

    async def create_permission(
        self,
        session: AsyncSession,
        name: str,
        resource: str | None = None,
        action: str | None = None,
        description: str | None = None,
    ) -> Permission:
        """Create a permission named ``action:resource``.

        *resource* and *action* default to the two halves of *name*.
        """
        parsed_action, parsed_resource = self._split_name(name)
        if await self.get_permission_by_name(session, name) is not None:
            raise ConflictError(f"Permission '{name}' already exists")
        permission = Permission(
            name=name,
            resource=resource or parsed_resource,
            action=action or parsed_action,
            description=description,
        )
        await self._insert(session, permission, f"Permission '{name}' already exists")
        return permission

    async def get_permission(self, session: AsyncSession, permission_id: str) -> Permission | None:
        result = await session.execute(select(Permission).where(Permission.id == permission_id))
        return result.scalar_one_or_none()

    async def get_permission_or_raise(self, session: AsyncSession, permission_id: str) -> Permission:
        permission = await self.get_permission(session, permission_id)
        if permission is None:
            raise NotFoundError("Permission", permission_id)
        return permission

    async def get_permission_by_name(self, session: AsyncSession, name: str) -> Permission | None:
        result = await session.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def list_permissions(self, session: AsyncSession) -> Sequence[Permission]:
        result = await session.execute(select(Permission).order_by(Permission.name))
        return result.scalars().all()

    async def update_permission(
        self,
        session: AsyncSession,
        permission_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> Permission:
        permission = await self.get_permission_or_raise(session, permission_id)
        if name is not None and name != permission.name:
            action, resource = self._split_name(name)
            if await self.get_permission_by_name(session, name) is not None:
                raise ConflictError(f"Permission '{name}' already exists")
            permission.name = name
            permission.action = action
            permission.resource = resource
        if description is not None:
            permission.description = description
        await self._flush_unique(session, f"Permission '{name}' already exists")
        return permission

    async def delete_permission(self, session: AsyncSession, permission_id: str) -> None:
        await self.get_permission_or_raise(session, permission_id)
        await session.execute(delete(RolePermission).where(RolePermission.permission_id == permission_id))
        await session.execute(delete(Permission).where(Permission.id == permission_id))
        await session.flush()
        logger.info("Deleted permission %s", permission_id)

    # --- Links ---

    async def assign_role(
        self,
        session: AsyncSession,
        user_id: str,
        role_id: str,
        assigned_by: str | None = None,
    ) -> tuple[UserRole, bool]:
        """Bind *role_id* to *user_id*. Returns ``(link, created)``.

        An existing assignment is returned unchanged with ``created=False``.
        The ``(user_id, role_id)`` unique constraint settles concurrent
        duplicates: the losing insert is rolled back to its savepoint and the
        winner's row is returned.
        """
        await self.get_user_or_raise(session, user_id)
        await self.get_role_or_raise(session, role_id)

        existing = await self._get_user_role(session, user_id, role_id)
        if existing is not None:
            return existing, False

        link = UserRole(user_id=user_id, role_id=role_id, assigned_by=assigned_by)
        try:
            async with session.begin_nested():
                session.add(link)
                await session.flush()
        except IntegrityError:
            existing = await self._get_user_role(session, user_id, role_id)
            if existing is None:
                raise
            return existing, False

        logger.info("Assigned role %s to user %s", role_id, user_id)
        return link, True

    async def remove_role(self, session: AsyncSession, user_id: str, role_id: str) -> bool:
        """Unbind *role_id* from *user_id*. Returns ``False`` when no such link exists."""
        cursor = await session.execute(
            delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        )
        await session.flush()
        removed: int = cursor.rowcount  # type: ignore[attr-defined]
        return removed > 0

    async def assign_permission(
        self,
        session: AsyncSession,
        role_id: str,
        permission_id: str,
    ) -> tuple[RolePermission, bool]:
        """Grant *permission_id* to *role_id*. Returns ``(link, created)``."""
        await self.get_role_or_raise(session, role_id)
        await self.get_permission_or_raise(session, permission_id)

        existing = await self._get_role_permission(session, role_id, permission_id)
        if existing is not None:
            return existing, False

        link = RolePermission(role_id=role_id, permission_id=permission_id)
        try:
            async with session.begin_nested():
                session.add(link)
                await session.flush()
        except IntegrityError:
            existing = await self._get_role_permission(session, role_id, permission_id)
            if existing is None:
                raise
            return existing, False

        logger.info("Granted permission %s to role %s", permission_id, role_id)
        return link, True

    async def remove_permission(self, session: AsyncSession, role_id: str, permission_id: str) -> bool:
        cursor = await session.execute(
            delete(RolePermission).where(
                RolePermission.role_id == role_id,
                RolePermission.permission_id == permission_id,
            )
        )
        await session.flush()
        removed: int = cursor.rowcount  # type: ignore[attr-defined]
        return removed > 0

    async def list_user_roles(self, session: AsyncSession, user_id: str) -> Sequence[Role]:
        """Return every role assigned to *user_id*, active or not."""
        stmt = (
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.name)
        )
        return (await session.execute(stmt)).scalars().all()

    async def role_names_by_user(self, session: AsyncSession) -> dict[str, list[str]]:
        """Assigned role names for every user that has any, in one query."""
        stmt = (
            select(UserRole.user_id, Role.name)
            .join(Role, Role.id == UserRole.role_id)
            .order_by(UserRole.user_id, Role.name)
        )
        names: dict[str, list[str]] = {}
        for user_id, role_name in (await session.execute(stmt)).all():
            names.setdefault(user_id, []).append(role_name)
        return names

    async def list_role_permissions(self, session: AsyncSession, role_id: str) -> Sequence[Permission]:
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id == role_id)
            .order_by(Permission.name)
        )
        return (await session.execute(stmt)).scalars().all()

    # --- Resolution ---

    async def get_effective_permissions(self, session: AsyncSession, user_id: str) -> list[Permission]:
        """Union of permissions across the user's active roles, one entry per permission, by name."""
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id, Role.is_active.is_(True))
            .distinct()
            .order_by(Permission.name)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def get_permission_names(self, session: AsyncSession, user_id: str) -> list[str]:
        return [p.name for p in await self.get_effective_permissions(session, user_id)]

    async def get_role_names(self, session: AsyncSession, user_id: str) -> list[str]:
        """Names of the user's active roles."""
        stmt = (
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id, Role.is_active.is_(True))
            .order_by(Role.name)
        )
        result = await session.execute(stmt)
        return [row[0] for row in result.all()]

    # --- Helpers ---

    @staticmethod
    def _split_name(name: str) -> tuple[str, str]:
        action, sep, resource = name.partition(":")
        if not sep or not action or not resource:
            raise ValidationError(f"Permission name '{name}' must follow 'action:resource'")
        return action, resource

    @staticmethod
    async def _insert(session: AsyncSession, obj: User | Role | Permission, conflict_message: str) -> None:
        try:
            async with session.begin_nested():
                session.add(obj)
                await session.flush()
        except IntegrityError as exc:
            raise ConflictError(conflict_message) from exc

    @staticmethod
    async def _flush_unique(session: AsyncSession, conflict_message: str) -> None:
        try:
            async with session.begin_nested():
                await session.flush()
        except IntegrityError as exc:
            raise ConflictError(conflict_message) from exc

    @staticmethod
    async def _get_user_role(session: AsyncSession, user_id: str, role_id: str) -> UserRole | None:
        result = await session.execute(
            select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _get_role_permission(session: AsyncSession, role_id: str, permission_id: str) -> RolePermission | None:
        result = await session.execute(
            select(RolePermission).where(
                RolePermission.role_id == role_id,
                RolePermission.permission_id == permission_id,
            )
        )
        return result.scalar_one_or_none()
