"""Tests for first-run directory seeding."""

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.auth.bootstrap import seed_directory
from backoffice.auth.directory import PrincipalDirectory
from backoffice.auth.passwords import CredentialStore
from backoffice.constants import BOOTSTRAP_PASSWORD_SENTINEL, PERMISSION_CATALOGUE, SEED_ROLE_GRANTS, SEED_ROLES


async def test_seeds_roles_permissions_and_admin(
    session: AsyncSession, directory: PrincipalDirectory, credentials: CredentialStore
) -> None:
    assert await seed_directory(session, directory, credentials, admin_password="pw") is True

    assert {r.name for r in await directory.list_roles(session)} == set(SEED_ROLES)
    catalogue_size = sum(len(actions) for actions in PERMISSION_CATALOGUE.values())
    assert len(await directory.list_permissions(session)) == catalogue_size

    admin = await directory.get_user_by_username(session, "Admin")
    assert admin is not None
    assert await credentials.verify("pw", admin.password_hash) is True
    assert await directory.get_role_names(session, admin.id) == ["Admin"]
    assert len(await directory.get_permission_names(session, admin.id)) == catalogue_size
    assert await directory.has_rotated_admin_credential(session) is True


async def test_seeded_role_grants(
    session: AsyncSession, directory: PrincipalDirectory, credentials: CredentialStore
) -> None:
    await seed_directory(session, directory, credentials, admin_password="pw")
    cashier = await directory.get_role_by_name(session, "Cashier")
    assert cashier is not None
    names = [p.name for p in await directory.list_role_permissions(session, cashier.id)]
    assert names == sorted(SEED_ROLE_GRANTS["Cashier"])


async def test_admin_assignment_has_no_assigner(
    session: AsyncSession, directory: PrincipalDirectory, credentials: CredentialStore
) -> None:
    await seed_directory(session, directory, credentials, admin_password="pw")
    admin = await directory.get_user_by_username(session, "Admin")
    admin_role = await directory.get_role_by_name(session, "Admin")
    assert admin is not None and admin_role is not None
    link, created = await directory.assign_role(session, admin.id, admin_role.id, assigned_by="someone")
    assert created is False
    assert link.assigned_by is None


async def test_sentinel_when_no_password_configured(
    session: AsyncSession, directory: PrincipalDirectory, credentials: CredentialStore
) -> None:
    await seed_directory(session, directory, credentials)
    admin = await directory.get_user_by_username(session, "Admin")
    assert admin is not None
    assert admin.password_hash == BOOTSTRAP_PASSWORD_SENTINEL
    assert await directory.has_rotated_admin_credential(session) is False


async def test_second_run_is_a_no_op(
    session: AsyncSession, directory: PrincipalDirectory, credentials: CredentialStore
) -> None:
    await seed_directory(session, directory, credentials, admin_password="pw")
    before = len(await directory.list_permissions(session))

    assert await seed_directory(session, directory, credentials, admin_password="other") is False
    assert len(await directory.list_permissions(session)) == before
    assert len(await directory.list_users(session)) == 1
