"""Tests for DatabaseManager session isolation on the shared in-memory connection."""

import asyncio

import pytest

from backoffice.audit.schemas import AuditRecord
from backoffice.audit.service import AuditLog
from backoffice.auth.directory import PrincipalDirectory
from backoffice.db.session import DatabaseManager


async def _usernames(db: DatabaseManager, directory: PrincipalDirectory) -> list[str]:
    async with db.session() as session:
        return [u.username for u in await directory.list_users(session)]


class TestSerializedSessions:
    async def test_rollback_keeps_other_sessions_writes(
        self, db: DatabaseManager, directory: PrincipalDirectory
    ) -> None:
        flushed = asyncio.Event()

        async def writer() -> None:
            async with db.session() as session:
                await directory.create_user(session, "kept", "hash")
                flushed.set()
                await asyncio.sleep(0.01)

        async def failing() -> None:
            await flushed.wait()
            async with db.session() as session:
                await directory.create_user(session, "discarded", "hash")
                raise RuntimeError("handler failed")

        async with asyncio.timeout(5):
            results = await asyncio.gather(writer(), failing(), return_exceptions=True)

        assert results[0] is None
        assert isinstance(results[1], RuntimeError)
        assert await _usernames(db, directory) == ["kept"]

    async def test_audit_flush_waits_for_open_session(
        self, db: DatabaseManager, directory: PrincipalDirectory
    ) -> None:
        audit = AuditLog(db)
        audit.record(AuditRecord(action="LOGIN", resource="AUTH", success=True))

        async with asyncio.timeout(5):
            with pytest.raises(RuntimeError):
                async with db.session() as session:
                    await directory.create_user(session, "half-done", "hash")
                    flush = asyncio.create_task(audit.flush())
                    await asyncio.sleep(0.01)
                    assert not flush.done()
                    raise RuntimeError("request failed")

            assert await flush == 1

        assert await _usernames(db, directory) == []
        async with db.session() as session:
            assert (await audit.query(session)).total == 1

    async def test_nested_session_in_same_task_joins(
        self, db: DatabaseManager, directory: PrincipalDirectory
    ) -> None:
        async with asyncio.timeout(5):
            async with db.session() as outer:
                async with db.session() as inner:
                    await directory.create_user(inner, "inner", "hash")
                assert await directory.get_user_by_username(outer, "inner") is not None

