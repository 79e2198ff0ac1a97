"""Append-only audit trail with a buffered, non-blocking write path."""

import asyncio
import logging
import threading
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.schemas import DEFAULT_PAGE_LIMIT, AuditRecord, PaginatedResult
from backoffice.db.models import AuditLogEntry
from backoffice.db.session import DatabaseManager

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class AuditLog:
    """Records and queries audit entries.

    Two write paths:

    - :meth:`append` inserts into the caller's session and raises on failure.
    - :meth:`record` enqueues onto an in-process outbox and never raises. The
      outbox is flushed every ``flush_interval`` seconds, when it reaches
      ``buffer_size`` entries, before every :meth:`query`, and on :meth:`stop`.
      A batch that fails to write is put back at the head of the outbox.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        buffer_size: int = 50,
        flush_interval: float = 2.0,
    ) -> None:
        self._db_manager = db_manager
        self._buffer_size = buffer_size
        self._flush_interval = flush_interval
        self._buffer: list[AuditRecord] = []
        self._lock = threading.Lock()
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._pending_flushes: set[asyncio.Task] = set()  # type: ignore[type-arg]
        self._stopped = True

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    # --- Writes ---

    async def append(self, session: AsyncSession, record: AuditRecord) -> AuditLogEntry:
        """Insert *record* in the caller's transaction."""
        entry = record.to_model()
        session.add(entry)
        await session.flush()
        return entry

    def record(self, record: AuditRecord) -> None:
        """Enqueue *record* for the background writer."""
        try:
            with self._lock:
                self._buffer.append(record)
                should_flush = len(self._buffer) >= self._buffer_size
            if should_flush and not self._stopped:
                self._schedule_flush()
        except Exception:
            logger.exception("Failed to enqueue audit entry %s/%s", record.action, record.resource)

    def _schedule_flush(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.flush())
        self._pending_flushes.add(task)
        task.add_done_callback(self._pending_flushes.discard)

    def _take_batch(self) -> list[AuditRecord]:
        with self._lock:
            batch = self._buffer[:]
            self._buffer.clear()
        return batch

    def _requeue(self, batch: list[AuditRecord]) -> None:
        with self._lock:
            self._buffer[:0] = batch

    async def flush(self) -> int:
        """Write every queued entry in its own transaction. Returns the number written."""
        batch = self._take_batch()
        if not batch:
            return 0
        try:
            async with self._db_manager.session() as session:
                session.add_all([r.to_model() for r in batch])
        except Exception:
            self._requeue(batch)
            logger.exception("Failed to flush %d audit entries; re-queued", len(batch))
            return 0
        return len(batch)

    # --- Lifecycle ---

    async def start(self) -> None:
        self._stopped = False
        self._task = asyncio.create_task(self._periodic_flush())

    async def stop(self) -> None:
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._pending_flushes:
            await asyncio.gather(*self._pending_flushes, return_exceptions=True)
        await self.flush()

    async def _periodic_flush(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self._flush_interval)
            await self.flush()

    # --- Reads ---

    async def query(
        self,
        session: AsyncSession,
        user_id: str | None = None,
        action: str | None = None,
        resource: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        offset: int = 0,
    ) -> PaginatedResult[AuditLogEntry]:
        """Filtered, newest-first page of entries plus the filtered total.

        The outbox is flushed first, in its own transaction, so a query sees
        every decision recorded before it and a rollback of *session* cannot
        discard queued entries.
        """
        await self.flush()

        base = select(AuditLogEntry)
        count_base = select(func.count(AuditLogEntry.id))

        if user_id is not None:
            base = base.where(AuditLogEntry.user_id == user_id)
            count_base = count_base.where(AuditLogEntry.user_id == user_id)
        if action is not None:
            base = base.where(AuditLogEntry.action == action)
            count_base = count_base.where(AuditLogEntry.action == action)
        if resource is not None:
            base = base.where(AuditLogEntry.resource == resource)
            count_base = count_base.where(AuditLogEntry.resource == resource)
        if date_from is not None:
            base = base.where(AuditLogEntry.created_at >= _as_utc(date_from))
            count_base = count_base.where(AuditLogEntry.created_at >= _as_utc(date_from))
        if date_to is not None:
            base = base.where(AuditLogEntry.created_at <= _as_utc(date_to))
            count_base = count_base.where(AuditLogEntry.created_at <= _as_utc(date_to))

        total = (await session.execute(count_base)).scalar() or 0
        stmt = base.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc()).limit(limit).offset(offset)
        rows = (await session.execute(stmt)).scalars().all()
        return PaginatedResult(list(rows), total)
