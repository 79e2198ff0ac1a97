"""Application-owned services and the FastAPI dependencies that hand them out."""

import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated, Self

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.service import AuditLog
from backoffice.auth.bootstrap import seed_directory
from backoffice.auth.directory import PrincipalDirectory
from backoffice.auth.passwords import CredentialStore
from backoffice.auth.principal import PrincipalResolver
from backoffice.auth.sessions import SessionChannel
from backoffice.auth.tokens import TokenService
from backoffice.db.session import DatabaseManager
from backoffice.settings import AppSettings

logger = logging.getLogger(__name__)


@dataclass
class AccessContext:
    """Every stateful access-control service, owned by one application instance.

    Usage::

        context = AccessContext.from_settings(settings)
        await context.startup()    # schema, seed, audit writer
        ...
        await context.shutdown()   # flush audit outbox, dispose engine
    """

    settings: AppSettings
    db: DatabaseManager
    directory: PrincipalDirectory
    credentials: CredentialStore
    tokens: TokenService
    sessions: SessionChannel
    audit: AuditLog
    resolver: PrincipalResolver

    @classmethod
    def from_settings(cls, settings: AppSettings) -> Self:
        db = DatabaseManager(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
        directory = PrincipalDirectory()
        tokens = TokenService(settings)
        sessions = SessionChannel(settings)
        return cls(
            settings=settings,
            db=db,
            directory=directory,
            credentials=CredentialStore(),
            tokens=tokens,
            sessions=sessions,
            audit=AuditLog(
                db,
                buffer_size=settings.AUDIT_BUFFER_SIZE,
                flush_interval=settings.AUDIT_FLUSH_INTERVAL_SECONDS,
            ),
            resolver=PrincipalResolver(tokens, sessions, directory),
        )

    async def startup(self) -> None:
        await self.db.create_schema()
        async with self.db.session() as session:
            await seed_directory(
                session,
                self.directory,
                self.credentials,
                admin_password=self.settings.BOOTSTRAP_ADMIN_PASSWORD,
            )
        await self.audit.start()
        logger.info("Access context started")

    async def shutdown(self) -> None:
        await self.audit.stop()
        await self.db.dispose()
        logger.info("Access context stopped")


def get_context(request: Request) -> AccessContext:
    """FastAPI dependency returning the application's :class:`AccessContext`."""
    context: AccessContext = request.app.state.access
    return context


async def get_session(
    context: Annotated[AccessContext, Depends(get_context)],
) -> AsyncGenerator[AsyncSession]:
    """One session per request, shared by gates and the handler."""
    async with context.db.session() as session:
        yield session


# Type aliases for Annotated dependencies
Context = Annotated[AccessContext, Depends(get_context)]
DBSession = Annotated[AsyncSession, Depends(get_session)]
