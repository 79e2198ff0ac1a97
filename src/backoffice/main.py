"""Main FastAPI application for the back-office API."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backoffice.admin.router import router as admin_router
from backoffice.auth.exceptions import BackofficeError
from backoffice.auth.router import router as auth_router
from backoffice.constants import APP_DESCRIPTION, APP_TITLE, APP_VERSION, Routes, ServiceName
from backoffice.dependencies import AccessContext
from backoffice.logging import configure_logging
from backoffice.middleware import RateLimitMiddleware, RequestIDMiddleware, SecurityHeadersMiddleware
from backoffice.settings import AppSettings, get_settings

logger = logging.getLogger(__name__)


class BackofficeApp:
    """Application container: middleware, routers, and error handling wired around one lifespan.

    The :class:`AccessContext` is built when the lifespan starts, so a missing
    ``SESSION_SECRET`` fails startup rather than import.
    """

    app: FastAPI

    def __init__(self, settings: AppSettings | None = None) -> None:
        self._settings = settings or get_settings()
        configure_logging(ServiceName.API, level=self._settings.LOG_LEVEL)
        self.app = FastAPI(
            title=APP_TITLE,
            description=APP_DESCRIPTION,
            version=APP_VERSION,
            lifespan=self._lifespan,
        )
        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routers()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncGenerator[None]:
        """Build and start the access context; flush and dispose on shutdown."""
        context = AccessContext.from_settings(self._settings)
        await context.startup()
        app.state.access = context
        try:
            yield
        finally:
            await context.shutdown()

    def _setup_middleware(self) -> None:
        settings = self._settings

        # Rate limiting
        self.app.add_middleware(RateLimitMiddleware, login_limit=settings.RATE_LIMIT_LOGIN_PER_MINUTE)

        # Security headers
        self.app.add_middleware(SecurityHeadersMiddleware)

        # Request-ID (generates/propagates X-Request-ID)
        self.app.add_middleware(RequestIDMiddleware)

        # CORS
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",") if o.strip()]
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _setup_exception_handlers(self) -> None:
        @self.app.exception_handler(BackofficeError)
        async def backoffice_error_handler(request: Request, exc: BackofficeError) -> JSONResponse:
            """Render domain errors as ``{"detail": ...}`` with their mapped status."""
            if exc.status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)

    def _setup_routers(self) -> None:
        self.app.include_router(auth_router, prefix=Routes.AUTH.prefix, tags=[Routes.AUTH.tag])
        self.app.include_router(admin_router, prefix=Routes.ADMIN.prefix, tags=[Routes.ADMIN.tag])

        @self.app.get(Routes.HEALTH)
        async def health_check() -> dict[str, str]:
            """Health check endpoint."""
            return {"status": "healthy"}


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Build a fresh application, e.g. one per test with its own settings."""
    return BackofficeApp(settings).app


_application = BackofficeApp()
app: FastAPI = _application.app
