"""Login, logout, and current-user endpoints (class-based router)."""

import logging

from fastapi import APIRouter, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.schemas import AuditRecord
from backoffice.auth.dependencies import CurrentPrincipal
from backoffice.auth.exceptions import AuthenticationError, BackofficeError
from backoffice.auth.schemas import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    UserPermissionsResponse,
    UserPublic,
)
from backoffice.constants import SESSION_COOKIE_NAME, AuditAction, AuditResource, Routes
from backoffice.db.models import User
from backoffice.dependencies import AccessContext, Context, DBSession

logger = logging.getLogger(__name__)


class AuthRouter:
    """Class-based router for the login/logout flow and the caller's own record."""

    def __init__(self) -> None:
        self.router = APIRouter()
        self.router.add_api_route(Routes.LOGIN, self.login, methods=["POST"], response_model=LoginResponse)
        self.router.add_api_route("/logout", self.logout, methods=["POST"], response_model=MessageResponse)
        self.router.add_api_route("/register", self.register, methods=["POST"], response_model=MessageResponse)
        self.router.add_api_route("/user", self.current_user, methods=["GET"], response_model=UserPublic)
        self.router.add_api_route(
            "/user/permissions",
            self.current_permissions,
            methods=["GET"],
            response_model=UserPermissionsResponse,
        )

    async def login(
        self,
        request: Request,
        response: Response,
        body: LoginRequest,
        context: Context,
        session: DBSession,
    ) -> LoginResponse:
        """Verify credentials, open a cookie session, and issue a bearer token."""
        user = await context.directory.get_user_by_username(session, body.username)
        authenticated = (
            user is not None
            and user.is_active
            and await self._check_password(context, session, user, body.password)
        )
        if not authenticated or user is None:
            context.audit.record(
                AuditRecord.from_request(
                    request,
                    AuditAction.LOGIN_FAILED,
                    AuditResource.AUTH,
                    False,
                    user_id=user.id if user else None,
                    actor_name=body.username,
                    error_message="Invalid username or password",
                )
            )
            logger.warning("Failed login for '%s'", body.username)
            raise AuthenticationError("Invalid username or password")

        await context.directory.touch_last_login(session, user.id)
        permissions = await context.directory.get_permission_names(session, user.id)
        roles = await context.directory.get_role_names(session, user.id)
        token = context.tokens.issue(user, permissions)
        context.sessions.purge_expired()
        context.sessions.set_cookie(response, context.sessions.open(user.id))

        context.audit.record(
            AuditRecord.from_request(
                request, AuditAction.LOGIN, AuditResource.AUTH, True, user_id=user.id, actor_name=user.username
            )
        )
        logger.info("User '%s' logged in", user.username)
        return LoginResponse(user=UserPublic.model_validate(user), token=token, permissions=permissions, roles=roles)

    async def logout(self, request: Request, response: Response, context: Context) -> MessageResponse:
        """End the cookie session. Bearer tokens stay valid until they expire."""
        cookie = request.cookies.get(SESSION_COOKIE_NAME)
        if cookie:
            user_id = context.sessions.resolve(cookie)
            if context.sessions.close(cookie):
                context.audit.record(
                    AuditRecord.from_request(request, AuditAction.LOGOUT, AuditResource.AUTH, True, user_id=user_id)
                )
        context.sessions.delete_cookie(response)
        return MessageResponse(message="Logged out")

    async def register(self) -> MessageResponse:
        """Accounts are created by administrators only."""
        raise BackofficeError("Self-registration is disabled. Contact an administrator.", status_code=403)

    async def current_user(self, principal: CurrentPrincipal, context: Context, session: DBSession) -> UserPublic:
        user = await context.directory.get_user_or_raise(session, principal.user_id)
        return UserPublic.model_validate(user)

    async def current_permissions(
        self,
        principal: CurrentPrincipal,
        context: Context,
        session: DBSession,
    ) -> UserPermissionsResponse:
        """Resolve from the directory, not the token, so the UI sees revocations immediately."""
        return UserPermissionsResponse(
            permissions=await context.directory.get_permission_names(session, principal.user_id),
            roles=await context.directory.get_role_names(session, principal.user_id),
        )

    @staticmethod
    async def _check_password(context: AccessContext, session: AsyncSession, user: User, password: str) -> bool:
        if context.credentials.is_bootstrap_sentinel(user.password_hash):
            enabled = (
                context.settings.LEGACY_BOOTSTRAP_LOGIN_ENABLED
                and not await context.directory.has_rotated_admin_credential(session)
            )
            return context.credentials.verify_bootstrap(password, user.password_hash, enabled=enabled)
        return await context.credentials.verify(password, user.password_hash)


_instance = AuthRouter()
router = _instance.router
