from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import cast

from fastapi import Depends, HTTPException, Request, status
from redis.asyncio import Redis

from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.service import AuditService
from tradeconnect.auth.blacklist import TokenBlacklist
from tradeconnect.auth.rate_limiter import RateLimiter
from tradeconnect.auth.service import AuthService
from tradeconnect.auth.sessions import SessionService
from tradeconnect.auth.tokens import TokenService
from tradeconnect.core.config import Settings, get_settings
from tradeconnect.notifications import AuthNotifier
from tradeconnect.rbac.enums import ADMIN_ROLES, Permission
from tradeconnect.rbac.service import RoleService, can_access_user
from tradeconnect.system_config.service import SystemConfigService
from tradeconnect.two_factor.service import TwoFactorService
from tradeconnect.users.service import UserAdminService


@dataclass(frozen=True)
class CurrentUser:
    """Lightweight representation of the authenticated user."""

    id: uuid.UUID
    email: str
    session_id: uuid.UUID
    roles: tuple[str, ...] = ()
    permissions: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return any(role in ADMIN_ROLES for role in self.roles)

    def has_permission(self, permission: Permission | str) -> bool:
        return str(permission) in self.permissions


def _app_state(request: Request, name: str) -> object:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{name.replace('_', ' ').capitalize()} is not configured",
        )
    return value


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo.from_request(request)


def get_token_service(request: Request) -> TokenService:
    return cast(TokenService, _app_state(request, "token_service"))


def get_redis_client(request: Request) -> Redis:
    return cast(Redis, _app_state(request, "redis"))


def get_token_blacklist(request: Request) -> TokenBlacklist:
    return cast(TokenBlacklist, _app_state(request, "token_blacklist"))


def get_notifier(request: Request) -> AuthNotifier:
    return cast(AuthNotifier, _app_state(request, "notifier"))


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter_obj = getattr(request.app.state, "rate_limiter", None)
    if not isinstance(limiter_obj, RateLimiter):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Rate limiter is not configured",
        )
    return cast(RateLimiter, limiter_obj)


def get_audit_service(settings: Settings = Depends(get_settings)) -> AuditService:
    return AuditService(settings.audit)


def get_role_service(
    audit_service: AuditService = Depends(get_audit_service),
) -> RoleService:
    return RoleService(audit_service)


def get_session_service(
    settings: Settings = Depends(get_settings),
    blacklist: TokenBlacklist = Depends(get_token_blacklist),
    audit_service: AuditService = Depends(get_audit_service),
) -> SessionService:
    return SessionService(
        settings.auth, blacklist=blacklist, audit_service=audit_service
    )


def get_two_factor_service(
    settings: Settings = Depends(get_settings),
    redis: Redis = Depends(get_redis_client),
    notifier: AuthNotifier = Depends(get_notifier),
    audit_service: AuditService = Depends(get_audit_service),
) -> TwoFactorService:
    return TwoFactorService(
        settings.two_factor,
        redis=redis,
        notifier=notifier,
        audit_service=audit_service,
    )


def get_auth_service(
    settings: Settings = Depends(get_settings),
    token_service: TokenService = Depends(get_token_service),
    session_service: SessionService = Depends(get_session_service),
    two_factor_service: TwoFactorService = Depends(get_two_factor_service),
    role_service: RoleService = Depends(get_role_service),
    audit_service: AuditService = Depends(get_audit_service),
    notifier: AuthNotifier = Depends(get_notifier),
) -> AuthService:
    return AuthService(
        settings,
        token_service=token_service,
        session_service=session_service,
        two_factor_service=two_factor_service,
        role_service=role_service,
        audit_service=audit_service,
        notifier=notifier,
    )


def get_user_admin_service(
    settings: Settings = Depends(get_settings),
    role_service: RoleService = Depends(get_role_service),
    session_service: SessionService = Depends(get_session_service),
    audit_service: AuditService = Depends(get_audit_service),
) -> UserAdminService:
    return UserAdminService(
        role_service=role_service,
        session_service=session_service,
        audit_service=audit_service,
        default_role=settings.auth.default_role,
    )


def get_system_config_service(
    audit_service: AuditService = Depends(get_audit_service),
) -> SystemConfigService:
    return SystemConfigService(audit_service)


def get_current_user(request: Request) -> CurrentUser:
    current_user_obj = getattr(request.state, "current_user", None)
    if not isinstance(current_user_obj, CurrentUser):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "TOKEN_INVALID", "message": "Not authenticated"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return cast(CurrentUser, current_user_obj)


def get_optional_user(request: Request) -> CurrentUser | None:
    current_user_obj = getattr(request.state, "current_user", None)
    if isinstance(current_user_obj, CurrentUser):
        return current_user_obj
    return None


def _forbidden(message: str = "Insufficient permissions") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "PERMISSION_DENIED", "message": message},
    )


def require_permissions(
    *permissions: Permission,
) -> Callable[[CurrentUser], Awaitable[CurrentUser]]:
    async def _dependency(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        missing = [p for p in permissions if not current_user.has_permission(p)]
        if missing:
            raise _forbidden()
        return current_user

    return _dependency


def ensure_owner_or_admin(current_user: CurrentUser, target_id: uuid.UUID) -> None:
    if not can_access_user(
        actor_id=current_user.id,
        actor_roles=current_user.roles,
        target_id=target_id,
    ):
        raise _forbidden("You can only access your own resources")
