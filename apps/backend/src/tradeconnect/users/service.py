from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.enums import AuditAction, AuditSeverity
from tradeconnect.audit.service import AuditService
from tradeconnect.auth.enums import SessionEndReason
from tradeconnect.auth.exceptions import EmailAlreadyRegisteredError, UserNotFoundError
from tradeconnect.auth.models import User
from tradeconnect.auth.passwords import hash_password
from tradeconnect.auth.sessions import SessionService
from tradeconnect.db.pagination import PaginationMeta, PaginationParams, paginate_query
from tradeconnect.rbac.models import Role
from tradeconnect.rbac.service import RoleService

logger = structlog.get_logger(__name__)

_PROFILE_FIELDS = ("first_name", "last_name", "phone", "is_active", "is_verified")
_SELF_SERVICE_FIELDS = ("first_name", "last_name", "phone")


@dataclass(frozen=True)
class UserFilters:
    search: str | None = None
    role: str | None = None
    is_active: bool | None = None


class UserAdminService:
    """Administrative user management; every mutation leaves an audit record."""

    def __init__(
        self,
        *,
        role_service: RoleService,
        session_service: SessionService,
        audit_service: AuditService,
        default_role: str,
    ) -> None:
        self._roles = role_service
        self._sessions = session_service
        self._audit = audit_service
        self._default_role = default_role

    async def list_users(
        self,
        session: AsyncSession,
        *,
        filters: UserFilters,
        params: PaginationParams,
    ) -> tuple[list[User], PaginationMeta]:
        stmt = select(User)
        if filters.search:
            pattern = f"%{filters.search.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    User.email.ilike(pattern),
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                )
            )
        if filters.role:
            stmt = stmt.where(User.roles.any(Role.name == filters.role))
        if filters.is_active is not None:
            stmt = stmt.where(User.is_active.is_(filters.is_active))
        stmt = stmt.order_by(User.created_at.desc())
        return await paginate_query(session, stmt, params)

    async def get_user(self, session: AsyncSession, user_id: uuid.UUID) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise UserNotFoundError
        return user

    async def create_user(
        self,
        session: AsyncSession,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: str | None,
        roles: list[str],
        actor_id: uuid.UUID,
        client: ClientInfo,
    ) -> User:
        normalized_email = email.strip().lower()
        existing = await session.scalar(
            select(User).where(User.email == normalized_email)
        )
        if existing is not None:
            raise EmailAlreadyRegisteredError

        role_models = [
            await self._roles.get_role(session, name)
            for name in (roles or [self._default_role])
        ]
        user = User(
            email=normalized_email,
            hashed_password=hash_password(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone,
            is_active=True,
            is_verified=True,
            roles=role_models,
        )
        session.add(user)
        await session.flush()

        self._audit.log(
            session,
            action=AuditAction.USER_CREATED,
            resource="user",
            resource_id=user.id,
            user_id=actor_id,
            new_values={"email": user.email, "roles": user.role_names},
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        logger.info("user_created", user_id=str(user.id), actor_id=str(actor_id))
        return user

    async def update_user(
        self,
        session: AsyncSession,
        user_id: uuid.UUID,
        *,
        changes: dict[str, Any],
        actor_id: uuid.UUID,
        client: ClientInfo,
    ) -> User:
        user = await self.get_user(session, user_id)
        old_values: dict[str, Any] = {}
        new_values: dict[str, Any] = {}
        for name in _PROFILE_FIELDS:
            if name not in changes or changes[name] == getattr(user, name):
                continue
            old_values[name] = getattr(user, name)
            new_values[name] = changes[name]
            setattr(user, name, changes[name])

        if not new_values:
            return user

        if new_values.get("is_active") is False:
            await self._sessions.end_all(
                session, user_id=user.id, reason=SessionEndReason.ACCOUNT_DISABLED
            )
        self._audit.log(
            session,
            action=AuditAction.USER_UPDATED,
            resource="user",
            resource_id=user.id,
            user_id=actor_id,
            old_values=old_values,
            new_values=new_values,
            client=client,
        )
        await session.commit()
        return user

    async def update_profile(
        self,
        session: AsyncSession,
        user_id: uuid.UUID,
        *,
        changes: dict[str, Any],
        client: ClientInfo,
    ) -> User:
        allowed = {
            name: value
            for name, value in changes.items()
            if name in _SELF_SERVICE_FIELDS and (value is not None or name == "phone")
        }
        return await self.update_user(
            session, user_id, changes=allowed, actor_id=user_id, client=client
        )

    async def deactivate_user(
        self,
        session: AsyncSession,
        user_id: uuid.UUID,
        *,
        actor_id: uuid.UUID,
        client: ClientInfo,
    ) -> User:
        """Soft-delete: the account is disabled and all of its sessions end."""
        user = await self.get_user(session, user_id)
        was_active = user.is_active
        user.is_active = False
        ended = await self._sessions.end_all(
            session, user_id=user.id, reason=SessionEndReason.ACCOUNT_DISABLED
        )
        self._audit.log(
            session,
            action=AuditAction.USER_DELETED,
            resource="user",
            resource_id=user.id,
            user_id=actor_id,
            old_values={"is_active": was_active},
            new_values={"is_active": False},
            metadata={"terminated_sessions": len(ended)},
            severity=AuditSeverity.HIGH,
            client=client,
        )
        await session.commit()
        logger.info("user_deactivated", user_id=str(user.id), actor_id=str(actor_id))
        return user

    async def unlock_user(
        self,
        session: AsyncSession,
        user_id: uuid.UUID,
        *,
        actor_id: uuid.UUID,
        client: ClientInfo,
    ) -> User:
        user = await self.get_user(session, user_id)
        previous = {
            "failed_login_attempts": user.failed_login_attempts,
            "locked_until": user.locked_until,
        }
        user.reset_failed_logins()
        self._audit.log(
            session,
            action=AuditAction.ACCOUNT_UNLOCKED,
            resource="user",
            resource_id=user.id,
            user_id=actor_id,
            old_values=previous,
            new_values={"failed_login_attempts": 0, "locked_until": None},
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        return user
