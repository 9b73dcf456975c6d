from __future__ import annotations

import uuid
from collections.abc import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.enums import AuditAction, AuditSeverity
from tradeconnect.audit.service import AuditService
from tradeconnect.auth.exceptions import RoleNotFoundError
from tradeconnect.auth.models import User
from tradeconnect.rbac.enums import (
    ADMIN_ROLES,
    ROLE_LEVELS,
    ROLE_PERMISSIONS,
    Permission,
    UserRole,
)
from tradeconnect.rbac.models import PermissionModel, Role

logger = structlog.get_logger(__name__)


def _display_name(role: UserRole) -> str:
    return role.value.replace("_", " ").title()


def is_admin(roles: Iterable[str]) -> bool:
    return any(role in ADMIN_ROLES for role in roles)


def has_permission(user: User, permission: Permission | str) -> bool:
    return str(permission) in user.permission_names


def can_access_user(
    *, actor_id: uuid.UUID, actor_roles: Iterable[str], target_id: uuid.UUID
) -> bool:
    """Users may reach their own resources; admin roles may reach anyone's."""
    return actor_id == target_id or is_admin(actor_roles)


async def ensure_default_roles(session: AsyncSession) -> int:
    """Create missing built-in permissions and roles; return how many were added."""
    existing_permissions = {
        permission.name: permission
        for permission in (await session.scalars(select(PermissionModel))).all()
    }
    created = 0
    for permission in Permission:
        if permission.value in existing_permissions:
            continue
        model = PermissionModel(
            name=permission.value,
            resource=permission.resource,
            action=permission.value.split("_", 1)[0],
        )
        session.add(model)
        existing_permissions[permission.value] = model
        created += 1

    existing_roles = {
        role.name: role for role in (await session.scalars(select(Role))).all()
    }
    for role_enum in UserRole:
        if role_enum.value in existing_roles:
            continue
        session.add(
            Role(
                name=role_enum.value,
                display_name=_display_name(role_enum),
                level=ROLE_LEVELS[role_enum],
                is_system=True,
                permissions=[
                    existing_permissions[permission.value]
                    for permission in sorted(ROLE_PERMISSIONS[role_enum])
                ],
            )
        )
        created += 1

    if created:
        await session.commit()
        logger.info("rbac_defaults_seeded", created=created)
    return created


class RoleService:
    """Role lookups and audited role assignment."""

    def __init__(self, audit_service: AuditService) -> None:
        self._audit = audit_service

    async def list_roles(self, session: AsyncSession) -> list[Role]:
        result = await session.scalars(select(Role).order_by(Role.level.desc()))
        return list(result.all())

    async def get_role(self, session: AsyncSession, name: str) -> Role:
        role = await session.scalar(select(Role).where(Role.name == name))
        if role is None:
            raise RoleNotFoundError(f"Role '{name}' not found")
        return role

    async def assign_role(
        self,
        session: AsyncSession,
        *,
        user: User,
        role_name: str,
        actor_id: uuid.UUID | None,
        client: ClientInfo | None = None,
    ) -> bool:
        role = await self.get_role(session, role_name)
        if role.name in user.role_names:
            return False

        previous = user.role_names
        user.roles.append(role)
        self._audit.log(
            session,
            action=AuditAction.USER_ROLE_ASSIGNED,
            resource="user",
            resource_id=user.id,
            user_id=actor_id,
            old_values={"roles": previous},
            new_values={"roles": user.role_names},
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        return True

    async def revoke_role(
        self,
        session: AsyncSession,
        *,
        user: User,
        role_name: str,
        actor_id: uuid.UUID | None,
        client: ClientInfo | None = None,
    ) -> bool:
        role = await self.get_role(session, role_name)
        if role.name not in user.role_names:
            return False

        previous = user.role_names
        user.roles = [held for held in user.roles if held.name != role.name]
        self._audit.log(
            session,
            action=AuditAction.USER_ROLE_REVOKED,
            resource="user",
            resource_id=user.id,
            user_id=actor_id,
            old_values={"roles": previous},
            new_values={"roles": user.role_names},
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        return True
