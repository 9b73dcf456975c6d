from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.enums import AuditAction, AuditSeverity
from tradeconnect.audit.service import AuditService
from tradeconnect.system_config.defaults import DEFAULT_CONFIGS
from tradeconnect.system_config.enums import ConfigCategory
from tradeconnect.system_config.exceptions import (
    ConfigAlreadyExistsError,
    ConfigNotFoundError,
    SystemConfigError,
)
from tradeconnect.system_config.models import SystemConfig
from tradeconnect.system_config.schemas import ConfigCreate, ConfigUpdate
from tradeconnect.system_config.validation import validate_config_value

logger = structlog.get_logger(__name__)

# Fields an update may touch, in the order they are compared for the audit diff.
_UPDATABLE_FIELDS = ("value", "description", "is_public", "is_active", "metadata")


@dataclass
class BulkResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _snapshot(config: SystemConfig) -> dict[str, Any]:
    return {
        "value": config.value,
        "description": config.description,
        "is_public": config.is_public,
        "is_active": config.is_active,
        "metadata": config.metadata_dict,
    }


class SystemConfigService:
    """CRUD over ``system_configs`` with per-key validation and auditing."""

    def __init__(self, audit_service: AuditService) -> None:
        self._audit = audit_service

    async def _find(self, session: AsyncSession, key: str) -> SystemConfig | None:
        return await session.scalar(select(SystemConfig).where(SystemConfig.key == key))

    async def list_configs(
        self,
        session: AsyncSession,
        *,
        category: ConfigCategory | None = None,
        is_public: bool | None = None,
        include_inactive: bool = False,
        search: str | None = None,
    ) -> list[SystemConfig]:
        stmt = select(SystemConfig)
        if category is not None:
            stmt = stmt.where(SystemConfig.category == category)
        if is_public is not None:
            stmt = stmt.where(SystemConfig.is_public.is_(is_public))
        if not include_inactive:
            stmt = stmt.where(SystemConfig.is_active.is_(True))
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(func.lower(SystemConfig.key).like(pattern))
        stmt = stmt.order_by(SystemConfig.category, SystemConfig.key)
        result = await session.scalars(stmt)
        return list(result.all())

    async def public_configs(self, session: AsyncSession) -> dict[str, Any]:
        configs = await self.list_configs(session, is_public=True)
        return {config.key: config.value for config in configs}

    async def get(
        self, session: AsyncSession, key: str, *, include_inactive: bool = True
    ) -> SystemConfig:
        config = await self._find(session, key)
        if config is None or (not include_inactive and not config.is_active):
            raise ConfigNotFoundError(f"Configuration '{key}' not found")
        return config

    def _build(self, data: ConfigCreate, actor_id: uuid.UUID | None) -> SystemConfig:
        validate_config_value(data.key, data.value)
        return SystemConfig(
            key=data.key,
            value=data.value,
            category=data.category,
            description=data.description,
            is_public=data.is_public,
            is_active=data.is_active,
            metadata=data.metadata,
            created_by=actor_id,
            updated_by=actor_id,
        )

    def _apply_update(
        self, config: SystemConfig, data: ConfigUpdate, actor_id: uuid.UUID | None
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        changes = data.model_dump(exclude_unset=True)
        if "value" in changes:
            validate_config_value(config.key, changes["value"])

        before = _snapshot(config)
        old_values: dict[str, Any] = {}
        new_values: dict[str, Any] = {}
        for name in _UPDATABLE_FIELDS:
            if name not in changes or changes[name] == before[name]:
                continue
            if name != "value" and changes[name] is None:
                continue
            old_values[name] = before[name]
            new_values[name] = changes[name]
            if name == "metadata":
                config.meta_data = dict(changes[name])
            else:
                setattr(config, name, changes[name])
        if new_values:
            config.updated_by = actor_id
        return old_values, new_values

    async def create(
        self,
        session: AsyncSession,
        *,
        data: ConfigCreate,
        actor_id: uuid.UUID | None,
        client: ClientInfo | None = None,
    ) -> SystemConfig:
        if await self._find(session, data.key) is not None:
            raise ConfigAlreadyExistsError
        config = self._build(data, actor_id)
        session.add(config)
        await session.flush()
        self._audit.log(
            session,
            action=AuditAction.SYSTEM_CONFIG_CREATED,
            resource="config",
            resource_id=config.key,
            user_id=actor_id,
            new_values={"value": config.value, "category": config.category.value},
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        logger.info("system_config_created", key=config.key)
        return config

    async def update(
        self,
        session: AsyncSession,
        key: str,
        *,
        data: ConfigUpdate,
        actor_id: uuid.UUID | None,
        client: ClientInfo | None = None,
    ) -> SystemConfig:
        config = await self.get(session, key)
        old_values, new_values = self._apply_update(config, data, actor_id)
        if not new_values:
            return config

        self._audit.log(
            session,
            action=AuditAction.SYSTEM_CONFIG_UPDATED,
            resource="config",
            resource_id=config.key,
            user_id=actor_id,
            old_values=old_values,
            new_values=new_values,
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        logger.info("system_config_updated", key=key, changes=sorted(new_values))
        return config

    async def delete(
        self,
        session: AsyncSession,
        key: str,
        *,
        actor_id: uuid.UUID | None,
        client: ClientInfo | None = None,
    ) -> None:
        config = await self.get(session, key)
        self._audit.log(
            session,
            action=AuditAction.SYSTEM_CONFIG_DELETED,
            resource="config",
            resource_id=config.key,
            user_id=actor_id,
            old_values=_snapshot(config),
            severity=AuditSeverity.HIGH,
            client=client,
        )
        await session.delete(config)
        await session.commit()
        logger.info("system_config_deleted", key=key)

    async def bulk_update(
        self,
        session: AsyncSession,
        *,
        configs: list[ConfigCreate],
        actor_id: uuid.UUID | None,
        client: ClientInfo | None = None,
    ) -> BulkResult:
        """Create missing keys and update existing ones, reporting invalid entries."""
        result = BulkResult()
        for item in configs:
            existing = await self._find(session, item.key)
            try:
                if existing is None:
                    session.add(self._build(item, actor_id))
                    result.created.append(item.key)
                    continue
                update = ConfigUpdate(
                    value=item.value,
                    description=item.description,
                    is_public=item.is_public,
                    is_active=item.is_active,
                    metadata=item.metadata,
                )
                _, new_values = self._apply_update(existing, update, actor_id)
                if new_values:
                    result.updated.append(item.key)
            except SystemConfigError as exc:
                result.errors.append(f"{item.key}: {exc.message}")

        if result.created or result.updated:
            self._audit.log(
                session,
                action=AuditAction.SYSTEM_CONFIG_UPDATED,
                resource="config",
                user_id=actor_id,
                metadata={
                    "bulk": True,
                    "created": result.created,
                    "updated": result.updated,
                },
                severity=AuditSeverity.MEDIUM,
                client=client,
            )
            await session.commit()
        return result

    async def initialize_defaults(
        self,
        session: AsyncSession,
        *,
        actor_id: uuid.UUID | None,
        client: ClientInfo | None = None,
    ) -> list[str]:
        created: list[str] = []
        for default in DEFAULT_CONFIGS:
            if await self._find(session, default["key"]) is not None:
                continue
            session.add(self._build(ConfigCreate(**default), actor_id))
            created.append(default["key"])

        if created:
            self._audit.log(
                session,
                action=AuditAction.SYSTEM_CONFIG_INITIALIZED,
                resource="config",
                user_id=actor_id,
                metadata={"created": created},
                severity=AuditSeverity.MEDIUM,
                client=client or ClientInfo.system(),
            )
            await session.commit()
        return created

    async def stats(self, session: AsyncSession) -> dict[str, Any]:
        total = await session.scalar(select(func.count(SystemConfig.id)))
        active = await session.scalar(
            select(func.count(SystemConfig.id)).where(SystemConfig.is_active.is_(True))
        )
        public = await session.scalar(
            select(func.count(SystemConfig.id)).where(SystemConfig.is_public.is_(True))
        )
        rows = await session.execute(
            select(SystemConfig.category, func.count(SystemConfig.id))
            .where(SystemConfig.is_active.is_(True))
            .group_by(SystemConfig.category)
        )
        categories = {category.value: 0 for category in ConfigCategory}
        for category, count in rows.all():
            categories[str(category)] = int(count)

        latest = await session.scalar(
            select(SystemConfig).order_by(SystemConfig.updated_at.desc()).limit(1)
        )
        return {
            "total_configs": int(total or 0),
            "active_configs": int(active or 0),
            "public_configs": int(public or 0),
            "categories_count": categories,
            "last_updated": latest.updated_at if latest else None,
            "last_updated_by": latest.updated_by if latest else None,
        }
