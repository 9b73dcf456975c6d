from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.api.errors import domain_error_to_http
from tradeconnect.audit.context import ClientInfo
from tradeconnect.auth.dependencies import (
    CurrentUser,
    get_client_info,
    get_system_config_service,
    require_permissions,
)
from tradeconnect.auth.schemas import MessageResponse
from tradeconnect.db.dependencies import get_db_session
from tradeconnect.rbac.enums import Permission
from tradeconnect.system_config.enums import ConfigCategory
from tradeconnect.system_config.exceptions import SystemConfigError
from tradeconnect.system_config.schemas import (
    BulkConfigRequest,
    BulkConfigResponse,
    ConfigCreate,
    ConfigRead,
    ConfigStatsResponse,
    ConfigUpdate,
)
from tradeconnect.system_config.service import SystemConfigService

router = APIRouter(prefix="/api/v1/system", tags=["system"])

_view_config = require_permissions(Permission.VIEW_SYSTEM_CONFIG)
_manage_config = require_permissions(Permission.MANAGE_SYSTEM_CONFIG)


@router.get("/config/public")
async def public_configs(
    config_service: SystemConfigService = Depends(get_system_config_service),
    session: AsyncSession = Depends(get_db_session),
) -> dict[str, Any]:
    return await config_service.public_configs(session)


@router.get("/config/stats", response_model=ConfigStatsResponse)
async def config_stats(
    _: CurrentUser = Depends(_view_config),
    config_service: SystemConfigService = Depends(get_system_config_service),
    session: AsyncSession = Depends(get_db_session),
) -> ConfigStatsResponse:
    return ConfigStatsResponse(**await config_service.stats(session))


@router.get("/config", response_model=list[ConfigRead])
async def list_configs(
    category: ConfigCategory | None = Query(default=None),
    is_public: bool | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    search: str | None = Query(default=None, max_length=100),
    _: CurrentUser = Depends(_view_config),
    config_service: SystemConfigService = Depends(get_system_config_service),
    session: AsyncSession = Depends(get_db_session),
) -> list[ConfigRead]:
    configs = await config_service.list_configs(
        session,
        category=category,
        is_public=is_public,
        include_inactive=include_inactive,
        search=search,
    )
    return [ConfigRead.model_validate(config) for config in configs]


@router.post("/config", response_model=ConfigRead, status_code=status.HTTP_201_CREATED)
async def create_config(
    payload: ConfigCreate,
    current_user: CurrentUser = Depends(_manage_config),
    config_service: SystemConfigService = Depends(get_system_config_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> ConfigRead:
    try:
        config = await config_service.create(
            session, data=payload, actor_id=current_user.id, client=client
        )
    except SystemConfigError as exc:
        raise domain_error_to_http(exc) from exc
    return ConfigRead.model_validate(config)


@router.post("/config/bulk", response_model=BulkConfigResponse)
async def bulk_update_configs(
    payload: BulkConfigRequest,
    current_user: CurrentUser = Depends(_manage_config),
    config_service: SystemConfigService = Depends(get_system_config_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> BulkConfigResponse:
    result = await config_service.bulk_update(
        session, configs=payload.configs, actor_id=current_user.id, client=client
    )
    return BulkConfigResponse(
        created=result.created, updated=result.updated, errors=result.errors
    )


@router.post("/config/initialize", response_model=BulkConfigResponse)
async def initialize_configs(
    current_user: CurrentUser = Depends(_manage_config),
    config_service: SystemConfigService = Depends(get_system_config_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> BulkConfigResponse:
    created = await config_service.initialize_defaults(
        session, actor_id=current_user.id, client=client
    )
    return BulkConfigResponse(created=created, updated=[], errors=[])


@router.get("/config/{key}", response_model=ConfigRead)
async def get_config(
    key: str,
    _: CurrentUser = Depends(_view_config),
    config_service: SystemConfigService = Depends(get_system_config_service),
    session: AsyncSession = Depends(get_db_session),
) -> ConfigRead:
    try:
        config = await config_service.get(session, key)
    except SystemConfigError as exc:
        raise domain_error_to_http(exc) from exc
    return ConfigRead.model_validate(config)


@router.put("/config/{key}", response_model=ConfigRead)
async def update_config(
    key: str,
    payload: ConfigUpdate,
    current_user: CurrentUser = Depends(_manage_config),
    config_service: SystemConfigService = Depends(get_system_config_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> ConfigRead:
    try:
        config = await config_service.update(
            session, key, data=payload, actor_id=current_user.id, client=client
        )
    except SystemConfigError as exc:
        raise domain_error_to_http(exc) from exc
    return ConfigRead.model_validate(config)


@router.delete("/config/{key}", response_model=MessageResponse)
async def delete_config(
    key: str,
    current_user: CurrentUser = Depends(_manage_config),
    config_service: SystemConfigService = Depends(get_system_config_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    try:
        await config_service.delete(
            session, key, actor_id=current_user.id, client=client
        )
    except SystemConfigError as exc:
        raise domain_error_to_http(exc) from exc
    return MessageResponse(message=f"Configuration '{key}' deleted")
