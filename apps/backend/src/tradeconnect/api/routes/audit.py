from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.api.errors import domain_error_to_http
from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.enums import (
    AuditAction,
    AuditSeverity,
    AuditStatus,
    SystemLogLevel,
    severity_to_level,
)
from tradeconnect.audit.exceptions import AuditError
from tradeconnect.audit.export import streaming_export
from tradeconnect.audit.models import AuditLog
from tradeconnect.audit.schemas import (
    AuditCleanupRequest,
    AuditCleanupResponse,
    AuditExportRequest,
    AuditLogDetailResponse,
    AuditLogListResponse,
    AuditLogRead,
    CriticalEventsResponse,
    SuspiciousActivityResponse,
    SystemLogListResponse,
    SystemLogRead,
)
from tradeconnect.audit.service import (
    AuditFilters,
    AuditLogPage,
    AuditService,
    calculate_risk_level,
)
from tradeconnect.auth.dependencies import (
    CurrentUser,
    get_audit_service,
    get_client_info,
    require_permissions,
)
from tradeconnect.db.dependencies import get_db_session
from tradeconnect.db.pagination import PaginationParams
from tradeconnect.rbac.enums import Permission

router = APIRouter(prefix="/api/v1/audit", tags=["audit"])

_view_audit = require_permissions(Permission.VIEW_AUDIT_LOGS)
_export_audit = require_permissions(Permission.EXPORT_AUDIT_LOGS)
_manage_audit = require_permissions(Permission.MANAGE_AUDIT_LOGS)


def _log_to_read(log: AuditLog) -> AuditLogRead:
    return AuditLogRead.model_validate(log)


def _page_to_response(page: AuditLogPage) -> AuditLogListResponse:
    return AuditLogListResponse(
        items=[_log_to_read(log) for log in page.items],
        pagination=page.pagination,
        summary=page.summary,
    )


@router.get("/logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user_id: uuid.UUID | None = Query(default=None),
    action: str | None = Query(default=None),
    resource: str | None = Query(default=None),
    severity: AuditSeverity | None = Query(default=None),
    status: AuditStatus | None = Query(default=None),
    ip_address: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    _: CurrentUser = Depends(_view_audit),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
) -> AuditLogListResponse:
    filters = AuditFilters(
        user_id=user_id,
        action=action,
        resource=resource,
        severity=severity,
        status=status,
        ip_address=ip_address,
        start_date=start_date,
        end_date=end_date,
    )
    result = await audit_service.list_logs(
        session, filters=filters, params=PaginationParams(page=page, limit=limit)
    )
    return _page_to_response(result)


@router.get("/logs/{log_id}", response_model=AuditLogDetailResponse)
async def get_audit_log(
    log_id: uuid.UUID,
    _: CurrentUser = Depends(_view_audit),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
) -> AuditLogDetailResponse:
    try:
        detail = await audit_service.get_log(session, log_id)
    except AuditError as exc:
        raise domain_error_to_http(exc) from exc
    return AuditLogDetailResponse(
        log=_log_to_read(detail.log),
        related=[_log_to_read(log) for log in detail.related],
        risk_level=calculate_risk_level(detail.log),
    )


@router.get("/stats")
async def audit_stats(
    period: str = Query(default="24h"),
    _: CurrentUser = Depends(_view_audit),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
) -> dict[str, Any]:
    return await audit_service.stats(session, period=period)


@router.get("/critical-events", response_model=CriticalEventsResponse)
async def critical_events(
    hours: int = Query(default=24, ge=1, le=720),
    limit: int = Query(default=50, ge=1, le=500),
    _: CurrentUser = Depends(_view_audit),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
) -> CriticalEventsResponse:
    events = await audit_service.critical_events(session, hours=hours, limit=limit)
    return CriticalEventsResponse(
        hours=hours, events=[_log_to_read(log) for log in events]
    )


@router.get("/security-logs", response_model=AuditLogListResponse)
async def security_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    event_type: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    _: CurrentUser = Depends(_view_audit),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
) -> AuditLogListResponse:
    result = await audit_service.security_logs(
        session,
        params=PaginationParams(page=page, limit=limit),
        event_type=event_type,
        start_date=start_date,
        end_date=end_date,
    )
    return _page_to_response(result)


@router.get("/system-logs", response_model=SystemLogListResponse)
async def system_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    level: SystemLogLevel | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    _: CurrentUser = Depends(_view_audit),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
) -> SystemLogListResponse:
    result = await audit_service.system_logs(
        session,
        params=PaginationParams(page=page, limit=limit),
        level=level,
        start_date=start_date,
        end_date=end_date,
    )
    items = [
        SystemLogRead(
            **_log_to_read(log).model_dump(), level=severity_to_level(log.severity)
        )
        for log in result.items
    ]
    return SystemLogListResponse(items=items, pagination=result.pagination)


@router.get("/suspicious/{user_id}", response_model=SuspiciousActivityResponse)
async def suspicious_activity(
    user_id: uuid.UUID,
    hours: int = Query(default=1, ge=1, le=168),
    _: CurrentUser = Depends(_view_audit),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
) -> SuspiciousActivityResponse:
    report = await audit_service.detect_suspicious_activity(
        session, user_id=user_id, hours=hours
    )
    return SuspiciousActivityResponse(
        user_id=report.user_id,
        hours=report.hours,
        failed_logins=report.failed_logins,
        different_ips=report.different_ips,
        critical_events=report.critical_events,
        is_suspicious=report.is_suspicious,
    )


@router.post("/export")
async def export_audit_logs(
    payload: AuditExportRequest,
    current_user: CurrentUser = Depends(_export_audit),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> StreamingResponse:
    filters = AuditFilters(
        user_id=payload.user_id,
        action=payload.action,
        resource=payload.resource,
        severity=payload.severity,
        status=payload.status,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    try:
        result = await audit_service.export(
            session, export_format=payload.format, filters=filters
        )
    except AuditError as exc:
        raise domain_error_to_http(exc) from exc

    audit_service.log(
        session,
        action=AuditAction.AUDIT_EXPORTED,
        resource="audit",
        user_id=current_user.id,
        metadata={"format": result.format.value, "row_count": result.row_count},
        client=client,
    )
    await session.commit()
    return streaming_export(
        result.content, media_type=result.media_type, filename=result.filename
    )


@router.post("/cleanup", response_model=AuditCleanupResponse)
async def cleanup_audit_logs(
    payload: AuditCleanupRequest,
    _: CurrentUser = Depends(_manage_audit),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
) -> AuditCleanupResponse:
    result = await audit_service.cleanup(
        session, days_to_keep=payload.days_to_keep, dry_run=payload.dry_run
    )
    return AuditCleanupResponse(
        deleted_count=result.deleted_count,
        would_delete_count=result.would_delete_count,
        cutoff_date=result.cutoff_date,
        dry_run=result.dry_run,
    )
