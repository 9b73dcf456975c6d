from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.api.errors import domain_error_to_http
from tradeconnect.audit.context import ClientInfo
from tradeconnect.auth.dependencies import (
    CurrentUser,
    get_client_info,
    get_current_user,
    get_session_service,
    require_permissions,
)
from tradeconnect.auth.exceptions import AuthError
from tradeconnect.auth.models import UserSession
from tradeconnect.auth.schemas import (
    CleanupSessionsResponse,
    ForceTerminateRequest,
    MessageResponse,
    SessionHistoryResponse,
    SessionListResponse,
    SessionRead,
    SuspiciousSessionsResponse,
    TerminateOthersResponse,
)
from tradeconnect.auth.sessions import SessionService
from tradeconnect.db.dependencies import get_db_session
from tradeconnect.db.pagination import PaginationParams
from tradeconnect.rbac.enums import Permission

router = APIRouter(prefix="/api/v1/auth/sessions", tags=["sessions"])

_manage_sessions = require_permissions(Permission.MANAGE_SESSIONS)


def _session_to_read(record: UserSession, *, is_current: bool = False) -> SessionRead:
    return SessionRead(
        id=record.id,
        ip_address=record.ip_address,
        user_agent=record.user_agent,
        device_type=record.device_type,
        os=record.os,
        browser=record.browser,
        login_method=record.login_method,
        remember_me=record.remember_me,
        is_active=record.is_active,
        status=record.status(),
        is_current=is_current,
        last_activity_at=record.last_activity_at,
        expires_at=record.expires_at,
        created_at=record.created_at,
        revoked_at=record.revoked_at,
        ended_reason=record.ended_reason.value if record.ended_reason else None,
    )


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    current_user: CurrentUser = Depends(get_current_user),
    session_service: SessionService = Depends(get_session_service),
    session: AsyncSession = Depends(get_db_session),
) -> SessionListResponse:
    active = await session_service.list_active(
        session, user_id=current_user.id, current_session_id=current_user.session_id
    )
    sessions = [
        _session_to_read(record, is_current=is_current) for record, is_current in active
    ]
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.get("/history", response_model=SessionHistoryResponse)
async def session_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    current_user: CurrentUser = Depends(get_current_user),
    session_service: SessionService = Depends(get_session_service),
    session: AsyncSession = Depends(get_db_session),
) -> SessionHistoryResponse:
    items, meta = await session_service.history(
        session,
        user_id=current_user.id,
        params=PaginationParams(page=page, limit=limit),
        start_date=start_date,
        end_date=end_date,
    )
    return SessionHistoryResponse(
        items=[
            _session_to_read(record, is_current=record.id == current_user.session_id)
            for record in items
        ],
        pagination=meta,
    )


@router.post("/terminate-others", response_model=TerminateOthersResponse)
async def terminate_other_sessions(
    current_user: CurrentUser = Depends(get_current_user),
    session_service: SessionService = Depends(get_session_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> TerminateOthersResponse:
    count = await session_service.terminate_others(
        session,
        user_id=current_user.id,
        current_session_id=current_user.session_id,
        client=client,
    )
    return TerminateOthersResponse(terminated_count=count)


@router.get("/suspicious", response_model=SuspiciousSessionsResponse)
async def suspicious_sessions(
    current_user: CurrentUser = Depends(get_current_user),
    session_service: SessionService = Depends(get_session_service),
    session: AsyncSession = Depends(get_db_session),
) -> SuspiciousSessionsResponse:
    report = await session_service.detect_suspicious(session, user_id=current_user.id)
    return SuspiciousSessionsResponse(
        sessions=[_session_to_read(record) for record in report.sessions],
        is_suspicious=report.is_suspicious,
        risk_level=report.risk_level,
    )


@router.get("/stats")
async def session_stats(
    days: int = Query(default=30, ge=1, le=365),
    _: CurrentUser = Depends(_manage_sessions),
    session_service: SessionService = Depends(get_session_service),
    session: AsyncSession = Depends(get_db_session),
) -> dict[str, Any]:
    return await session_service.stats(session, days=days)


@router.post("/cleanup", response_model=CleanupSessionsResponse)
async def cleanup_sessions(
    _: CurrentUser = Depends(_manage_sessions),
    session_service: SessionService = Depends(get_session_service),
    session: AsyncSession = Depends(get_db_session),
) -> CleanupSessionsResponse:
    cleaned = await session_service.cleanup_expired(session)
    return CleanupSessionsResponse(cleaned_count=cleaned)


@router.delete("/admin/{session_id}", response_model=MessageResponse)
async def force_terminate_session(
    session_id: uuid.UUID,
    payload: ForceTerminateRequest | None = None,
    current_user: CurrentUser = Depends(_manage_sessions),
    session_service: SessionService = Depends(get_session_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    try:
        await session_service.force_terminate(
            session,
            session_id=session_id,
            admin_id=current_user.id,
            reason=payload.reason if payload is not None else None,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return MessageResponse(message="Session terminated")


@router.delete("/{session_id}", response_model=MessageResponse)
async def terminate_session(
    session_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    session_service: SessionService = Depends(get_session_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    try:
        await session_service.terminate(
            session, user_id=current_user.id, session_id=session_id, client=client
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return MessageResponse(message="Session terminated")
