from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.api.errors import domain_error_to_http
from tradeconnect.audit.context import ClientInfo
from tradeconnect.auth.dependencies import (
    CurrentUser,
    get_client_info,
    get_current_user,
    get_two_factor_service,
    require_permissions,
)
from tradeconnect.auth.exceptions import AuthError, UserNotFoundError
from tradeconnect.auth.models import User
from tradeconnect.auth.schemas import MessageResponse
from tradeconnect.core.config import Settings, get_settings
from tradeconnect.db.dependencies import get_db_session
from tradeconnect.rbac.enums import Permission
from tradeconnect.two_factor.schemas import (
    BackupCodesResponse,
    ForceDisableRequest,
    SendCodeResponse,
    TwoFactorCodeRequest,
    TwoFactorDisableRequest,
    TwoFactorSetupRequest,
    TwoFactorSetupResponse,
    TwoFactorStatsResponse,
    TwoFactorStatusResponse,
    TwoFactorValidationResponse,
    TwoFactorVerifyResponse,
)
from tradeconnect.two_factor.service import TwoFactorService

router = APIRouter(prefix="/api/v1/auth/2fa", tags=["two-factor"])

_manage_two_factor = require_permissions(Permission.MANAGE_TWO_FACTOR)


async def _load_user(session: AsyncSession, current_user: CurrentUser) -> User:
    user = await session.get(User, current_user.id)
    if user is None:
        raise domain_error_to_http(UserNotFoundError())
    return user


@router.post("/setup", response_model=TwoFactorSetupResponse)
async def setup_two_factor(
    payload: TwoFactorSetupRequest,
    current_user: CurrentUser = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> TwoFactorSetupResponse:
    user = await _load_user(session, current_user)
    try:
        result = await two_factor.setup(
            session,
            user=user,
            method=payload.method,
            phone_number=payload.phone_number,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc

    return TwoFactorSetupResponse(
        method=result.method,
        backup_codes=result.backup_codes,
        secret=result.secret,
        provisioning_uri=result.provisioning_uri,
        qr_code=result.qr_code,
        destination=result.destination,
    )


@router.post("/send-code", response_model=SendCodeResponse)
async def send_two_factor_code(
    current_user: CurrentUser = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> SendCodeResponse:
    user = await _load_user(session, current_user)
    try:
        destination = await two_factor.send_code(session, user=user)
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return SendCodeResponse(
        destination=destination, expires_in=settings.two_factor.code_ttl_seconds
    )


@router.post("/enable", response_model=MessageResponse)
async def enable_two_factor(
    payload: TwoFactorCodeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    user = await _load_user(session, current_user)
    try:
        await two_factor.enable(session, user=user, code=payload.code, client=client)
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return MessageResponse(message="Two-factor authentication enabled")


@router.post("/disable", response_model=MessageResponse)
async def disable_two_factor(
    payload: TwoFactorDisableRequest,
    current_user: CurrentUser = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    user = await _load_user(session, current_user)
    try:
        await two_factor.disable(
            session,
            user=user,
            password=payload.password,
            code=payload.code,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return MessageResponse(message="Two-factor authentication disabled")


@router.post("/verify", response_model=TwoFactorVerifyResponse)
async def verify_two_factor(
    payload: TwoFactorCodeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> TwoFactorVerifyResponse:
    try:
        source = await two_factor.verify(
            session, user_id=current_user.id, code=payload.code, client=client
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return TwoFactorVerifyResponse(verified=True, source=source)


@router.post("/backup-codes/regenerate", response_model=BackupCodesResponse)
async def regenerate_backup_codes(
    current_user: CurrentUser = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> BackupCodesResponse:
    user = await _load_user(session, current_user)
    try:
        codes = await two_factor.regenerate_backup_codes(
            session, user=user, client=client
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return BackupCodesResponse(backup_codes=codes)


@router.get("/status", response_model=TwoFactorStatusResponse)
async def two_factor_status(
    current_user: CurrentUser = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
) -> TwoFactorStatusResponse:
    status_data = await two_factor.status(session, user_id=current_user.id)
    return TwoFactorStatusResponse.model_validate(status_data)


@router.get("/validate", response_model=TwoFactorValidationResponse)
async def validate_two_factor(
    current_user: CurrentUser = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
) -> TwoFactorValidationResponse:
    report = await two_factor.validate_config(session, user_id=current_user.id)
    return TwoFactorValidationResponse.model_validate(report)


@router.get("/stats", response_model=TwoFactorStatsResponse)
async def two_factor_stats(
    _: CurrentUser = Depends(_manage_two_factor),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
) -> TwoFactorStatsResponse:
    return TwoFactorStatsResponse.model_validate(await two_factor.stats(session))


@router.post("/users/{user_id}/force-disable", response_model=MessageResponse)
async def force_disable_two_factor(
    user_id: uuid.UUID,
    payload: ForceDisableRequest,
    current_user: CurrentUser = Depends(_manage_two_factor),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    try:
        await two_factor.force_disable(
            session,
            user_id=user_id,
            admin_id=current_user.id,
            reason=payload.reason,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return MessageResponse(message="Two-factor authentication disabled for user")
