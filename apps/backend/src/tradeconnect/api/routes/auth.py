from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal, TypedDict

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.api.errors import domain_error_to_http, error_detail
from tradeconnect.audit.context import ClientInfo
from tradeconnect.auth.dependencies import (
    CurrentUser,
    get_auth_service,
    get_client_info,
    get_current_user,
    get_optional_user,
    get_rate_limiter,
    get_token_service,
)
from tradeconnect.auth.exceptions import AuthError, TwoFactorRequiredError
from tradeconnect.auth.models import User
from tradeconnect.auth.rate_limiter import RateLimiter
from tradeconnect.auth.schemas import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenResponse,
    UserRead,
    VerifyEmailRequest,
)
from tradeconnect.auth.service import AuthResult, AuthService, RegistrationData
from tradeconnect.auth.tokens import TokenService
from tradeconnect.core.config import Settings, get_settings
from tradeconnect.db.dependencies import get_db_session

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

logger = structlog.get_logger("tradeconnect.auth")

_SILENT_EMAIL_MESSAGE = "If the e-mail is registered, instructions have been sent"


class _CookieKwargs(TypedDict, total=False):
    httponly: bool
    secure: bool
    samesite: Literal["lax", "strict", "none"]
    path: str
    domain: str


def _now() -> datetime:
    return datetime.now(UTC)


def _seconds_until(moment: datetime) -> int:
    return max(0, int((moment - _now()).total_seconds()))


def _user_to_read(user: User) -> UserRead:
    return UserRead.model_validate(user)


def _cookie_kwargs(settings: Settings) -> _CookieKwargs:
    kwargs: _CookieKwargs = {
        "httponly": True,
        "secure": settings.jwt.cookie_secure,
        "samesite": settings.jwt.cookie_samesite,
        "path": settings.jwt.cookie_path,
    }
    if settings.jwt.cookie_domain is not None:
        kwargs["domain"] = settings.jwt.cookie_domain
    return kwargs


def _set_auth_cookies(
    response: Response,
    settings: Settings,
    result: AuthResult,
) -> None:
    cookie_kwargs = _cookie_kwargs(settings)

    response.set_cookie(
        settings.jwt.access_cookie_name,
        result.tokens.access_token,
        max_age=_seconds_until(result.tokens.access_expires_at),
        **cookie_kwargs,
    )
    response.set_cookie(
        settings.jwt.refresh_cookie_name,
        result.tokens.refresh_token,
        max_age=_seconds_until(result.tokens.refresh_expires_at),
        **cookie_kwargs,
    )


def _clear_auth_cookies(response: Response, settings: Settings) -> None:
    cookie_kwargs = _cookie_kwargs(settings)

    response.set_cookie(settings.jwt.access_cookie_name, "", max_age=0, **cookie_kwargs)
    response.set_cookie(
        settings.jwt.refresh_cookie_name, "", max_age=0, **cookie_kwargs
    )


def _auth_result_to_response(result: AuthResult) -> TokenResponse:
    return TokenResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=_seconds_until(result.tokens.access_expires_at),
        refresh_expires_in=_seconds_until(result.tokens.refresh_expires_at),
        session_id=result.tokens.session_id,
        user=_user_to_read(result.user),
    )


def _refresh_token_from(
    request: Request, settings: Settings, override: str | None
) -> str | None:
    return override or request.cookies.get(settings.jwt.refresh_cookie_name)


@router.post(
    "/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED
)
async def register_user(
    payload: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> RegisterResponse:
    try:
        user = await auth_service.register(
            session,
            data=RegistrationData(
                email=payload.email,
                password=payload.password,
                confirm_password=payload.confirm_password,
                first_name=payload.first_name,
                last_name=payload.last_name,
                phone=payload.phone,
                terms_accepted=payload.terms_accepted,
                marketing_accepted=payload.marketing_accepted,
            ),
            client=client,
        )
    except AuthError as exc:
        logger.info("register_rejected", reason=exc.code)
        raise domain_error_to_http(exc) from exc

    return RegisterResponse(user=_user_to_read(user))


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    payload: VerifyEmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    try:
        await auth_service.verify_email(session, token=payload.token, client=client)
    except AuthError as exc:
        logger.info("verify_email_failed", token_suffix=payload.token[-6:])
        raise domain_error_to_http(exc) from exc

    return MessageResponse(message="Email verified")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    payload: EmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    await rate_limiter.check(
        "auth:resend_verification",
        payload.email,
        limit=settings.rate_limit.password_reset_attempts,
        window_seconds=settings.rate_limit.password_reset_window_seconds,
    )
    try:
        await auth_service.resend_verification(session, email=payload.email)
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc

    return MessageResponse(message=_SILENT_EMAIL_MESSAGE)


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    client: ClientInfo = Depends(get_client_info),
) -> TokenResponse:
    # Only failed attempts count towards the per-e-mail limit.
    await rate_limiter.check("auth:login", payload.email, increment=False)

    try:
        result = await auth_service.login(
            session,
            email=payload.email,
            password=payload.password,
            client=client,
            two_factor_code=payload.two_factor_code,
            remember_me=payload.remember_me,
        )
    except AuthError as exc:
        if not isinstance(exc, TwoFactorRequiredError):
            await rate_limiter.check("auth:login", payload.email)
        logger.info("login_failed", reason=exc.code, ip_address=client.ip_address)
        raise domain_error_to_http(exc) from exc

    await rate_limiter.reset("auth:login", payload.email)
    _set_auth_cookies(response, settings, result)
    return _auth_result_to_response(result)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    payload: RefreshRequest,
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    client: ClientInfo = Depends(get_client_info),
) -> TokenResponse:
    raw_token = _refresh_token_from(request, settings, payload.refresh_token)
    if raw_token is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail("TOKEN_INVALID", "Refresh token missing"),
        )

    try:
        result = await auth_service.refresh(
            session, refresh_token=raw_token, client=client
        )
    except AuthError as exc:
        _clear_auth_cookies(response, settings)
        raise domain_error_to_http(exc) from exc

    _set_auth_cookies(response, settings, result)
    return _auth_result_to_response(result)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    payload: LogoutRequest,
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    token_service: TokenService = Depends(get_token_service),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser | None = Depends(get_optional_user),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    session_id = current_user.session_id if current_user is not None else None
    if session_id is None:
        raw_token = _refresh_token_from(request, settings, payload.refresh_token)
        if raw_token is not None:
            try:
                session_id = token_service.decode_refresh_token(raw_token).session_id
            except AuthError:
                session_id = None

    if session_id is not None:
        await auth_service.logout(session, session_id=session_id, client=client)

    _clear_auth_cookies(response, settings)
    return MessageResponse(message="Logged out")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: EmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    await rate_limiter.check(
        "auth:password_reset",
        payload.email,
        limit=settings.rate_limit.password_reset_attempts,
        window_seconds=settings.rate_limit.password_reset_window_seconds,
    )
    try:
        await auth_service.forgot_password(
            session, email=payload.email, client=client
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc

    return MessageResponse(message=_SILENT_EMAIL_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    try:
        await auth_service.reset_password(
            session,
            token=payload.token,
            new_password=payload.new_password,
            confirm_password=payload.confirm_password,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc

    return MessageResponse(message="Password has been reset. Please sign in again.")


@router.post("/password/change", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(get_current_user),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    try:
        await auth_service.change_password(
            session,
            user_id=current_user.id,
            current_password=payload.current_password,
            new_password=payload.new_password,
            confirm_password=payload.confirm_password,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc

    _clear_auth_cookies(response, settings)
    return MessageResponse(message="Password changed. Please sign in again.")


@router.get("/me", response_model=UserRead)
async def get_me(
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> UserRead:
    user = await session.get(User, current_user.id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_detail("USER_NOT_FOUND", "User not found"),
        )
    return _user_to_read(user)
