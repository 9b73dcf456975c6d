"""Translation of domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from tradeconnect.audit.exceptions import (
    AuditError,
    AuditLogNotFoundError,
    UnsupportedExportFormatError,
)
from tradeconnect.auth.exceptions import (
    AccountDisabledError,
    AccountLockedError,
    AccountNotVerifiedError,
    AuthError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidTokenError,
    PermissionDeniedError,
    RoleNotFoundError,
    SessionExpiredError,
    SessionNotFoundError,
    TokenExpiredError,
    TwoFactorAlreadyEnabledError,
    TwoFactorLockedError,
    TwoFactorRequiredError,
    UserNotFoundError,
)
from tradeconnect.system_config.exceptions import (
    ConfigAlreadyExistsError,
    ConfigNotFoundError,
    SystemConfigError,
)

DomainError = AuthError | AuditError | SystemConfigError

# Anything not listed maps to 400 through its base class.
_STATUS_BY_ERROR: dict[type[Exception], int] = {
    AuthError: status.HTTP_400_BAD_REQUEST,
    AuditError: status.HTTP_400_BAD_REQUEST,
    SystemConfigError: status.HTTP_400_BAD_REQUEST,
    EmailAlreadyRegisteredError: status.HTTP_409_CONFLICT,
    InvalidCredentialsError: status.HTTP_401_UNAUTHORIZED,
    TokenExpiredError: status.HTTP_401_UNAUTHORIZED,
    InvalidTokenError: status.HTTP_401_UNAUTHORIZED,
    SessionExpiredError: status.HTTP_401_UNAUTHORIZED,
    TwoFactorRequiredError: status.HTTP_401_UNAUTHORIZED,
    AccountNotVerifiedError: status.HTTP_403_FORBIDDEN,
    AccountDisabledError: status.HTTP_403_FORBIDDEN,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    AccountLockedError: status.HTTP_423_LOCKED,
    TwoFactorLockedError: status.HTTP_423_LOCKED,
    TwoFactorAlreadyEnabledError: status.HTTP_409_CONFLICT,
    ConfigAlreadyExistsError: status.HTTP_409_CONFLICT,
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    RoleNotFoundError: status.HTTP_404_NOT_FOUND,
    AuditLogNotFoundError: status.HTTP_404_NOT_FOUND,
    ConfigNotFoundError: status.HTTP_404_NOT_FOUND,
    UnsupportedExportFormatError: status.HTTP_400_BAD_REQUEST,
}


def error_detail(code: str, message: str) -> dict[str, str]:
    return {"code": code, "message": message}


def domain_error_to_http(exc: DomainError) -> HTTPException:
    status_code = next(
        _STATUS_BY_ERROR[cls] for cls in type(exc).__mro__ if cls in _STATUS_BY_ERROR
    )
    headers = None
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(
        status_code=status_code,
        detail=error_detail(exc.code, exc.message),
        headers=headers,
    )
