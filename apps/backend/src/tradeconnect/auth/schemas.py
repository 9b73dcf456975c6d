from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from tradeconnect.auth.enums import DeviceType, LoginMethod, SessionStatus
from tradeconnect.auth.passwords import (
    MAX_PASSWORD_LENGTH,
    MIN_PASSWORD_LENGTH,
    password_strength_issues,
)
from tradeconnect.db.pagination import PaginationMeta


def _strong_password(value: str) -> str:
    issues = password_strength_issues(value)
    if issues:
        raise ValueError("Password " + ", ".join(issues))
    return value


class UserRead(BaseModel):
    id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    phone: str | None = None
    roles: list[str] = Field(validation_alias="role_names")
    is_active: bool
    is_verified: bool
    is_2fa_enabled: bool
    last_login_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(
        min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH
    )
    confirm_password: str = Field(max_length=MAX_PASSWORD_LENGTH)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=32)
    terms_accepted: bool = False
    marketing_accepted: bool = False

    _check_password = field_validator("password")(_strong_password)


class RegisterResponse(BaseModel):
    user: UserRead
    message: str = "Registration successful. Check your e-mail to verify the account."


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=16)


class EmailRequest(BaseModel):
    email: EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(max_length=MAX_PASSWORD_LENGTH)
    two_factor_code: str | None = Field(default=None, max_length=16)
    remember_me: bool = False


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    refresh_expires_in: int = Field(
        ..., description="Refresh token lifetime in seconds"
    )
    session_id: uuid.UUID
    user: UserRead


class RefreshRequest(BaseModel):
    refresh_token: str | None = Field(
        default=None, description="Optional refresh token override"
    )


class LogoutRequest(BaseModel):
    refresh_token: str | None = None


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=16)
    new_password: str = Field(
        min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH
    )
    confirm_password: str = Field(max_length=MAX_PASSWORD_LENGTH)

    _check_password = field_validator("new_password")(_strong_password)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(max_length=MAX_PASSWORD_LENGTH)
    new_password: str = Field(
        min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH
    )
    confirm_password: str = Field(max_length=MAX_PASSWORD_LENGTH)

    _check_password = field_validator("new_password")(_strong_password)


class MessageResponse(BaseModel):
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SessionRead(BaseModel):
    id: uuid.UUID
    ip_address: str | None
    user_agent: str | None
    device_type: DeviceType
    os: str | None
    browser: str | None
    login_method: LoginMethod
    remember_me: bool
    is_active: bool
    status: SessionStatus
    is_current: bool = False
    last_activity_at: datetime
    expires_at: datetime
    created_at: datetime
    revoked_at: datetime | None = None
    ended_reason: str | None = None


class SessionListResponse(BaseModel):
    sessions: list[SessionRead]
    total: int


class SessionHistoryResponse(BaseModel):
    items: list[SessionRead]
    pagination: PaginationMeta


class TerminateOthersResponse(BaseModel):
    terminated_count: int


class ForceTerminateRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class SuspiciousSessionsResponse(BaseModel):
    sessions: list[SessionRead]
    is_suspicious: bool
    risk_level: str


class CleanupSessionsResponse(BaseModel):
    cleaned_count: int
