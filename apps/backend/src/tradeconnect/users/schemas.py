from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from tradeconnect.audit.schemas import AuditLogRead
from tradeconnect.auth.passwords import (
    MAX_PASSWORD_LENGTH,
    MIN_PASSWORD_LENGTH,
    password_strength_issues,
)
from tradeconnect.auth.schemas import UserRead
from tradeconnect.db.pagination import PaginationMeta


class UserCreateRequest(BaseModel):
    email: EmailStr
    password: str = Field(
        min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH
    )
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=32)
    roles: list[str] = Field(default_factory=list)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        issues = password_strength_issues(value)
        if issues:
            raise ValueError("Password " + ", ".join(issues))
        return value


class UserUpdateRequest(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=32)
    is_active: bool | None = None
    is_verified: bool | None = None


class ProfileUpdateRequest(BaseModel):
    """Fields an account holder may change on their own record."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=32)


class UserAdminRead(UserRead):
    failed_login_attempts: int
    locked_until: datetime | None = None


class UserListResponse(BaseModel):
    items: list[UserAdminRead]
    pagination: PaginationMeta


class UserRoleResponse(BaseModel):
    user: UserAdminRead
    changed: bool


class UserActivityResponse(BaseModel):
    items: list[AuditLogRead]
    pagination: PaginationMeta
