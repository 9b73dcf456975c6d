from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from tradeconnect.two_factor.enums import TwoFactorMethod, VerificationSource


class TwoFactorSetupRequest(BaseModel):
    method: TwoFactorMethod = TwoFactorMethod.TOTP
    phone_number: str | None = Field(default=None, max_length=32)


class TwoFactorSetupResponse(BaseModel):
    method: TwoFactorMethod
    backup_codes: list[str]
    secret: str | None = None
    provisioning_uri: str | None = None
    qr_code: str | None = None
    destination: str | None = None
    message: str = "Confirm the setup by submitting a code to /enable"


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(min_length=4, max_length=16)


class TwoFactorDisableRequest(BaseModel):
    password: str = Field(max_length=128)
    code: str | None = Field(default=None, max_length=16)


class TwoFactorVerifyResponse(BaseModel):
    verified: bool
    source: VerificationSource


class SendCodeResponse(BaseModel):
    destination: str
    expires_in: int


class BackupCodesResponse(BaseModel):
    backup_codes: list[str]


class TwoFactorStatusResponse(BaseModel):
    is_enabled: bool
    method: TwoFactorMethod | None
    last_used_at: datetime | None
    backup_codes_count: int
    is_locked: bool
    failed_attempts: int


class TwoFactorValidationResponse(BaseModel):
    is_configured: bool
    is_enabled: bool
    method: TwoFactorMethod | None = None
    has_backup_codes: bool = False
    is_locked: bool = False
    issues: list[str]


class TwoFactorUserRead(BaseModel):
    user_id: uuid.UUID
    method: TwoFactorMethod
    enabled_at: datetime | None


class TwoFactorStatsResponse(BaseModel):
    method_distribution: dict[str, int]
    total_users_with_2fa: int
    users_with_2fa: list[TwoFactorUserRead]


class ForceDisableRequest(BaseModel):
    reason: str = Field(min_length=3, max_length=500)
