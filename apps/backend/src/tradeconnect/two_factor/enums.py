from __future__ import annotations

from enum import StrEnum


class TwoFactorMethod(StrEnum):
    TOTP = "totp"
    SMS = "sms"
    EMAIL = "email"


class VerificationSource(StrEnum):
    """Which kind of code satisfied a verification."""

    TOTP = "totp"
    ONE_TIME_CODE = "one_time_code"
    BACKUP_CODE = "backup_code"
