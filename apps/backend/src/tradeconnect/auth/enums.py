from __future__ import annotations

from enum import StrEnum


class LoginMethod(StrEnum):
    """How a session was established."""

    PASSWORD = "password"
    TWO_FACTOR = "2fa"


class DeviceType(StrEnum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    UNKNOWN = "unknown"


class SessionStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"


class SessionEndReason(StrEnum):
    """Why a session stopped being usable."""

    LOGOUT = "logout"
    USER_TERMINATED = "user_terminated"
    ADMIN_TERMINATED = "admin_terminated"
    SESSION_LIMIT = "session_limit"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET = "password_reset"
    TOKEN_REUSE = "token_reuse"
    ACCOUNT_DISABLED = "account_disabled"
    EXPIRED = "expired"
