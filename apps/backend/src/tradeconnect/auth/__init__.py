"""Authentication domain package."""

from .enums import DeviceType, LoginMethod, SessionEndReason, SessionStatus
from .models import PasswordResetToken, User, UserSession, VerificationToken

__all__ = [
    "DeviceType",
    "LoginMethod",
    "PasswordResetToken",
    "SessionEndReason",
    "SessionStatus",
    "User",
    "UserSession",
    "VerificationToken",
]
