from __future__ import annotations

from typing import ClassVar


class AuthError(Exception):
    """Base class for authentication related errors."""

    code: ClassVar[str] = "AUTH_ERROR"
    default_message: ClassVar[str] = "Authentication error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class EmailAlreadyRegisteredError(AuthError):
    """Raised when attempting to register an email that already exists."""

    code = "EMAIL_ALREADY_EXISTS"
    default_message = "Email already registered"


class PasswordMismatchError(AuthError):
    """Raised when a password and its confirmation differ."""

    code = "PASSWORD_MISMATCH"
    default_message = "Passwords do not match"


class TermsNotAcceptedError(AuthError):
    code = "TERMS_NOT_ACCEPTED"
    default_message = "Terms and conditions must be accepted"


class InvalidCredentialsError(AuthError):
    """Raised when credentials supplied by the client are invalid."""

    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class UserNotFoundError(AuthError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class AccountNotVerifiedError(AuthError):
    """Raised when a user attempts to authenticate without verifying their email."""

    code = "EMAIL_NOT_VERIFIED"
    default_message = "Email verification required"


class EmailAlreadyVerifiedError(AuthError):
    code = "EMAIL_ALREADY_VERIFIED"
    default_message = "Email is already verified"


class AccountDisabledError(AuthError):
    """Raised when an inactive account is used during authentication."""

    code = "ACCOUNT_DISABLED"
    default_message = "Account is disabled"


class AccountLockedError(AuthError):
    """Raised while an account is temporarily locked after failed logins."""

    code = "ACCOUNT_LOCKED"
    default_message = "Account temporarily locked. Try again later."


class VerificationTokenInvalidError(AuthError):
    """Raised when an email verification token is invalid, used or expired."""

    code = "TOKEN_INVALID"
    default_message = "Invalid or expired verification token"


class ResetTokenInvalidError(AuthError):
    """Raised when a password reset token is invalid, used or expired."""

    code = "TOKEN_INVALID"
    default_message = "Invalid or expired reset token"


class TokenExpiredError(AuthError):
    """Raised when a JWT has expired."""

    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class InvalidTokenError(AuthError):
    """Raised when a token is malformed or cannot be validated."""

    code = "TOKEN_INVALID"
    default_message = "Invalid token"


class SessionExpiredError(AuthError):
    """Raised when the session referenced by a token is no longer valid."""

    code = "SESSION_EXPIRED"
    default_message = "Session is no longer valid"


class SessionNotFoundError(AuthError):
    code = "SESSION_NOT_FOUND"
    default_message = "Session not found"


class TwoFactorRequiredError(AuthError):
    """Raised when a login needs a second factor that was not supplied."""

    code = "TWO_FACTOR_REQUIRED"
    default_message = "Two-factor verification code required"


class TwoFactorInvalidError(AuthError):
    code = "TWO_FACTOR_INVALID"
    default_message = "Invalid two-factor code"


class TwoFactorLockedError(AuthError):
    code = "TWO_FA_LOCKED"
    default_message = "Two-factor verification temporarily locked"


class TwoFactorAlreadyEnabledError(AuthError):
    code = "TWO_FA_ALREADY_ENABLED"
    default_message = "Two-factor authentication is already enabled"


class TwoFactorNotEnabledError(AuthError):
    code = "TWO_FA_NOT_ENABLED"
    default_message = "Two-factor authentication is not enabled"


class TwoFactorSetupRequiredError(AuthError):
    """Raised when enabling 2FA before a setup was generated."""

    code = "TWO_FA_NOT_CONFIGURED"
    default_message = "Two-factor setup has not been started"


class PhoneNumberRequiredError(AuthError):
    code = "PHONE_NOT_REGISTERED"
    default_message = "A phone number is required for SMS verification"


class PermissionDeniedError(AuthError):
    code = "PERMISSION_DENIED"
    default_message = "Insufficient permissions"


class RoleNotFoundError(AuthError):
    code = "ROLE_NOT_FOUND"
    default_message = "Role not found"
