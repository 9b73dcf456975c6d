from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a raw password (or any low-entropy secret) using Argon2."""

    return _hasher.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    """Return ``True`` if the provided secret matches the hash."""

    try:
        return _hasher.verify(hashed_password, password)
    except (VerificationError, InvalidHash):
        return False


def needs_rehash(hashed_password: str) -> bool:
    """Determine if the stored hash no longer meets the configured parameters."""

    try:
        return _hasher.check_needs_rehash(hashed_password)
    except InvalidHash:
        return True


def password_strength_issues(password: str) -> list[str]:
    """List the policy rules a candidate password breaks."""

    issues: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        issues.append(f"must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        issues.append(f"must be at most {MAX_PASSWORD_LENGTH} characters long")
    if not any(char.islower() for char in password):
        issues.append("must contain a lowercase letter")
    if not any(char.isupper() for char in password):
        issues.append("must contain an uppercase letter")
    if not any(char.isdigit() for char in password):
        issues.append("must contain a digit")
    return issues
