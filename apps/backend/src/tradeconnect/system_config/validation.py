from __future__ import annotations

from collections.abc import Callable
from typing import Any

from tradeconnect.system_config.exceptions import InvalidConfigValueError

LANGUAGES = frozenset({"es", "en", "pt"})
CURRENCIES = frozenset({"GTQ", "USD", "EUR"})
NOTIFICATION_TYPES = frozenset({"email", "sms", "push", "in_app"})


def _number_between(low: int, high: int, message: str) -> Callable[[Any], None]:
    def _check(value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidConfigValueError(message)
        if not low <= value <= high:
            raise InvalidConfigValueError(message)

    return _check


def _language(value: Any) -> None:
    if value not in LANGUAGES:
        raise InvalidConfigValueError(
            f"Invalid language; allowed values: {', '.join(sorted(LANGUAGES))}"
        )


def _timezone(value: Any) -> None:
    if not isinstance(value, str) or "/" not in value:
        raise InvalidConfigValueError("Invalid timezone format")


def _subset_of(
    allowed: frozenset[str], label: str, *, non_empty: bool
) -> Callable[[Any], None]:
    def _check(value: Any) -> None:
        if not isinstance(value, list):
            raise InvalidConfigValueError(f"{label} values must be a list")
        if non_empty and not value:
            raise InvalidConfigValueError(f"At least one {label} is required")
        for item in value:
            if item not in allowed:
                raise InvalidConfigValueError(f"Invalid {label}: {item}")

    return _check


def _smtp_host(value: Any) -> None:
    if not isinstance(value, str) or len(value) < 3:
        raise InvalidConfigValueError("Invalid SMTP host")


_VALIDATORS: dict[str, Callable[[Any], None]] = {
    "system.language": _language,
    "system.timezone": _timezone,
    "security.session_timeout": _number_between(
        300, 86_400, "Session timeout must be between 300 and 86400 seconds"
    ),
    "security.max_login_attempts": _number_between(
        3, 10, "Login attempts must be between 3 and 10"
    ),
    "payment.supported_currencies": _subset_of(
        CURRENCIES, "currency", non_empty=True
    ),
    "notification.enabled_types": _subset_of(
        NOTIFICATION_TYPES, "notification type", non_empty=False
    ),
    "email.smtp_host": _smtp_host,
    "email.smtp_port": _number_between(1, 65_535, "Invalid SMTP port"),
}


def validate_config_value(key: str, value: Any) -> None:
    """Apply the rule registered for ``key``; unknown keys accept any value."""
    validator = _VALIDATORS.get(key)
    if validator is not None:
        validator(value)
