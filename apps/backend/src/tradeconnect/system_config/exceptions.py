from __future__ import annotations

from typing import ClassVar


class SystemConfigError(Exception):
    """Base class for system configuration errors."""

    code: ClassVar[str] = "SYSTEM_CONFIG_ERROR"
    default_message: ClassVar[str] = "System configuration error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigNotFoundError(SystemConfigError):
    code = "CONFIG_NOT_FOUND"
    default_message = "Configuration not found"


class ConfigAlreadyExistsError(SystemConfigError):
    code = "CONFIG_ALREADY_EXISTS"
    default_message = "A configuration with this key already exists"


class InvalidConfigValueError(SystemConfigError):
    """Raised when a value breaks the rules of its key or category."""

    code = "VALIDATION_ERROR"
    default_message = "Invalid configuration value"
