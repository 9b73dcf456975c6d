from __future__ import annotations

from enum import StrEnum


class ConfigCategory(StrEnum):
    GENERAL = "general"
    SECURITY = "security"
    PAYMENT = "payment"
    NOTIFICATION = "notification"
    EMAIL = "email"
    INTEGRATION = "integration"
    UI = "ui"
    PERFORMANCE = "performance"
