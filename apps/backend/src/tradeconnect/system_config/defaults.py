"""Settings seeded by ``SystemConfigService.initialize_defaults``."""

from __future__ import annotations

from typing import Any

from tradeconnect.system_config.enums import ConfigCategory

DEFAULT_CONFIGS: tuple[dict[str, Any], ...] = (
    {
        "key": "system.language",
        "value": "es",
        "category": ConfigCategory.GENERAL,
        "description": "Default interface language",
        "is_public": True,
    },
    {
        "key": "system.timezone",
        "value": "America/Guatemala",
        "category": ConfigCategory.GENERAL,
        "description": "Default timezone",
        "is_public": True,
    },
    {
        "key": "system.currency",
        "value": "GTQ",
        "category": ConfigCategory.GENERAL,
        "description": "Default currency",
        "is_public": True,
    },
    {
        "key": "security.session_timeout",
        "value": 3600,
        "category": ConfigCategory.SECURITY,
        "description": "Session expiry in seconds",
        "is_public": False,
    },
    {
        "key": "security.max_login_attempts",
        "value": 5,
        "category": ConfigCategory.SECURITY,
        "description": "Failed logins allowed before the account locks",
        "is_public": False,
    },
    {
        "key": "payment.supported_currencies",
        "value": ["GTQ", "USD"],
        "category": ConfigCategory.PAYMENT,
        "description": "Currencies accepted for payments",
        "is_public": True,
    },
    {
        "key": "notification.enabled_types",
        "value": ["email", "in_app"],
        "category": ConfigCategory.NOTIFICATION,
        "description": "Enabled notification channels",
        "is_public": False,
    },
)
