"""Sentry error tracking integration."""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from tradeconnect.core.config import SentrySettings

# Request fields that must not leave the process even with PII enabled.
_SCRUBBED_BODY_KEYS = frozenset(
    {
        "password",
        "confirm_password",
        "current_password",
        "new_password",
        "refresh_token",
        "token",
        "code",
    }
)


def configure_sentry(settings: SentrySettings, *, default_environment: str) -> bool:
    """Initialise the Sentry SDK; returns ``False`` when tracking is disabled."""
    if not settings.enabled or settings.dsn is None:
        return False

    sentry_sdk.init(
        dsn=settings.dsn.get_secret_value(),
        environment=settings.environment or default_environment,
        release=settings.release,
        sample_rate=settings.sample_rate,
        traces_sample_rate=settings.traces_sample_rate,
        send_default_pii=settings.send_default_pii,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            RedisIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        before_send=_before_send,
        before_breadcrumb=_before_breadcrumb,
        ignore_errors=settings.ignore_errors,
    )
    return True


def _before_send(
    event: dict[str, Any],
    hint: dict[str, Any] | None,
) -> dict[str, Any] | None:
    """Drop health check noise and scrub credentials from request bodies."""
    request = event.get("request", {})
    if request.get("url", "").endswith("/health"):
        return None

    data = request.get("data")
    if isinstance(data, dict):
        for key in _SCRUBBED_BODY_KEYS.intersection(data):
            data[key] = "[Filtered]"

    return event


def _before_breadcrumb(
    breadcrumb: dict[str, Any],
    hint: dict[str, Any] | None,
) -> dict[str, Any] | None:
    url = breadcrumb.get("data", {}).get("url", "")
    if breadcrumb.get("category") == "http" and "/health" in url:
        return None
    return breadcrumb


def add_sentry_context(user_id: str | None = None, **tags: Any) -> None:
    """Attach the authenticated user and extra tags to the current scope."""
    if user_id:
        sentry_sdk.set_user({"id": user_id})
    if tags:
        sentry_sdk.set_tags(tags)


def add_breadcrumb(
    category: str,
    message: str,
    level: str = "info",
    **data: Any,
) -> None:
    sentry_sdk.add_breadcrumb(
        category=category, message=message, level=level, data=data
    )
