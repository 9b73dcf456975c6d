"""Tests for observability metrics."""

from __future__ import annotations

import pytest
from factories import RecordingNotifier, login, register_verified_user
from httpx import AsyncClient
from prometheus_client import REGISTRY

from tradeconnect.observability import metrics_service
from tradeconnect.observability.metrics import (
    ACCOUNT_LOCKOUTS_TOTAL,
    AUDIT_EVENTS_TOTAL,
    LOGIN_ATTEMPTS_TOTAL,
    RATE_LIMIT_REJECTIONS_TOTAL,
    SESSIONS_CREATED_TOTAL,
    SESSIONS_TERMINATED_TOTAL,
    TWO_FACTOR_VERIFICATIONS_TOTAL,
)


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0


def test_identity_metrics_defined() -> None:
    """Test that identity metrics are registered with the default registry."""
    for collector in (
        LOGIN_ATTEMPTS_TOTAL,
        SESSIONS_CREATED_TOTAL,
        SESSIONS_TERMINATED_TOTAL,
        TWO_FACTOR_VERIFICATIONS_TOTAL,
        ACCOUNT_LOCKOUTS_TOTAL,
        AUDIT_EVENTS_TOTAL,
        RATE_LIMIT_REJECTIONS_TOTAL,
    ):
        assert collector._name in REGISTRY._names_to_collectors


def test_terminated_sessions_ignore_empty_batches() -> None:
    labels = {"reason": "metrics_test"}
    before = _sample("auth_sessions_terminated_total", labels)

    metrics_service.record_sessions_terminated("metrics_test", 0)
    metrics_service.record_sessions_terminated("metrics_test", 3)

    assert _sample("auth_sessions_terminated_total", labels) == before + 3


@pytest.mark.asyncio()
async def test_login_outcomes_are_counted(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    success_before = _sample("auth_login_attempts_total", {"outcome": "success"})
    failed_before = _sample(
        "auth_login_attempts_total", {"outcome": "invalid_credentials"}
    )

    await login(async_client, email, password="Wr0ngPassword")
    await login(async_client, email)

    assert _sample("auth_login_attempts_total", {"outcome": "success"}) == (
        success_before + 1
    )
    assert _sample(
        "auth_login_attempts_total", {"outcome": "invalid_credentials"}
    ) == (failed_before + 1)
