from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest
from factories import (
    RecordingNotifier,
    admin_tokens,
    auth_headers,
    login,
    login_tokens,
    register_verified_user,
)
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradeconnect.audit.enums import AuditSeverity
from tradeconnect.audit.exceptions import AuditLogImmutableError
from tradeconnect.audit.models import AuditLog
from tradeconnect.audit.service import AuditService, calculate_risk_level


@pytest.mark.asyncio()
async def test_audit_entries_cannot_be_modified(async_session: AsyncSession) -> None:
    entry = AuditService().log(
        async_session, action="login_success", resource="auth", ip_address="10.0.0.1"
    )
    await async_session.commit()

    entry.ip_address = "10.0.0.2"
    with pytest.raises(AuditLogImmutableError):
        await async_session.flush()
    await async_session.rollback()


def test_risk_level_classification() -> None:
    assert calculate_risk_level(
        AuditLog(action="suspicious_activity", resource="auth")
    ) == "high"
    assert calculate_risk_level(
        AuditLog(
            action="login_failed",
            resource="auth",
            severity=AuditSeverity.MEDIUM,
            metadata={"attempts": 6},
        )
    ) == "high"
    assert calculate_risk_level(
        AuditLog(action="account_locked", resource="auth", severity=AuditSeverity.LOW)
    ) == "medium"
    assert calculate_risk_level(
        AuditLog(action="logout", resource="auth", severity=AuditSeverity.LOW)
    ) == "low"


@pytest.mark.asyncio()
async def test_listing_logs_requires_permission(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    user = await login_tokens(
        async_client, await register_verified_user(async_client, notifier)
    )
    admin = await admin_tokens(async_client, notifier, session_factory)

    forbidden = await async_client.get(
        "/api/v1/audit/logs", headers=auth_headers(user)
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"]["code"] == "PERMISSION_DENIED"

    response = await async_client.get(
        "/api/v1/audit/logs",
        params={"action": "login_success", "limit": 5},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["pagination"]["total"] == 2
    assert {item["action"] for item in payload["items"]} == {"login_success"}
    assert payload["summary"]["total_logs"] == 2
    assert payload["summary"]["security_events"] == 2


@pytest.mark.asyncio()
async def test_log_detail_includes_risk_level(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)
    await login(async_client, email, password="Wr0ngPassword")
    admin = await admin_tokens(async_client, notifier, session_factory)

    async with session_factory() as session:
        failed = await session.scalar(
            select(AuditLog).where(AuditLog.action == "login_failed")
        )
        assert failed is not None
        log_id = str(failed.id)

    response = await async_client.get(
        f"/api/v1/audit/logs/{log_id}", headers=auth_headers(admin)
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["log"]["id"] == log_id
    assert payload["log"]["description"] == "Failed sign-in attempt"
    assert payload["risk_level"] in {"low", "medium", "high"}

    missing = await async_client.get(
        "/api/v1/audit/logs/00000000-0000-0000-0000-000000000000",
        headers=auth_headers(admin),
    )
    assert missing.status_code == 404


@pytest.mark.asyncio()
async def test_stats_reports_overview_for_period(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    admin = await admin_tokens(async_client, notifier, session_factory)

    response = await async_client.get(
        "/api/v1/audit/stats", params={"period": "7d"}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["period"] == "7d"
    assert payload["overview"]["total_logs"] >= 3
    assert 0 <= payload["overview"]["success_rate"] <= 100
    actions = {item["action"] for item in payload["top_items"]["actions"]}
    assert {"user_registered", "login_success"} <= actions

    fallback = await async_client.get(
        "/api/v1/audit/stats", params={"period": "2y"}, headers=auth_headers(admin)
    )
    assert fallback.json()["period"] == "24h"


@pytest.mark.asyncio()
async def test_export_formats(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    admin = await admin_tokens(async_client, notifier, session_factory)

    as_csv = await async_client.post(
        "/api/v1/audit/export", json={"format": "csv"}, headers=auth_headers(admin)
    )
    assert as_csv.status_code == 200
    assert as_csv.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=" in as_csv.headers["content-disposition"]
    header = as_csv.text.splitlines()[0]
    assert '"action"' in header and '"user_email"' in header

    as_json = await async_client.post(
        "/api/v1/audit/export",
        json={"format": "json", "action": "user_registered"},
        headers=auth_headers(admin),
    )
    assert as_json.status_code == 200
    rows = json.loads(as_json.text)
    assert [row["action"] for row in rows] == ["user_registered"]

    unsupported = await async_client.post(
        "/api/v1/audit/export", json={"format": "xml"}, headers=auth_headers(admin)
    )
    assert unsupported.status_code == 400

    async with session_factory() as session:
        exported = await session.scalars(
            select(AuditLog).where(AuditLog.action == "audit_exported")
        )
        assert len(exported.all()) == 2


@pytest.mark.asyncio()
async def test_manager_cannot_export(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    manager = await admin_tokens(
        async_client, notifier, session_factory, role_name="manager"
    )

    listing = await async_client.get(
        "/api/v1/audit/logs", headers=auth_headers(manager)
    )
    assert listing.status_code == 200

    export = await async_client.post(
        "/api/v1/audit/export", json={"format": "csv"}, headers=auth_headers(manager)
    )
    assert export.status_code == 403


@pytest.mark.asyncio()
async def test_cleanup_keeps_critical_logs(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    admin = await admin_tokens(async_client, notifier, session_factory)
    long_ago = datetime.now(UTC) - timedelta(days=400)

    async with session_factory() as session:
        session.add_all(
            [
                AuditLog(
                    action="logout",
                    resource="auth",
                    severity=AuditSeverity.LOW,
                    created_at=long_ago,
                ),
                AuditLog(
                    action="security_alert",
                    resource="auth",
                    severity=AuditSeverity.CRITICAL,
                    created_at=long_ago,
                ),
            ]
        )
        await session.commit()

    preview = await async_client.post(
        "/api/v1/audit/cleanup",
        json={"days_to_keep": 365, "dry_run": True},
        headers=auth_headers(admin),
    )
    assert preview.status_code == 200
    assert preview.json()["would_delete_count"] == 1
    assert preview.json()["deleted_count"] == 0

    applied = await async_client.post(
        "/api/v1/audit/cleanup",
        json={"days_to_keep": 365, "dry_run": False},
        headers=auth_headers(admin),
    )
    assert applied.json()["deleted_count"] == 1

    async with session_factory() as session:
        remaining = await session.scalars(
            select(AuditLog.action).where(
                AuditLog.created_at < datetime.now(UTC) - timedelta(days=365)
            )
        )
        assert list(remaining.all()) == ["security_alert"]

    system_logs = await async_client.get(
        "/api/v1/audit/system-logs", headers=auth_headers(admin)
    )
    assert system_logs.status_code == 200
    items = system_logs.json()["items"]
    assert [item["action"] for item in items] == ["audit_cleanup"]
    assert items[0]["level"] == "info"


@pytest.mark.asyncio()
async def test_suspicious_activity_from_failed_logins(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)
    user = await login_tokens(async_client, email)
    admin = await admin_tokens(async_client, notifier, session_factory)
    user_id = user["user"]["id"]

    calm = await async_client.get(
        f"/api/v1/audit/suspicious/{user_id}", headers=auth_headers(admin)
    )
    assert calm.json()["is_suspicious"] is False

    for _ in range(3):
        await login(
            async_client, email, password="Wr0ngPassword", ip_address="198.51.100.7"
        )

    response = await async_client.get(
        f"/api/v1/audit/suspicious/{user_id}", headers=auth_headers(admin)
    )
    payload = response.json()
    assert payload["failed_logins"] == 3
    assert payload["different_ips"] == 2
    assert payload["is_suspicious"] is True


@pytest.mark.asyncio()
async def test_lockout_surfaces_in_security_views(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)
    for _ in range(5):
        await login(async_client, email, password="Wr0ngPassword")
    await login(async_client, email)
    admin = await admin_tokens(async_client, notifier, session_factory)

    critical = await async_client.get(
        "/api/v1/audit/critical-events", headers=auth_headers(admin)
    )
    assert critical.status_code == 200
    assert [event["action"] for event in critical.json()["events"]] == [
        "login_blocked"
    ]

    security = await async_client.get(
        "/api/v1/audit/security-logs", headers=auth_headers(admin)
    )
    summary = security.json()["summary"]
    assert summary["failed_logins"] == 5
    assert summary["account_locks"] == 1

    failures_only = await async_client.get(
        "/api/v1/audit/security-logs",
        params={"event_type": "login_failed"},
        headers=auth_headers(admin),
    )
    assert failures_only.json()["pagination"]["total"] == 5


@pytest.mark.asyncio()
async def test_system_logs_map_severity_to_level(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    admin = await admin_tokens(async_client, notifier, session_factory)

    async with session_factory() as session:
        session.add_all(
            [
                AuditLog(
                    action="maintenance_started",
                    resource="maintenance",
                    severity=AuditSeverity.LOW,
                    metadata={"window": "02:00"},
                ),
                AuditLog(
                    action="config_drift_detected",
                    resource="config",
                    severity=AuditSeverity.MEDIUM,
                ),
                AuditLog(
                    action="backup_failed",
                    resource="system",
                    severity=AuditSeverity.HIGH,
                ),
            ]
        )
        await session.commit()

    response = await async_client.get(
        "/api/v1/audit/system-logs", headers=auth_headers(admin)
    )
    assert response.status_code == 200
    levels = {item["action"]: item["level"] for item in response.json()["items"]}
    assert levels["maintenance_started"] == "info"
    assert levels["config_drift_detected"] == "warn"
    assert levels["backup_failed"] == "error"
    started = next(
        item
        for item in response.json()["items"]
        if item["action"] == "maintenance_started"
    )
    assert started["metadata"] == {"window": "02:00"}

    errors_only = await async_client.get(
        "/api/v1/audit/system-logs",
        params={"level": "error"},
        headers=auth_headers(admin),
    )
    assert errors_only.status_code == 200
    assert {item["level"] for item in errors_only.json()["items"]} == {"error"}
    assert "backup_failed" in {
        item["action"] for item in errors_only.json()["items"]
    }
