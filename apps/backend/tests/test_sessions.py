from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from factories import (
    RecordingNotifier,
    admin_tokens,
    auth_headers,
    login_tokens,
    register_verified_user,
)
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradeconnect.audit.models import AuditLog
from tradeconnect.auth.enums import SessionEndReason
from tradeconnect.auth.models import UserSession

IPHONE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)


@pytest.mark.asyncio()
async def test_list_sessions_marks_current_device(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    desktop = await login_tokens(async_client, email)
    phone = await login_tokens(async_client, email, user_agent=IPHONE_USER_AGENT)

    response = await async_client.get(
        "/api/v1/auth/sessions", headers=auth_headers(phone)
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 2

    by_id = {item["id"]: item for item in payload["sessions"]}
    assert by_id[phone["session_id"]]["is_current"] is True
    assert by_id[phone["session_id"]]["device_type"] == "mobile"
    assert by_id[phone["session_id"]]["os"] == "iOS"
    assert by_id[desktop["session_id"]]["is_current"] is False
    assert by_id[desktop["session_id"]]["browser"] == "Google Chrome"
    assert by_id[desktop["session_id"]]["status"] == "active"


@pytest.mark.asyncio()
async def test_session_cap_evicts_least_recent_session(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)
    sessions = [await login_tokens(async_client, email) for _ in range(10)]

    newest = await login_tokens(async_client, email)

    listing = await async_client.get(
        "/api/v1/auth/sessions", headers=auth_headers(newest)
    )
    assert listing.json()["total"] == 10

    oldest = sessions[0]
    evicted = await async_client.get(
        "/api/v1/auth/me", headers=auth_headers(oldest)
    )
    assert evicted.status_code == 401

    still_valid = await async_client.get(
        "/api/v1/auth/me", headers=auth_headers(sessions[1])
    )
    assert still_valid.status_code == 200

    async with session_factory() as session:
        record = await session.get(UserSession, uuid.UUID(oldest["session_id"]))
        assert record is not None
        assert record.ended_reason is SessionEndReason.SESSION_LIMIT
        logs = await session.scalars(
            select(AuditLog).where(AuditLog.action == "session_evicted")
        )
        assert [log.resource_id for log in logs.all()] == [oldest["session_id"]]


@pytest.mark.asyncio()
async def test_terminate_single_session(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    current = await login_tokens(async_client, email)
    other = await login_tokens(async_client, email)

    response = await async_client.delete(
        f"/api/v1/auth/sessions/{other['session_id']}",
        headers=auth_headers(current),
    )
    assert response.status_code == 200

    ended = await async_client.get("/api/v1/auth/me", headers=auth_headers(other))
    assert ended.status_code == 401

    again = await async_client.delete(
        f"/api/v1/auth/sessions/{other['session_id']}",
        headers=auth_headers(current),
    )
    assert again.status_code == 404
    assert again.json()["detail"]["code"] == "SESSION_NOT_FOUND"


@pytest.mark.asyncio()
async def test_cannot_terminate_another_users_session(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    alice = await login_tokens(
        async_client, await register_verified_user(async_client, notifier)
    )
    bob = await login_tokens(
        async_client, await register_verified_user(async_client, notifier)
    )

    response = await async_client.delete(
        f"/api/v1/auth/sessions/{bob['session_id']}", headers=auth_headers(alice)
    )
    assert response.status_code == 404

    untouched = await async_client.get("/api/v1/auth/me", headers=auth_headers(bob))
    assert untouched.status_code == 200


@pytest.mark.asyncio()
async def test_terminate_other_sessions_keeps_current(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    others = [await login_tokens(async_client, email) for _ in range(3)]
    current = await login_tokens(async_client, email)

    response = await async_client.post(
        "/api/v1/auth/sessions/terminate-others", headers=auth_headers(current)
    )
    assert response.status_code == 200
    assert response.json()["terminated_count"] == 3

    for tokens in others:
        me = await async_client.get("/api/v1/auth/me", headers=auth_headers(tokens))
        assert me.status_code == 401

    me = await async_client.get("/api/v1/auth/me", headers=auth_headers(current))
    assert me.status_code == 200


@pytest.mark.asyncio()
async def test_session_history_includes_ended_sessions(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    first = await login_tokens(async_client, email)
    await async_client.post(
        "/api/v1/auth/logout", json={}, headers=auth_headers(first)
    )
    current = await login_tokens(async_client, email)

    response = await async_client.get(
        "/api/v1/auth/sessions/history", headers=auth_headers(current)
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["pagination"]["total"] == 2
    statuses = {item["id"]: item["status"] for item in payload["items"]}
    assert statuses[first["session_id"]] == "terminated"
    assert statuses[current["session_id"]] == "active"


@pytest.mark.asyncio()
async def test_suspicious_sessions_from_many_addresses(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    home = await login_tokens(async_client, email, ip_address="10.0.0.1")
    await login_tokens(async_client, email, ip_address="10.0.0.1")

    calm = await async_client.get(
        "/api/v1/auth/sessions/suspicious", headers=auth_headers(home)
    )
    assert calm.json()["is_suspicious"] is False
    assert calm.json()["risk_level"] == "low"

    for address in ("198.51.100.7", "203.0.113.9", "192.0.2.44"):
        await login_tokens(async_client, email, ip_address=address)

    response = await async_client.get(
        "/api/v1/auth/sessions/suspicious", headers=auth_headers(home)
    )
    payload = response.json()
    assert payload["is_suspicious"] is True
    flagged = {item["ip_address"] for item in payload["sessions"]}
    assert "10.0.0.1" not in flagged
    assert len(payload["sessions"]) == 2


@pytest.mark.asyncio()
async def test_session_administration_requires_permission(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    user = await login_tokens(
        async_client, await register_verified_user(async_client, notifier)
    )
    admin = await admin_tokens(async_client, notifier, session_factory)

    forbidden = await async_client.get(
        "/api/v1/auth/sessions/stats", headers=auth_headers(user)
    )
    assert forbidden.status_code == 403

    stats = await async_client.get(
        "/api/v1/auth/sessions/stats", headers=auth_headers(admin)
    )
    assert stats.status_code == 200
    assert stats.json()["overview"]["active_sessions"] == 2

    force = await async_client.request(
        "DELETE",
        f"/api/v1/auth/sessions/admin/{user['session_id']}",
        json={"reason": "compromised device"},
        headers=auth_headers(admin),
    )
    assert force.status_code == 200

    me = await async_client.get("/api/v1/auth/me", headers=auth_headers(user))
    assert me.status_code == 401


@pytest.mark.asyncio()
async def test_cleanup_expired_sessions(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    user = await login_tokens(
        async_client, await register_verified_user(async_client, notifier)
    )
    admin = await admin_tokens(async_client, notifier, session_factory)

    async with session_factory() as session:
        record = await session.get(UserSession, uuid.UUID(user["session_id"]))
        assert record is not None
        record.expires_at = datetime.now(UTC) - timedelta(minutes=1)
        await session.commit()

    response = await async_client.post(
        "/api/v1/auth/sessions/cleanup", headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["cleaned_count"] == 1

    async with session_factory() as session:
        record = await session.get(UserSession, uuid.UUID(user["session_id"]))
        assert record is not None
        assert record.is_active is False
        assert record.ended_reason is SessionEndReason.EXPIRED
