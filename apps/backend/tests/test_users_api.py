from __future__ import annotations

from typing import Any

import pytest
from factories import (
    STRONG_PASSWORD,
    RecordingNotifier,
    admin_tokens,
    auth_headers,
    login,
    login_tokens,
    register_verified_user,
    unique_email,
)
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradeconnect.audit.models import AuditLog


async def _create_user(
    client: AsyncClient, admin: dict[str, Any], **overrides: Any
) -> dict[str, Any]:
    payload = {
        "email": unique_email("staff"),
        "password": STRONG_PASSWORD,
        "first_name": "Luis",
        "last_name": "Garcia",
        **overrides,
    }
    response = await client.post(
        "/api/v1/users", json=payload, headers=auth_headers(admin)
    )
    assert response.status_code == 201, response.text
    return dict(response.json())


@pytest.mark.asyncio()
async def test_admin_creates_and_lists_users(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    admin = await admin_tokens(async_client, notifier, session_factory)

    created = await _create_user(async_client, admin, roles=["operator"])
    assert created["roles"] == ["operator"]
    assert created["is_verified"] is True
    assert created["failed_login_attempts"] == 0

    duplicate = await async_client.post(
        "/api/v1/users",
        json={
            "email": created["email"],
            "password": STRONG_PASSWORD,
            "first_name": "Luis",
            "last_name": "Garcia",
        },
        headers=auth_headers(admin),
    )
    assert duplicate.status_code == 409

    unknown_role = await async_client.post(
        "/api/v1/users",
        json={
            "email": unique_email("staff"),
            "password": STRONG_PASSWORD,
            "first_name": "Luis",
            "last_name": "Garcia",
            "roles": ["wizard"],
        },
        headers=auth_headers(admin),
    )
    assert unknown_role.status_code == 404

    by_role = await async_client.get(
        "/api/v1/users", params={"role": "operator"}, headers=auth_headers(admin)
    )
    assert by_role.status_code == 200
    assert [item["id"] for item in by_role.json()["items"]] == [created["id"]]

    by_search = await async_client.get(
        "/api/v1/users",
        params={"search": created["email"].upper()},
        headers=auth_headers(admin),
    )
    assert by_search.json()["pagination"]["total"] == 1

    # Freshly created accounts can sign in straight away.
    await login_tokens(async_client, created["email"])


@pytest.mark.asyncio()
async def test_update_records_changed_fields(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    admin = await admin_tokens(async_client, notifier, session_factory)
    created = await _create_user(async_client, admin)

    response = await async_client.put(
        f"/api/v1/users/{created['id']}",
        json={"first_name": "Lucia", "last_name": "Garcia"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    assert response.json()["first_name"] == "Lucia"

    async with session_factory() as session:
        entry = await session.scalar(
            select(AuditLog).where(
                AuditLog.action == "user_updated",
                AuditLog.resource_id == created["id"],
            )
        )
        assert entry is not None
        assert entry.old_values == {"first_name": "Luis"}
        assert entry.new_values == {"first_name": "Lucia"}


@pytest.mark.asyncio()
async def test_deactivate_user_ends_sessions(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)
    user = await login_tokens(async_client, email)
    admin = await admin_tokens(async_client, notifier, session_factory)

    response = await async_client.delete(
        f"/api/v1/users/{user['user']['id']}", headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    me = await async_client.get("/api/v1/auth/me", headers=auth_headers(user))
    assert me.status_code == 401

    disabled = await login(async_client, email)
    assert disabled.status_code == 403
    assert disabled.json()["detail"]["code"] == "ACCOUNT_DISABLED"


@pytest.mark.asyncio()
async def test_unlock_restores_access(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)
    for _ in range(5):
        await login(async_client, email, password="Wr0ngPassword")
    assert (await login(async_client, email)).status_code == 423
    admin = await admin_tokens(async_client, notifier, session_factory)

    listing = await async_client.get(
        "/api/v1/users", params={"search": email}, headers=auth_headers(admin)
    )
    target = listing.json()["items"][0]
    assert target["failed_login_attempts"] == 5
    assert target["locked_until"] is not None

    response = await async_client.post(
        f"/api/v1/users/{target['id']}/unlock", headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["failed_login_attempts"] == 0
    assert response.json()["locked_until"] is None

    await login_tokens(async_client, email)


@pytest.mark.asyncio()
async def test_assign_and_revoke_roles(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    admin = await admin_tokens(async_client, notifier, session_factory)
    created = await _create_user(async_client, admin)
    url = f"/api/v1/users/{created['id']}/roles"

    assigned = await async_client.post(
        f"{url}/manager", headers=auth_headers(admin)
    )
    assert assigned.status_code == 200
    assert assigned.json()["changed"] is True
    assert sorted(assigned.json()["user"]["roles"]) == ["manager", "user"]

    again = await async_client.post(f"{url}/manager", headers=auth_headers(admin))
    assert again.json()["changed"] is False

    revoked = await async_client.delete(
        f"{url}/manager", headers=auth_headers(admin)
    )
    assert revoked.json()["changed"] is True
    assert revoked.json()["user"]["roles"] == ["user"]

    missing = await async_client.delete(
        f"{url}/manager", headers=auth_headers(admin)
    )
    assert missing.json()["changed"] is False

    unknown = await async_client.post(f"{url}/wizard", headers=auth_headers(admin))
    assert unknown.status_code == 404
    assert unknown.json()["detail"]["code"] == "ROLE_NOT_FOUND"


@pytest.mark.asyncio()
async def test_regular_users_only_reach_their_own_records(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    alice = await login_tokens(
        async_client, await register_verified_user(async_client, notifier)
    )
    bob = await login_tokens(
        async_client, await register_verified_user(async_client, notifier)
    )

    listing = await async_client.get("/api/v1/users", headers=auth_headers(alice))
    assert listing.status_code == 403

    own = await async_client.get(
        f"/api/v1/users/{alice['user']['id']}", headers=auth_headers(alice)
    )
    assert own.status_code == 200

    other = await async_client.get(
        f"/api/v1/users/{bob['user']['id']}", headers=auth_headers(alice)
    )
    assert other.status_code == 403

    trail = await async_client.get(
        f"/api/v1/users/{alice['user']['id']}/audit",
        params={"action": "login_success"},
        headers=auth_headers(alice),
    )
    assert trail.status_code == 200
    assert [item["action"] for item in trail.json()["items"]] == ["login_success"]

    foreign_trail = await async_client.get(
        f"/api/v1/users/{bob['user']['id']}/audit", headers=auth_headers(alice)
    )
    assert foreign_trail.status_code == 403


@pytest.mark.asyncio()
async def test_users_edit_their_own_profile(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    user = await login_tokens(
        async_client, await register_verified_user(async_client, notifier)
    )
    user_id = user["user"]["id"]
    original_first_name = user["user"]["first_name"]

    response = await async_client.put(
        "/api/v1/users/profile",
        json={"first_name": "Marta", "phone": "+50255551234"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert response.json()["first_name"] == "Marta"
    assert response.json()["phone"] == "+50255551234"

    escalation = await async_client.put(
        "/api/v1/users/profile",
        json={"is_active": False},
        headers=auth_headers(user),
    )
    assert escalation.status_code == 422

    me = await async_client.get("/api/v1/auth/me", headers=auth_headers(user))
    assert me.json()["first_name"] == "Marta"
    assert me.json()["is_active"] is True

    async with session_factory() as session:
        entry = await session.scalar(
            select(AuditLog).where(
                AuditLog.action == "user_updated",
                AuditLog.resource_id == user_id,
            )
        )
        assert entry is not None
        assert str(entry.user_id) == user_id
        assert entry.old_values == {"first_name": original_first_name, "phone": None}
        assert entry.new_values == {"first_name": "Marta", "phone": "+50255551234"}
