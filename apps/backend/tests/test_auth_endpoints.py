from __future__ import annotations

import uuid
from typing import Any

import pytest
from factories import (
    STRONG_PASSWORD,
    RecordingNotifier,
    auth_headers,
    login,
    login_tokens,
    register_user,
    register_verified_user,
    unique_email,
)
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradeconnect.audit.models import AuditLog
from tradeconnect.auth.models import User, UserSession


def _detail(response: Any) -> dict[str, Any]:
    payload = response.json()
    assert isinstance(payload, dict)
    detail = payload["detail"]
    assert isinstance(detail, dict)
    return detail


async def _audit_actions(
    session_factory: async_sessionmaker[AsyncSession], user_email: str
) -> list[str]:
    async with session_factory() as session:
        user = await session.scalar(select(User).where(User.email == user_email))
        assert user is not None
        result = await session.scalars(
            select(AuditLog.action)
            .where(AuditLog.user_id == user.id)
            .order_by(AuditLog.created_at)
        )
        return list(result.all())


@pytest.mark.asyncio()
async def test_register_verify_and_login_flow(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = unique_email()
    response = await register_user(async_client, email=email)
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == email
    assert body["user"]["is_verified"] is False
    assert body["user"]["roles"] == ["user"]

    unverified = await login(async_client, email)
    assert unverified.status_code == 403
    assert _detail(unverified)["code"] == "EMAIL_NOT_VERIFIED"

    verify = await async_client.post(
        "/api/v1/auth/verify-email",
        json={"token": notifier.last_verification_token(email)},
    )
    assert verify.status_code == 200

    reused = await async_client.post(
        "/api/v1/auth/verify-email",
        json={"token": notifier.last_verification_token(email)},
    )
    assert reused.status_code == 400
    assert _detail(reused)["code"] == "TOKEN_INVALID"

    tokens = await login_tokens(async_client, email)
    assert tokens["token_type"] == "bearer"
    assert tokens["expires_in"] > 0
    assert tokens["refresh_expires_in"] > tokens["expires_in"]
    assert tokens["user"]["email"] == email

    me = await async_client.get("/api/v1/auth/me", headers=auth_headers(tokens))
    assert me.status_code == 200
    assert me.json()["email"] == email
    assert me.json()["last_login_at"] is not None

    actions = await _audit_actions(session_factory, email)
    assert actions[0] == "user_registered"
    assert "email_verification" in actions
    assert actions[-1] == "login_success"


@pytest.mark.asyncio()
async def test_register_validation_errors(async_client: AsyncClient) -> None:
    email = unique_email()
    assert (await register_user(async_client, email=email)).status_code == 201

    duplicate = await register_user(async_client, email=email.upper())
    assert duplicate.status_code == 409
    assert _detail(duplicate)["code"] == "EMAIL_ALREADY_EXISTS"

    mismatch = await register_user(async_client, confirm_password="Different1Pass")
    assert mismatch.status_code == 400
    assert _detail(mismatch)["code"] == "PASSWORD_MISMATCH"

    no_terms = await register_user(async_client, terms_accepted=False)
    assert no_terms.status_code == 400
    assert _detail(no_terms)["code"] == "TERMS_NOT_ACCEPTED"

    weak = await register_user(
        async_client, password="weakpassword", confirm_password="weakpassword"
    )
    assert weak.status_code == 422


@pytest.mark.asyncio()
async def test_login_with_unknown_email_is_generic_failure(
    async_client: AsyncClient,
) -> None:
    response = await login(async_client, "nobody@example.com")

    assert response.status_code == 401
    assert _detail(response)["code"] == "INVALID_CREDENTIALS"


@pytest.mark.asyncio()
async def test_account_locks_after_repeated_failures(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)

    for _ in range(5):
        response = await login(async_client, email, password="Wr0ngPassword")
        assert response.status_code == 401

    locked = await login(async_client, email)
    assert locked.status_code == 423
    assert _detail(locked)["code"] == "ACCOUNT_LOCKED"

    async with session_factory() as session:
        user = await session.scalar(select(User).where(User.email == email))
        assert user is not None
        assert user.failed_login_attempts == 5
        assert user.locked_until is not None

    actions = await _audit_actions(session_factory, email)
    assert actions.count("login_failed") == 5
    assert "account_locked" in actions
    assert actions[-1] == "login_blocked"


@pytest.mark.asyncio()
async def test_successful_login_resets_failure_counter(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)

    for _ in range(3):
        await login(async_client, email, password="Wr0ngPassword")
    await login_tokens(async_client, email)

    async with session_factory() as session:
        user = await session.scalar(select(User).where(User.email == email))
        assert user is not None
        assert user.failed_login_attempts == 0
        assert user.locked_until is None


@pytest.mark.asyncio()
async def test_refresh_rotates_token_and_detects_reuse(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)

    refreshed = await async_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    assert refreshed.status_code == 200
    rotated = refreshed.json()
    assert rotated["session_id"] == tokens["session_id"]
    assert rotated["refresh_token"] != tokens["refresh_token"]

    reuse = await async_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    assert reuse.status_code == 401
    assert _detail(reuse)["code"] == "TOKEN_INVALID"

    # Reuse ends the whole session, the rotated token included.
    after = await async_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": rotated["refresh_token"]}
    )
    assert after.status_code == 401
    assert _detail(after)["code"] == "SESSION_EXPIRED"

    me = await async_client.get("/api/v1/auth/me", headers=auth_headers(rotated))
    assert me.status_code == 401

    async with session_factory() as session:
        record = await session.get(UserSession, uuid.UUID(rotated["session_id"]))
        assert record is not None
        assert record.is_active is False
        assert record.ended_reason is not None
        assert record.ended_reason.value == "token_reuse"


@pytest.mark.asyncio()
async def test_refresh_requires_a_token(async_client: AsyncClient) -> None:
    response = await async_client.post("/api/v1/auth/refresh", json={})

    assert response.status_code == 400
    assert _detail(response)["code"] == "TOKEN_INVALID"


@pytest.mark.asyncio()
async def test_logout_revokes_access_token(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)
    headers = auth_headers(tokens)

    before = await async_client.get("/api/v1/auth/me", headers=headers)
    assert before.status_code == 200

    logout = await async_client.post("/api/v1/auth/logout", json={}, headers=headers)
    assert logout.status_code == 200

    after = await async_client.get("/api/v1/auth/me", headers=headers)
    assert after.status_code == 401

    refresh = await async_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    assert refresh.status_code == 401

    # Logging out twice is harmless.
    again = await async_client.post(
        "/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]}
    )
    assert again.status_code == 200


@pytest.mark.asyncio()
async def test_forgot_and_reset_password_ends_sessions(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)

    unknown = await async_client.post(
        "/api/v1/auth/forgot-password", json={"email": "ghost@example.com"}
    )
    assert unknown.status_code == 200
    assert "ghost@example.com" not in notifier.reset_tokens

    forgot = await async_client.post(
        "/api/v1/auth/forgot-password", json={"email": email}
    )
    assert forgot.status_code == 200
    reset_token = notifier.last_reset_token(email)

    new_password = "N3wPassword!"
    reset = await async_client.post(
        "/api/v1/auth/reset-password",
        json={
            "token": reset_token,
            "new_password": new_password,
            "confirm_password": new_password,
        },
    )
    assert reset.status_code == 200

    me = await async_client.get("/api/v1/auth/me", headers=auth_headers(tokens))
    assert me.status_code == 401

    old = await login(async_client, email)
    assert old.status_code == 401
    await login_tokens(async_client, email, password=new_password)

    replay = await async_client.post(
        "/api/v1/auth/reset-password",
        json={
            "token": reset_token,
            "new_password": "An0therPassword",
            "confirm_password": "An0therPassword",
        },
    )
    assert replay.status_code == 400
    assert _detail(replay)["code"] == "TOKEN_INVALID"


@pytest.mark.asyncio()
async def test_change_password_requires_current_password(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)
    other_device = await login_tokens(async_client, email)

    wrong = await async_client.post(
        "/api/v1/auth/password/change",
        json={
            "current_password": "Wr0ngPassword",
            "new_password": "N3wPassword1",
            "confirm_password": "N3wPassword1",
        },
        headers=auth_headers(tokens),
    )
    assert wrong.status_code == 401

    changed = await async_client.post(
        "/api/v1/auth/password/change",
        json={
            "current_password": STRONG_PASSWORD,
            "new_password": "N3wPassword1",
            "confirm_password": "N3wPassword1",
        },
        headers=auth_headers(tokens),
    )
    assert changed.status_code == 200

    for session_tokens in (tokens, other_device):
        me = await async_client.get(
            "/api/v1/auth/me", headers=auth_headers(session_tokens)
        )
        assert me.status_code == 401

    await login_tokens(async_client, email, password="N3wPassword1")


@pytest.mark.asyncio()
async def test_resend_verification(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = unique_email()
    await register_user(async_client, email=email)
    first_token = notifier.last_verification_token(email)

    resend = await async_client.post(
        "/api/v1/auth/resend-verification", json={"email": email}
    )
    assert resend.status_code == 200
    second_token = notifier.last_verification_token(email)
    assert second_token != first_token

    stale = await async_client.post(
        "/api/v1/auth/verify-email", json={"token": first_token}
    )
    assert stale.status_code == 400

    fresh = await async_client.post(
        "/api/v1/auth/verify-email", json={"token": second_token}
    )
    assert fresh.status_code == 200

    verified = await async_client.post(
        "/api/v1/auth/resend-verification", json={"email": email}
    )
    assert verified.status_code == 400
    assert _detail(verified)["code"] == "EMAIL_ALREADY_VERIFIED"


@pytest.mark.asyncio()
async def test_me_requires_authentication(async_client: AsyncClient) -> None:
    anonymous = await async_client.get("/api/v1/auth/me")
    assert anonymous.status_code == 401

    garbage = await async_client.get(
        "/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"}
    )
    assert garbage.status_code == 401
