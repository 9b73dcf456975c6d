from __future__ import annotations

import time
from typing import Any

import pyotp
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
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


def _wrong_totp(secret: str) -> str:
    totp = pyotp.TOTP(secret)
    now = time.time()
    accepted = {totp.at(now + offset) for offset in (-30, 0, 30)}
    return next(
        candidate
        for candidate in ("000000", "111111", "222222", "333333")
        if candidate not in accepted
    )


async def _enable_totp(
    client: AsyncClient, tokens: dict[str, Any]
) -> dict[str, Any]:
    setup = await client.post(
        "/api/v1/auth/2fa/setup", json={"method": "totp"}, headers=auth_headers(tokens)
    )
    assert setup.status_code == 200, setup.text
    payload = dict(setup.json())

    enable = await client.post(
        "/api/v1/auth/2fa/enable",
        json={"code": pyotp.TOTP(payload["secret"]).now()},
        headers=auth_headers(tokens),
    )
    assert enable.status_code == 200, enable.text
    return payload


@pytest.mark.asyncio()
async def test_totp_setup_returns_enrolment_material(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)

    response = await async_client.post(
        "/api/v1/auth/2fa/setup", json={"method": "totp"}, headers=auth_headers(tokens)
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["method"] == "totp"
    assert payload["provisioning_uri"].startswith("otpauth://totp/")
    assert "issuer=TradeConnect" in payload["provisioning_uri"]
    assert payload["qr_code"].startswith("data:image/png;base64,")
    assert len(payload["backup_codes"]) == 10
    assert all(len(code) == 8 and code.isdigit() for code in payload["backup_codes"])

    status = await async_client.get(
        "/api/v1/auth/2fa/status", headers=auth_headers(tokens)
    )
    assert status.json()["is_enabled"] is False

    wrong = await async_client.post(
        "/api/v1/auth/2fa/enable",
        json={"code": _wrong_totp(payload["secret"])},
        headers=auth_headers(tokens),
    )
    assert wrong.status_code == 400
    assert wrong.json()["detail"]["code"] == "TWO_FACTOR_INVALID"


@pytest.mark.asyncio()
async def test_login_requires_totp_once_enabled(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)
    setup = await _enable_totp(async_client, tokens)

    missing = await login(async_client, email)
    assert missing.status_code == 401
    assert missing.json()["detail"]["code"] == "TWO_FACTOR_REQUIRED"

    wrong = await login(
        async_client, email, two_factor_code=_wrong_totp(setup["secret"])
    )
    assert wrong.status_code == 400
    assert wrong.json()["detail"]["code"] == "TWO_FACTOR_INVALID"

    ok = await login(
        async_client, email, two_factor_code=pyotp.TOTP(setup["secret"]).now()
    )
    assert ok.status_code == 200
    assert ok.json()["user"]["is_2fa_enabled"] is True

    sessions = await async_client.get(
        "/api/v1/auth/sessions", headers=auth_headers(ok.json())
    )
    methods = {item["id"]: item["login_method"] for item in sessions.json()["sessions"]}
    assert methods[ok.json()["session_id"]] == "2fa"


@pytest.mark.asyncio()
async def test_backup_codes_are_single_use(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)
    setup = await _enable_totp(async_client, tokens)
    backup_code = setup["backup_codes"][0]

    first = await login(async_client, email, two_factor_code=backup_code)
    assert first.status_code == 200

    second = await login(async_client, email, two_factor_code=backup_code)
    assert second.status_code == 400

    status = await async_client.get(
        "/api/v1/auth/2fa/status", headers=auth_headers(first.json())
    )
    assert status.json()["backup_codes_count"] == 9


@pytest.mark.asyncio()
async def test_two_factor_locks_after_repeated_failures(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)
    setup = await _enable_totp(async_client, tokens)
    wrong_code = _wrong_totp(setup["secret"])

    for _ in range(5):
        response = await async_client.post(
            "/api/v1/auth/2fa/verify",
            json={"code": wrong_code},
            headers=auth_headers(tokens),
        )
        assert response.status_code == 400

    locked = await async_client.post(
        "/api/v1/auth/2fa/verify",
        json={"code": pyotp.TOTP(setup["secret"]).now()},
        headers=auth_headers(tokens),
    )
    assert locked.status_code == 423
    assert locked.json()["detail"]["code"] == "TWO_FA_LOCKED"

    blocked_login = await login(
        async_client, email, two_factor_code=pyotp.TOTP(setup["secret"]).now()
    )
    assert blocked_login.status_code == 423

    status = await async_client.get(
        "/api/v1/auth/2fa/status", headers=auth_headers(tokens)
    )
    assert status.json()["is_locked"] is True
    assert status.json()["failed_attempts"] == 5


@pytest.mark.asyncio()
async def test_repeating_setup_keeps_pending_lockout(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)
    setup = await async_client.post(
        "/api/v1/auth/2fa/setup", json={"method": "totp"}, headers=auth_headers(tokens)
    )
    wrong_code = _wrong_totp(setup.json()["secret"])

    for _ in range(5):
        response = await async_client.post(
            "/api/v1/auth/2fa/enable",
            json={"code": wrong_code},
            headers=auth_headers(tokens),
        )
        assert response.status_code == 400

    retry = await async_client.post(
        "/api/v1/auth/2fa/setup", json={"method": "totp"}, headers=auth_headers(tokens)
    )
    assert retry.status_code == 423
    assert retry.json()["detail"]["code"] == "TWO_FA_LOCKED"

    status = await async_client.get(
        "/api/v1/auth/2fa/status", headers=auth_headers(tokens)
    )
    assert status.json()["is_locked"] is True
    assert status.json()["failed_attempts"] == 5


@pytest.mark.asyncio()
async def test_email_codes_are_delivered_and_single_use(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)

    setup = await async_client.post(
        "/api/v1/auth/2fa/setup",
        json={"method": "email"},
        headers=auth_headers(tokens),
    )
    assert setup.status_code == 200
    assert setup.json()["destination"] == email
    assert setup.json()["secret"] is None

    enable = await async_client.post(
        "/api/v1/auth/2fa/enable",
        json={"code": notifier.last_two_factor_code(email)},
        headers=auth_headers(tokens),
    )
    assert enable.status_code == 200

    challenge = await login(async_client, email)
    assert challenge.status_code == 401
    code = notifier.last_two_factor_code(email)
    assert len(code) == 6

    ok = await login(async_client, email, two_factor_code=code)
    assert ok.status_code == 200

    replay = await login(async_client, email, two_factor_code=code)
    assert replay.status_code == 400


@pytest.mark.asyncio()
async def test_sms_setup_requires_phone_number(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)

    response = await async_client.post(
        "/api/v1/auth/2fa/setup", json={"method": "sms"}, headers=auth_headers(tokens)
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "PHONE_NOT_REGISTERED"


@pytest.mark.asyncio()
async def test_disable_requires_password(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)
    await _enable_totp(async_client, tokens)

    already = await async_client.post(
        "/api/v1/auth/2fa/setup", json={"method": "totp"}, headers=auth_headers(tokens)
    )
    assert already.status_code == 409

    wrong = await async_client.post(
        "/api/v1/auth/2fa/disable",
        json={"password": "Wr0ngPassword"},
        headers=auth_headers(tokens),
    )
    assert wrong.status_code == 401

    disabled = await async_client.post(
        "/api/v1/auth/2fa/disable",
        json={"password": "Str0ngPassw0rd"},
        headers=auth_headers(tokens),
    )
    assert disabled.status_code == 200

    assert (await login(async_client, email)).status_code == 200


@pytest.mark.asyncio()
async def test_regenerate_backup_codes_replaces_previous_set(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)
    setup = await _enable_totp(async_client, tokens)

    response = await async_client.post(
        "/api/v1/auth/2fa/backup-codes/regenerate", headers=auth_headers(tokens)
    )
    assert response.status_code == 200
    new_codes = response.json()["backup_codes"]
    assert len(new_codes) == 10

    old = await login(async_client, email, two_factor_code=setup["backup_codes"][0])
    assert old.status_code == 400
    fresh = await login(async_client, email, two_factor_code=new_codes[0])
    assert fresh.status_code == 200


@pytest.mark.asyncio()
async def test_admin_can_force_disable_and_view_stats(
    async_client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)
    await _enable_totp(async_client, tokens)
    admin = await admin_tokens(async_client, notifier, session_factory)

    forbidden = await async_client.get(
        "/api/v1/auth/2fa/stats", headers=auth_headers(tokens)
    )
    assert forbidden.status_code == 403

    stats = await async_client.get(
        "/api/v1/auth/2fa/stats", headers=auth_headers(admin)
    )
    assert stats.status_code == 200
    assert stats.json()["method_distribution"] == {"totp": 1}
    assert stats.json()["total_users_with_2fa"] == 1

    user_id = tokens["user"]["id"]
    response = await async_client.post(
        f"/api/v1/auth/2fa/users/{user_id}/force-disable",
        json={"reason": "lost authenticator"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200

    assert (await login(async_client, email)).status_code == 200


@pytest.mark.asyncio()
async def test_validate_and_send_code(
    async_client: AsyncClient, notifier: RecordingNotifier
) -> None:
    email = await register_verified_user(async_client, notifier)
    tokens = await login_tokens(async_client, email)

    report = await async_client.get(
        "/api/v1/auth/2fa/validate", headers=auth_headers(tokens)
    )
    assert report.status_code == 200
    assert report.json()["is_configured"] is False

    nothing_to_send = await async_client.post(
        "/api/v1/auth/2fa/send-code", headers=auth_headers(tokens)
    )
    assert nothing_to_send.status_code == 400
    assert nothing_to_send.json()["detail"]["code"] == "TWO_FA_NOT_ENABLED"

    await async_client.post(
        "/api/v1/auth/2fa/setup",
        json={"method": "email"},
        headers=auth_headers(tokens),
    )
    first_code = notifier.last_two_factor_code(email)

    sent = await async_client.post(
        "/api/v1/auth/2fa/send-code", headers=auth_headers(tokens)
    )
    assert sent.status_code == 200
    assert sent.json() == {"destination": email, "expires_in": 300}
    assert len(notifier.two_factor_codes[email]) == 2

    # Only the latest code is honoured.
    if notifier.last_two_factor_code(email) != first_code:
        stale = await async_client.post(
            "/api/v1/auth/2fa/enable",
            json={"code": first_code},
            headers=auth_headers(tokens),
        )
        assert stale.status_code == 400

    enable = await async_client.post(
        "/api/v1/auth/2fa/enable",
        json={"code": notifier.last_two_factor_code(email)},
        headers=auth_headers(tokens),
    )
    assert enable.status_code == 200

    report = await async_client.get(
        "/api/v1/auth/2fa/validate", headers=auth_headers(tokens)
    )
    assert report.json()["is_enabled"] is True
    assert report.json()["method"] == "email"
    assert report.json()["issues"] == []
