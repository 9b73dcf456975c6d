from __future__ import annotations

from itertools import count
from typing import Any

from httpx import AsyncClient, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradeconnect.auth.models import User
from tradeconnect.rbac.models import Role
from tradeconnect.two_factor.enums import TwoFactorMethod

STRONG_PASSWORD = "Str0ngPassw0rd"
DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_counter = count(1)


class RecordingNotifier:
    """Notifier double that keeps every delivered secret, keyed by e-mail."""

    def __init__(self) -> None:
        self.verification_tokens: dict[str, list[str]] = {}
        self.reset_tokens: dict[str, list[str]] = {}
        self.two_factor_codes: dict[str, list[str]] = {}

    async def send_verification_email(self, user: User, token: str) -> None:
        self.verification_tokens.setdefault(user.email, []).append(token)

    async def send_password_reset(self, user: User, token: str) -> None:
        self.reset_tokens.setdefault(user.email, []).append(token)

    async def send_two_factor_code(
        self, user: User, method: TwoFactorMethod, destination: str, code: str
    ) -> None:
        self.two_factor_codes.setdefault(user.email, []).append(code)

    def last_verification_token(self, email: str) -> str:
        return self.verification_tokens[email][-1]

    def last_reset_token(self, email: str) -> str:
        return self.reset_tokens[email][-1]

    def last_two_factor_code(self, email: str) -> str:
        return self.two_factor_codes[email][-1]


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}{next(_counter)}@example.com"


def registration_payload(
    *, email: str | None = None, password: str = STRONG_PASSWORD, **overrides: Any
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "email": email or unique_email(),
        "password": password,
        "confirm_password": password,
        "first_name": "Ana",
        "last_name": "Lopez",
        "terms_accepted": True,
    }
    payload.update(overrides)
    return payload


async def register_user(
    client: AsyncClient, *, email: str | None = None, **overrides: Any
) -> Response:
    response = await client.post(
        "/api/v1/auth/register",
        json=registration_payload(email=email, **overrides),
    )
    return response


async def register_verified_user(
    client: AsyncClient,
    notifier: RecordingNotifier,
    *,
    email: str | None = None,
    password: str = STRONG_PASSWORD,
) -> str:
    email = email or unique_email()
    response = await register_user(client, email=email, password=password)
    assert response.status_code == 201, response.text

    verify = await client.post(
        "/api/v1/auth/verify-email",
        json={"token": notifier.last_verification_token(email)},
    )
    assert verify.status_code == 200, verify.text
    return email


async def login(
    client: AsyncClient,
    email: str,
    *,
    password: str = STRONG_PASSWORD,
    user_agent: str = DESKTOP_USER_AGENT,
    ip_address: str | None = None,
    **extra: Any,
) -> Response:
    headers = {"User-Agent": user_agent}
    if ip_address is not None:
        headers["X-Forwarded-For"] = ip_address
    return await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password, **extra},
        headers=headers,
    )


async def login_tokens(
    client: AsyncClient, email: str, *, password: str = STRONG_PASSWORD, **extra: Any
) -> dict[str, Any]:
    response = await login(client, email, password=password, **extra)
    assert response.status_code == 200, response.text
    return dict(response.json())


def auth_headers(tokens: dict[str, Any] | str) -> dict[str, str]:
    token = tokens if isinstance(tokens, str) else tokens["access_token"]
    return {"Authorization": f"Bearer {token}"}


async def grant_role(
    session_factory: async_sessionmaker[AsyncSession], email: str, role_name: str
) -> None:
    async with session_factory() as session:
        user = await session.scalar(select(User).where(User.email == email))
        role = await session.scalar(select(Role).where(Role.name == role_name))
        assert user is not None and role is not None
        user.roles.append(role)
        await session.commit()


async def admin_tokens(
    client: AsyncClient,
    notifier: RecordingNotifier,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    role_name: str = "super_admin",
) -> dict[str, Any]:
    email = await register_verified_user(client, notifier, email=unique_email("admin"))
    await grant_role(session_factory, email, role_name)
    return await login_tokens(client, email)
