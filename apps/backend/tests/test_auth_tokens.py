from __future__ import annotations

import uuid
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

import jwt
import pytest

from tradeconnect.auth.exceptions import InvalidTokenError, TokenExpiredError
from tradeconnect.auth.tokens import TokenService
from tradeconnect.core.config import get_settings


def test_token_service_roundtrip(configure_settings: Iterator[None]) -> None:
    service = TokenService(get_settings())

    user_id = uuid.uuid4()
    session_id = uuid.uuid4()
    token_pair = service.create_token_pair(
        user_id=user_id, session_id=session_id, roles=["user", "manager"]
    )

    access_payload = service.decode_access_token(token_pair.access_token)
    assert access_payload.subject == user_id
    assert access_payload.session_id == session_id
    assert access_payload.token_type == "access"
    assert access_payload.roles == ("user", "manager")

    refresh_payload = service.decode_refresh_token(token_pair.refresh_token)
    assert refresh_payload.subject == user_id
    assert refresh_payload.session_id == session_id
    assert refresh_payload.token_type == "refresh"
    assert token_pair.session_id == session_id


def test_token_service_type_enforcement(configure_settings: Iterator[None]) -> None:
    service = TokenService(get_settings())

    access_token, _ = service.create_access_token(
        user_id=uuid.uuid4(), session_id=uuid.uuid4(), roles=["user"]
    )
    refresh_token, _ = service.create_refresh_token(
        user_id=uuid.uuid4(), session_id=uuid.uuid4()
    )

    with pytest.raises(InvalidTokenError):
        service.decode_refresh_token(access_token)
    with pytest.raises(InvalidTokenError):
        service.decode_access_token(refresh_token)


def test_refresh_tokens_for_same_session_differ(
    configure_settings: Iterator[None],
) -> None:
    service = TokenService(get_settings())
    user_id = uuid.uuid4()
    session_id = uuid.uuid4()

    first, _ = service.create_refresh_token(user_id=user_id, session_id=session_id)
    second, _ = service.create_refresh_token(user_id=user_id, session_id=session_id)

    assert first != second


def test_remember_me_extends_refresh_lifetime(
    configure_settings: Iterator[None],
) -> None:
    settings = get_settings()
    service = TokenService(settings)

    short = service.create_token_pair(
        user_id=uuid.uuid4(), session_id=uuid.uuid4(), roles=[]
    )
    long = service.create_token_pair(
        user_id=uuid.uuid4(), session_id=uuid.uuid4(), roles=[], remember_me=True
    )

    assert long.refresh_expires_at - short.refresh_expires_at > timedelta(days=20)
    assert service.refresh_ttl(remember_me=True) == timedelta(
        days=settings.jwt.remember_me_refresh_exp_days
    )


def test_expired_and_tampered_tokens_are_rejected(
    configure_settings: Iterator[None],
) -> None:
    settings = get_settings()
    service = TokenService(settings)
    now = datetime.now(UTC)

    expired = jwt.encode(
        {
            "sub": str(uuid.uuid4()),
            "sid": str(uuid.uuid4()),
            "type": "access",
            "iss": settings.jwt.issuer,
            "aud": settings.jwt.access_audience,
            "iat": int((now - timedelta(hours=2)).timestamp()),
            "exp": int((now - timedelta(hours=1)).timestamp()),
        },
        settings.jwt.secret.get_secret_value(),
        algorithm=settings.jwt.algorithm,
    )
    with pytest.raises(TokenExpiredError):
        service.decode_access_token(expired)

    forged = jwt.encode(
        {"sub": str(uuid.uuid4()), "type": "access"},
        "some-other-secret",
        algorithm="HS256",
    )
    with pytest.raises(InvalidTokenError):
        service.decode_access_token(forged)
