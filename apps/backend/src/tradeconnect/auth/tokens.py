from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import jwt

from tradeconnect.auth.exceptions import InvalidTokenError, TokenExpiredError
from tradeconnect.core.config import Settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPayload:
    """Decoded information embedded within JWTs."""

    subject: uuid.UUID
    session_id: uuid.UUID
    token_type: str
    expires_at: datetime
    issued_at: datetime
    roles: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TokenPair:
    """Pair of access and refresh tokens issued to clients."""

    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    session_id: uuid.UUID


class TokenService:
    """Encodes and decodes access and refresh tokens.

    Both token types share the signing key; they are told apart by the
    ``type`` claim and by their audience, so a refresh token is never
    accepted where an access token is expected and vice versa.
    """

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.jwt.secret.get_secret_value()
        self._algorithm = settings.jwt.algorithm
        self._issuer = settings.jwt.issuer
        self._audiences = {
            ACCESS_TOKEN_TYPE: settings.jwt.access_audience,
            REFRESH_TOKEN_TYPE: settings.jwt.refresh_audience,
        }
        self._access_expiry = timedelta(minutes=settings.jwt.access_token_exp_minutes)
        self._refresh_expiry = timedelta(days=settings.jwt.refresh_token_exp_days)
        self._remember_me_expiry = timedelta(
            days=settings.jwt.remember_me_refresh_exp_days
        )

    @property
    def access_ttl(self) -> timedelta:
        return self._access_expiry

    def refresh_ttl(self, *, remember_me: bool = False) -> timedelta:
        return self._remember_me_expiry if remember_me else self._refresh_expiry

    def create_token_pair(
        self,
        *,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        roles: Sequence[str],
        remember_me: bool = False,
    ) -> TokenPair:
        access_token, access_exp = self.create_access_token(
            user_id=user_id, session_id=session_id, roles=roles
        )
        refresh_token, refresh_exp = self.create_refresh_token(
            user_id=user_id, session_id=session_id, remember_me=remember_me
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=access_exp,
            refresh_expires_at=refresh_exp,
            session_id=session_id,
        )

    def create_access_token(
        self, *, user_id: uuid.UUID, session_id: uuid.UUID, roles: Sequence[str]
    ) -> tuple[str, datetime]:
        return self._encode(
            user_id=user_id,
            session_id=session_id,
            token_type=ACCESS_TOKEN_TYPE,
            expires_delta=self._access_expiry,
            extra_claims={"roles": list(roles)},
        )

    def create_refresh_token(
        self,
        *,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        remember_me: bool = False,
    ) -> tuple[str, datetime]:
        return self._encode(
            user_id=user_id,
            session_id=session_id,
            token_type=REFRESH_TOKEN_TYPE,
            expires_delta=self.refresh_ttl(remember_me=remember_me),
            # A random id keeps two refresh tokens minted in the same second distinct.
            extra_claims={"jti": uuid.uuid4().hex},
        )

    def decode_access_token(self, token: str) -> TokenPayload:
        return self._decode(token, expected_type=ACCESS_TOKEN_TYPE)

    def decode_refresh_token(self, token: str) -> TokenPayload:
        return self._decode(token, expected_type=REFRESH_TOKEN_TYPE)

    def _encode(
        self,
        *,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        token_type: str,
        expires_delta: timedelta,
        extra_claims: dict[str, object],
    ) -> tuple[str, datetime]:
        now = datetime.now(UTC)
        expires_at = now + expires_delta
        payload = {
            "sub": str(user_id),
            "sid": str(session_id),
            "type": token_type,
            "iss": self._issuer,
            "aud": self._audiences[token_type],
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            **extra_claims,
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return token, expires_at

    def _decode(self, token: str, *, expected_type: str) -> TokenPayload:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audiences[expected_type],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub", "sid", "type", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError("Unable to decode token") from exc

        token_type = payload.get("type")
        if token_type != expected_type:
            raise InvalidTokenError("Unexpected token type")

        try:
            subject = uuid.UUID(str(payload["sub"]))
            session_id = uuid.UUID(str(payload["sid"]))
        except (KeyError, ValueError) as exc:
            raise InvalidTokenError("Token payload is malformed") from exc

        roles = payload.get("roles") or []
        if not isinstance(roles, list):
            raise InvalidTokenError("Token payload is malformed")

        return TokenPayload(
            subject=subject,
            session_id=session_id,
            token_type=token_type,
            issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=UTC),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=UTC),
            roles=tuple(str(role) for role in roles),
        )
