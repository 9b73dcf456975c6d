from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from tradeconnect.auth.blacklist import TokenBlacklist
from tradeconnect.auth.dependencies import CurrentUser
from tradeconnect.auth.exceptions import InvalidTokenError, TokenExpiredError
from tradeconnect.auth.models import User, UserSession
from tradeconnect.auth.tokens import TokenPayload, TokenService
from tradeconnect.core.logging import bind_user_context
from tradeconnect.db.session import get_session_factory
from tradeconnect.observability import add_sentry_context


def _to_current_user(payload: TokenPayload, user: User) -> CurrentUser:
    """Convert a token payload and user model into CurrentUser."""
    return CurrentUser(
        id=user.id,
        email=user.email,
        session_id=payload.session_id,
        roles=tuple(user.role_names),
        permissions=frozenset(user.permission_names),
    )


class CurrentUserMiddleware(BaseHTTPMiddleware):
    """Populate ``request.state.current_user`` when a valid access token is supplied.

    Tokens whose session was ended are refused through the blacklist before
    the database is consulted.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        token_service: TokenService,
        access_cookie_name: str,
    ) -> None:
        super().__init__(app)
        self._token_service = token_service
        self._access_cookie_name = access_cookie_name

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request.state.current_user = None
        token = self._extract_token(request)

        if token is not None:
            payload = self._decode_token(token)
            if payload is not None and not await self._is_blacklisted(
                request, payload
            ):
                current_user = await self._resolve_current_user(payload)
                if current_user is not None:
                    request.state.current_user = current_user
                    bind_user_context(current_user.id, current_user.session_id)
                    add_sentry_context(
                        str(current_user.id), session_id=str(current_user.session_id)
                    )

        response = await call_next(request)
        return response

    async def _is_blacklisted(self, request: Request, payload: TokenPayload) -> bool:
        blacklist = getattr(request.app.state, "token_blacklist", None)
        if not isinstance(blacklist, TokenBlacklist):
            return False
        return await blacklist.contains(payload.session_id)

    async def _resolve_current_user(self, payload: TokenPayload) -> CurrentUser | None:
        """Resolve and validate the current user from a token payload."""
        session_factory = get_session_factory()
        async with session_factory() as session:
            user = await session.get(User, payload.subject)
            session_model = await session.get(UserSession, payload.session_id)

        if user is None or session_model is None:
            return None
        if session_model.user_id != user.id or not session_model.is_usable():
            return None
        if not user.is_active:
            return None

        return _to_current_user(payload, user)

    def _decode_token(self, token: str) -> TokenPayload | None:
        try:
            return self._token_service.decode_access_token(token)
        except (InvalidTokenError, TokenExpiredError):
            return None

    def _extract_token(self, request: Request) -> str | None:
        authorization = request.headers.get("Authorization")
        if authorization and authorization.lower().startswith("bearer "):
            return authorization.split(" ", 1)[1].strip()

        cookie_token = request.cookies.get(self._access_cookie_name)
        if cookie_token:
            return cookie_token
        return None
