from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

import tradeconnect.audit.models  # noqa: F401 - register audit tables with the metadata
import tradeconnect.system_config.models  # noqa: F401 - register config tables
import tradeconnect.two_factor.models  # noqa: F401 - register 2FA tables
from tradeconnect.api.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
)
from tradeconnect.api.routes import load_routers
from tradeconnect.auth.middleware import CurrentUserMiddleware
from tradeconnect.auth.tokens import TokenService
from tradeconnect.core.config import Settings, get_settings
from tradeconnect.core.lifespan import create_lifespan
from tradeconnect.core.logging import configure_logging
from tradeconnect.notifications import LoggingAuthNotifier
from tradeconnect.observability import configure_sentry, metrics_service
from tradeconnect.security import RateLimitMiddleware


def _register_middlewares(
    app: FastAPI, settings: Settings, token_service: TokenService
) -> None:
    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    if settings.rate_limit.enabled:
        app.add_middleware(
            RateLimitMiddleware,
            max_requests=settings.rate_limit.global_requests,
            window_seconds=settings.rate_limit.global_window_seconds,
        )

    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CurrentUserMiddleware,
        token_service=token_service,
        access_cookie_name=settings.jwt.access_cookie_name,
    )


def _register_routers(app: FastAPI) -> None:
    for router in load_routers():
        app.include_router(router)


def create_app() -> FastAPI:
    settings: Settings = get_settings()
    configure_logging(settings)

    # Sentry goes first so that initialisation errors are captured too.
    configure_sentry(settings.sentry, default_environment=settings.environment.value)

    token_service = TokenService(settings)

    app = FastAPI(
        title=settings.project_name,
        description=settings.project_description,
        version=settings.project_version,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=create_lifespan(settings),
    )

    app.state.settings = settings
    app.state.token_service = token_service
    app.state.notifier = LoggingAuthNotifier()
    app.openapi_tags = [
        {"name": "health", "description": "Service health check operations"},
        {"name": "auth", "description": "Registration, login and token lifecycle"},
        {"name": "sessions", "description": "Active device sessions and history"},
        {"name": "two-factor", "description": "TOTP, SMS and e-mail second factors"},
        {"name": "audit", "description": "Audit trail queries, export and cleanup"},
        {"name": "users", "description": "Administrative user and role management"},
        {"name": "system", "description": "Runtime system configuration"},
    ]

    metrics_service.instrument_app(app, settings.prometheus)

    _register_middlewares(app, settings, token_service)
    _register_routers(app)

    return app
