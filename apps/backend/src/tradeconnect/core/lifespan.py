from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from starlette.types import Lifespan

from tradeconnect.auth.blacklist import TokenBlacklist
from tradeconnect.auth.rate_limiter import RateLimiter
from tradeconnect.core.config import Settings
from tradeconnect.core.redis import close_redis, init_redis
from tradeconnect.db.session import dispose_engine, get_engine, session_scope
from tradeconnect.rbac.service import ensure_default_roles


def create_lifespan(settings: Settings) -> Lifespan[FastAPI]:
    logger = structlog.get_logger(__name__).bind(environment=settings.environment)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("application_startup")
        # Pooled resources live for the whole process and are shared by requests.
        get_engine(settings)
        redis = await init_redis(settings)
        app.state.redis = redis
        app.state.token_blacklist = TokenBlacklist(
            redis, ttl_seconds=settings.jwt.access_token_ttl_seconds
        )
        app.state.rate_limiter = RateLimiter(
            redis,
            limit=settings.rate_limit.login_attempts,
            window_seconds=settings.rate_limit.login_window_seconds,
        )

        if settings.auth.seed_default_roles:
            async with session_scope() as session:
                await ensure_default_roles(session)

        try:
            yield
        finally:
            app.state.rate_limiter = None
            app.state.token_blacklist = None
            app.state.redis = None
            await close_redis()
            await dispose_engine()
            logger.info("application_shutdown")

    return lifespan
