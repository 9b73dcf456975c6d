from __future__ import annotations

import time
import uuid
from collections.abc import Iterable

import structlog
from fastapi import Request, status
from fastapi.responses import ORJSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from tradeconnect.observability import metrics_service

logger = structlog.get_logger(__name__)


class SlidingWindowRateLimiter:
    """Redis-backed sliding window counter; each request is one sorted-set member."""

    def __init__(
        self,
        redis_client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        prefix: str = "rate_limit",
    ) -> None:
        self._redis = redis_client
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._prefix = prefix

    async def hit(self, identifier: str) -> tuple[bool, int]:
        """Record one request; return ``(allowed, seconds_until_a_slot_frees)``."""
        key = f"{self._prefix}:{identifier}"
        now = time.time()
        window_start = now - self.window_seconds

        async with self._redis.pipeline(transaction=True) as pipeline:
            pipeline.zremrangebyscore(key, 0, window_start)
            pipeline.zcard(key)
            _, count = await pipeline.execute()

        if int(count) < self.max_requests:
            async with self._redis.pipeline(transaction=True) as pipeline:
                pipeline.zadd(key, {f"{now}:{uuid.uuid4().hex}": now})
                pipeline.expire(key, self.window_seconds)
                await pipeline.execute()
            return True, 0

        oldest = await self._redis.zrange(key, 0, 0, withscores=True)
        if oldest:
            _, oldest_score = oldest[0]
            reset_after = int(float(oldest_score) + self.window_seconds - now) + 1
            return False, max(1, reset_after)
        return False, self.window_seconds


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP request quota for the whole API.

    The Redis client is looked up on ``app.state`` for every request because
    it only exists once the lifespan has started. Redis failures let the
    request through.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        max_requests: int,
        window_seconds: int,
        exempt_paths: Iterable[str] = ("/health", "/metrics"),
    ) -> None:
        super().__init__(app)
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._exempt_paths = tuple(exempt_paths)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        redis_client: Redis | None = getattr(request.app.state, "redis", None)
        if redis_client is None or request.url.path.startswith(self._exempt_paths):
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        limiter = SlidingWindowRateLimiter(
            redis_client,
            max_requests=self._max_requests,
            window_seconds=self._window_seconds,
        )
        try:
            allowed, reset_after = await limiter.hit(client_ip)
        except RedisError as exc:
            logger.warning(
                "rate_limit_check_error", client_ip=client_ip, error=str(exc)
            )
            return await call_next(request)

        if not allowed:
            metrics_service.record_rate_limited("global")
            logger.warning(
                "rate_limit_exceeded",
                client_ip=client_ip,
                path=request.url.path,
                reset_after=reset_after,
            )
            return ORJSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": {
                        "code": "RATE_LIMIT_EXCEEDED",
                        "message": "Too many requests. Please retry later.",
                    }
                },
                headers={"Retry-After": str(reset_after)},
            )

        return await call_next(request)

    @staticmethod
    def _get_client_ip(request: Request) -> str:
        """Extract client IP from request, respecting X-Forwarded-For header."""
        if x_forwarded_for := request.headers.get("X-Forwarded-For"):
            return x_forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"
