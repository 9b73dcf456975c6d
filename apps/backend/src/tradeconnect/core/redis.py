from __future__ import annotations

from urllib.parse import urlparse

import structlog
from redis.asyncio import Redis

from tradeconnect.core.config import Settings, get_settings

FakeRedisFactory: type[Redis] | None = None

try:  # pragma: no cover - optional dependency in production
    from fakeredis.aioredis import FakeRedis as _FakeRedis

    FakeRedisFactory = _FakeRedis
except ModuleNotFoundError:  # pragma: no cover - fakeredis is only needed for tests
    pass

_IN_MEMORY_SCHEMES = frozenset({"fakeredis", "memory"})

logger = structlog.get_logger(__name__)

_REDIS: Redis | None = None


def _build_client(url: str) -> Redis:
    scheme = (urlparse(url).scheme or "").lower()
    if scheme in _IN_MEMORY_SCHEMES:
        if FakeRedisFactory is None:
            raise RuntimeError("fakeredis requested but fakeredis is not installed.")
        return FakeRedisFactory(decode_responses=True)
    return Redis.from_url(url, encoding="utf-8", decode_responses=True)


async def init_redis(settings: Settings | None = None) -> Redis:
    """Initialise and cache the Redis client used for blacklists, codes and limits."""

    global _REDIS
    if _REDIS is not None:
        return _REDIS

    settings = settings or get_settings()
    client = _build_client(settings.redis.url)
    if not await client.ping():
        raise RuntimeError("Redis did not acknowledge PING")

    logger.info("redis_connected", scheme=urlparse(settings.redis.url).scheme)
    _REDIS = client
    return _REDIS


async def close_redis() -> None:
    global _REDIS
    if _REDIS is None:
        return

    await _REDIS.aclose()
    _REDIS = None
