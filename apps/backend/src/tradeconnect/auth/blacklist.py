from __future__ import annotations

import uuid

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from tradeconnect.core.constants import BLACKLIST_KEY_PREFIX

logger = structlog.get_logger(__name__)


class TokenBlacklist:
    """Redis-backed denylist of session ids whose access tokens must be rejected.

    Entries live exactly as long as an access token can, after which the
    token would be refused for expiry anyway.
    """

    def __init__(self, redis: Redis, *, ttl_seconds: int) -> None:
        self._redis = redis
        self._ttl_seconds = max(1, ttl_seconds)

    @staticmethod
    def _key(session_id: uuid.UUID | str) -> str:
        return f"{BLACKLIST_KEY_PREFIX}:{session_id}"

    async def add(self, session_id: uuid.UUID | str) -> None:
        try:
            await self._redis.setex(self._key(session_id), self._ttl_seconds, "1")
        except RedisError:
            logger.exception("token_blacklist_write_failed", session_id=str(session_id))

    async def add_many(self, session_ids: list[uuid.UUID]) -> None:
        for session_id in session_ids:
            await self.add(session_id)

    async def contains(self, session_id: uuid.UUID | str) -> bool:
        try:
            return bool(await self._redis.exists(self._key(session_id)))
        except RedisError:
            logger.warning("token_blacklist_read_failed", session_id=str(session_id))
            return False
