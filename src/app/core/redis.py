"""Redis connection pool and namespaced JSON response cache.

Every cache key is prefixed with cache:{namespace}: so a whole namespace
(e.g. "dashboard" or "leaderboard") can be invalidated after a write.
Redis outages degrade to cache misses rather than failed requests.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from src.app.config import get_settings

logger = structlog.get_logger(__name__)

# ── Module-level Redis pool (lazy init) ─────────────────────────────────────

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Get or create the Redis connection pool singleton."""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


# ── Response Cache ──────────────────────────────────────────────────────────


class ResponseCache:
    """JSON cache for computed read models (dashboard, leaderboard)."""

    def __init__(self, redis_client: aioredis.Redis, default_ttl: int = 60):
        self._redis = redis_client
        self._default_ttl = default_ttl

    @staticmethod
    def _key(namespace: str, key: str) -> str:
        return f"cache:{namespace}:{key}"

    async def get_json(self, namespace: str, key: str) -> Any | None:
        """Return the cached value, or None on miss or Redis failure."""
        try:
            raw = await self._redis.get(self._key(namespace, key))
        except RedisError:
            logger.warning("cache.get_failed", namespace=namespace, key=key)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set_json(self, namespace: str, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self._redis.set(
                self._key(namespace, key),
                json.dumps(value, default=str),
                ex=ttl or self._default_ttl,
            )
        except RedisError:
            logger.warning("cache.set_failed", namespace=namespace, key=key)

    async def invalidate(self, *namespaces: str) -> None:
        """Drop every key under the given namespaces."""
        for namespace in namespaces:
            try:
                keys = [k async for k in self._redis.scan_iter(match=self._key(namespace, "*"))]
                if keys:
                    await self._redis.delete(*keys)
            except RedisError:
                logger.warning("cache.invalidate_failed", namespace=namespace)


def get_response_cache() -> ResponseCache:
    """Build a ResponseCache on the global Redis pool."""
    settings = get_settings()
    return ResponseCache(get_redis_pool(), default_ttl=settings.CACHE_TTL_SECONDS)
