"""Read-through cache for summaries and statistics.

READ-THROUGH
------------
  Client → Cache → miss → coordinator → populate cache → return
  Client → Cache → hit  → return (skip storage entirely)

Only reads outside the write path are cached.  The write path always
recomputes summaries from leaf rows inside its transaction; the cache
just saves dashboards from doing the same work on every refresh.

INVALIDATION
------------
Every learner has a generation counter, and every cached key carries
the generation it was read under.  After a write commits, the router
bumps the counter; entries under older generations are never read again
and simply expire.

A reader fetches the generation before it computes.  If a write commits
while the read is still computing, the read stores its (possibly stale)
value under the old generation, where nobody looks for it.  Deleting
keys instead would let that late set() resurrect a stale entry.

SUMMARY_CACHE_TTL bounds how long any entry lives, including ones a
missed bump (e.g. a Redis outage) leaves behind.

Key layout (prefixed with "cache:" in Redis):

  gen:{user_id}
  summary:{user_id}:g{generation}:lesson:{lesson_id}
  summary:{user_id}:g{generation}:course:{course_id}
  stats:{user_id}:g{generation}:series:{granularity}:{start}:{end}
  stats:{user_id}:g{generation}:summary:{start}:{end}
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from redis.exceptions import RedisError

from app.db.redis import redis_pool

logger = logging.getLogger(__name__)

SUMMARY_CACHE_TTL = 300
# Outlives every entry written under the current generation.
GENERATION_TTL = 24 * 60 * 60


def generation_key(user_id: str) -> str:
    return f"gen:{user_id}"


def summary_key(user_id: str, generation: int, level: str, entity_id: int) -> str:
    return f"summary:{user_id}:g{generation}:{level}:{entity_id}"


def stats_key(user_id: str, generation: int, *parts: object) -> str:
    return ":".join(["stats", user_id, f"g{generation}", *(str(p) for p in parts)])


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def incr(self, key: str, ttl_seconds: int) -> None:
        """Increment an integer counter and (re)arm its TTL."""
        ...


class InMemoryCacheService:
    """In-memory cache for dev and tests; no TTL enforcement.

    The autouse fixture in conftest.py clears the store between tests.
    """

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def incr(self, key: str, ttl_seconds: int) -> None:
        self._store[key] = str(int(self._store.get(key, "0")) + 1)

    def clear(self) -> None:
        self._store.clear()


class RedisCacheService:
    """Redis-backed cache shared across all API instances.

    Redis errors are logged and treated as a miss (reads) or a no-op
    (writes): a request is served uncached rather than failed.
    """

    _PREFIX = "cache:"

    # INCR and EXPIRE in one atomic step, so a counter never lives on
    # without a TTL.
    # KEYS[1] = counter key, ARGV[1] = ttl seconds
    _INCR_SCRIPT = """
    local value = redis.call('INCR', KEYS[1])
    redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1]))
    return value
    """

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._incr_script = None

    async def get(self, key: str) -> str | None:
        try:
            return await self._redis.get(f"{self._PREFIX}{key}")
        except RedisError:
            logger.warning("Cache get failed for key=%s", key, exc_info=True)
            return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)
        except RedisError:
            logger.warning("Cache set failed for key=%s", key, exc_info=True)

    async def incr(self, key: str, ttl_seconds: int) -> None:
        if self._incr_script is None:
            self._incr_script = self._redis.register_script(self._INCR_SCRIPT)
        try:
            await self._incr_script(
                keys=[f"{self._PREFIX}{key}"], args=[ttl_seconds]
            )
        except RedisError:
            logger.warning("Cache incr failed for key=%s", key, exc_info=True)


async def read_generation(cache: CacheService, user_id: str) -> int:
    """The learner's current cache generation; 0 before the first write."""
    value = await cache.get(generation_key(user_id))
    if value is None:
        return 0
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring malformed cache generation for user=%s", user_id)
        return 0


async def invalidate_progress(cache: CacheService, user_id: str) -> None:
    """Retire every cached read for `user_id`; call after a write commits."""
    await cache.incr(generation_key(user_id), GENERATION_TTL)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
