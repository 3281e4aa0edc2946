"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a shared connection pool
is created at import time; when it's None (local dev, tests) redis_pool
is None and every consumer falls back to an in-memory implementation.

Redis only holds derived, disposable data here (cached summaries and
statistics).  Losing it costs a recompute, never a progress record.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # return str instead of bytes
        max_connections=20,
    )
else:
    redis_pool = None


async def ping_redis() -> bool:
    """Return True if Redis answers PING; False if unreachable."""
    if redis_pool is None:
        return False
    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return False
    return True


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis; mirrors lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured; cache uses the in-memory fallback")
        yield
        return

    if await ping_redis():
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    else:
        # The cache is an optimization; serve uncached rather than refuse
        # to start.
        logger.error("Redis unreachable on startup; continuing without cache hits")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
