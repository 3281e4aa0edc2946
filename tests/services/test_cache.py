"""Cache key layout, generation-based invalidation and Redis fail-open behavior."""

from __future__ import annotations

import asyncio
import logging

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.cache import (
    GENERATION_TTL,
    InMemoryCacheService,
    RedisCacheService,
    generation_key,
    invalidate_progress,
    read_generation,
    stats_key,
    summary_key,
)


def test_key_layout() -> None:
    assert generation_key("u1") == "gen:u1"
    assert summary_key("u1", 3, "lesson", 7) == "summary:u1:g3:lesson:7"
    assert stats_key("u1", 0, "series", "day", "2026-03-01") == (
        "stats:u1:g0:series:day:2026-03-01"
    )


def test_generation_starts_at_zero_and_moves_per_learner() -> None:
    cache = InMemoryCacheService()

    async def run():
        before = await read_generation(cache, "u1")
        await invalidate_progress(cache, "u1")
        await invalidate_progress(cache, "u1")
        return before, await read_generation(cache, "u1"), await read_generation(
            cache, "u2"
        )

    assert asyncio.run(run()) == (0, 2, 0)


def test_late_set_from_a_read_that_raced_a_write_is_never_served() -> None:
    cache = InMemoryCacheService()

    async def run():
        # reader: picks up the generation, then computes slowly
        generation = await read_generation(cache, "u1")
        # writer commits and invalidates meanwhile
        await invalidate_progress(cache, "u1")
        # reader finally stores what it computed before the write
        await cache.set(summary_key("u1", generation, "lesson", 1), "stale", 60)
        # next reader
        current = await read_generation(cache, "u1")
        return await cache.get(summary_key("u1", current, "lesson", 1))

    assert asyncio.run(run()) is None


def test_glob_characters_in_user_id_do_not_reach_other_learners() -> None:
    cache = InMemoryCacheService()

    async def run():
        for user_id in ("u1", "u2", "u[12]"):
            await cache.set(summary_key(user_id, 0, "lesson", 1), "{}", 60)
        await invalidate_progress(cache, "u*")
        await invalidate_progress(cache, "u[12]")
        seen = {}
        for user_id in ("u1", "u2", "u[12]"):
            generation = await read_generation(cache, user_id)
            seen[user_id] = await cache.get(
                summary_key(user_id, generation, "lesson", 1)
            )
        return seen

    assert asyncio.run(run()) == {"u1": "{}", "u2": "{}", "u[12]": None}


def test_malformed_generation_reads_as_zero() -> None:
    cache = InMemoryCacheService()

    async def run():
        await cache.set(generation_key("u1"), "garbage", 60)
        return await read_generation(cache, "u1")

    assert asyncio.run(run()) == 0


class _DownRedis:
    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def setex(self, key, ttl, value):
        raise RedisConnectionError("connection refused")

    def register_script(self, script):
        async def run(keys=None, args=None):
            raise RedisConnectionError("connection refused")

        return run


def test_redis_outage_is_a_miss(caplog: pytest.LogCaptureFixture) -> None:
    cache = RedisCacheService(_DownRedis())

    async def run():
        await cache.set("summary:u1:g0:lesson:1", "{}", 60)
        await invalidate_progress(cache, "u1")
        generation = await read_generation(cache, "u1")
        return generation, await cache.get("summary:u1:g0:lesson:1")

    with caplog.at_level(logging.WARNING, logger="app.services.cache"):
        assert asyncio.run(run()) == (0, None)
    assert "Cache get failed" in caplog.text
    assert "Cache incr failed" in caplog.text


class _FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def register_script(self, script):
        assert "INCR" in script and "EXPIRE" in script

        async def run(keys=None, args=None):
            key = keys[0]
            value = int(self.data.get(key, "0")) + 1
            self.data[key] = str(value)
            self.ttls[key] = int(args[0])
            return value

        return run


def test_redis_keys_are_prefixed_and_generations_expire() -> None:
    redis = _FakeRedis()
    cache = RedisCacheService(redis)

    async def run():
        await cache.set("summary:u1:g0:lesson:1", "{}", 60)
        await invalidate_progress(cache, "u1")
        return await read_generation(cache, "u1")

    assert asyncio.run(run()) == 1
    assert sorted(redis.data) == ["cache:gen:u1", "cache:summary:u1:g0:lesson:1"]
    assert redis.ttls["cache:gen:u1"] == GENERATION_TTL
