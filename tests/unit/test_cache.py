"""
SafeVenue - Response Cache Unit Tests
"""

import json
import time
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError

from safevenue.core.cache import (
    CircuitBreaker,
    CircuitBreakerState,
    InMemoryResponseCache,
    RedisResponseCache,
    build_response_cache,
    make_insights_key,
)

# Test configuration
pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestInMemoryResponseCache:
    """TTL and invalidation semantics."""

    @pytest.mark.asyncio
    async def test_hit_within_ttl(self):
        clock = FakeClock()
        cache = InMemoryResponseCache(300, clock=clock)
        await cache.set("k", {"value": 1})

        clock.now += 299

        assert await cache.get("k") == {"value": 1}
        assert cache.get_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_expires_at_ttl(self):
        clock = FakeClock()
        cache = InMemoryResponseCache(300, clock=clock)
        await cache.set("k", {"value": 1})

        clock.now += 300

        assert await cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_set_purges_abandoned_entries(self):
        clock = FakeClock()
        cache = InMemoryResponseCache(300, clock=clock)
        for user in range(1000):
            await cache.set(f"insights:evt-1:u-{user}", {"user": user})
        await cache.set("insights:evt-1:fresh", {"user": "fresh"})

        clock.now += 300
        await cache.set("insights:evt-1:u-late", {"user": "late"})

        assert len(cache) == 1
        assert await cache.get("insights:evt-1:u-late") == {"user": "late"}

    @pytest.mark.asyncio
    async def test_set_keeps_live_entries(self):
        clock = FakeClock()
        cache = InMemoryResponseCache(300, clock=clock)
        await cache.set("a", {"v": 1})

        clock.now += 200
        await cache.set("b", {"v": 2})

        assert len(cache) == 2
        assert await cache.get("a") == {"v": 1}

    @pytest.mark.asyncio
    async def test_invalidate(self):
        cache = InMemoryResponseCache(300)
        await cache.set("k", {"value": 1})

        assert await cache.invalidate("k") is True
        assert await cache.invalidate("k") is False
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_stats(self):
        cache = InMemoryResponseCache(300)
        await cache.get("missing")
        await cache.set("k", {})
        await cache.get("k")

        stats = cache.get_stats()

        assert stats["backend"] == "memory"
        assert stats["total_requests"] == 2
        assert stats["hit_rate_percent"] == 50.0

    def test_keys_are_scoped_to_event_and_user(self):
        assert make_insights_key("evt-1", "u-1") == "insights:evt-1:u-1"
        assert make_insights_key("evt-1", "u-1") != make_insights_key("evt-1", "u-2")

    def test_backend_selection(self):
        assert isinstance(build_response_cache("memory", 60), InMemoryResponseCache)
        redis_cache = build_response_cache("redis", 60)
        assert isinstance(redis_cache, RedisResponseCache)
        assert redis_cache.ttl_seconds == 60


class TestCircuitBreaker:
    """Circuit breaker state transitions."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=30)

        for _ in range(3):
            breaker.record_failure()

        assert breaker.state == CircuitBreakerState.OPEN
        assert breaker.can_execute() is False

    def test_half_open_after_recovery_timeout(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, half_open_requests=2)
        breaker.record_failure()
        breaker.last_failure_time = time.time() - 60

        assert breaker.can_execute() is True
        assert breaker.state == CircuitBreakerState.HALF_OPEN

        breaker.record_success()
        breaker.record_success()

        assert breaker.state == CircuitBreakerState.CLOSED

    def test_failure_while_half_open_reopens(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30)
        breaker.record_failure()
        breaker.last_failure_time = time.time() - 60
        breaker.can_execute()

        breaker.record_failure()

        assert breaker.state == CircuitBreakerState.OPEN


class TestRedisResponseCache:
    """Redis backend against a mocked client."""

    @pytest.mark.asyncio
    async def test_set_uses_ttl(self):
        cache = RedisResponseCache(120, redis_url="redis://localhost:6379/0")
        cache._client = AsyncMock()

        assert await cache.set("insights:evt-1:u-1", {"value": 1}) is True

        key, ttl, payload = cache._client.setex.await_args.args
        assert key.endswith(":insights:evt-1:u-1")
        assert ttl == 120
        assert json.loads(payload) == {"value": 1}

    @pytest.mark.asyncio
    async def test_get_decodes_json(self):
        cache = RedisResponseCache(120, redis_url="redis://localhost:6379/0")
        cache._client = AsyncMock()
        cache._client.get.return_value = b'{"value": 1}'

        assert await cache.get("k") == {"value": 1}

    @pytest.mark.asyncio
    async def test_connection_errors_read_as_miss(self):
        cache = RedisResponseCache(120, redis_url="redis://localhost:6379/0")
        cache._client = AsyncMock()
        cache._client.get.side_effect = ConnectionError("refused")

        assert await cache.get("k") is None
        assert cache.get_stats()["errors"] == 1
        assert cache._circuit_breaker.failure_count == 1
