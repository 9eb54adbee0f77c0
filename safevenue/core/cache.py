"""
SafeVenue - Response Cache
Short-lived cache in front of composed analytics responses.

Two backends share one interface:
- InMemoryResponseCache: process-local, not shared between instances
- RedisResponseCache: shared across instances, guarded by a circuit breaker
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError, TimeoutError

from safevenue.core.config import settings

logger = logging.getLogger(__name__)


class CachePrefix(str, Enum):
    """Cache key prefixes"""
    INSIGHTS = "insights"


class CircuitBreakerState(str, Enum):
    """Circuit breaker states"""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Circuit breaker for cache resilience"""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 30,
        half_open_requests: int = 3
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_requests = half_open_requests
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.half_open_successes = 0

    def can_execute(self) -> bool:
        """Check if request can be executed"""
        if self.state == CircuitBreakerState.CLOSED:
            return True

        if self.state == CircuitBreakerState.OPEN:
            if time.time() - self.last_failure_time > self.recovery_timeout:
                self.state = CircuitBreakerState.HALF_OPEN
                self.half_open_successes = 0
                return True
            return False

        return True

    def record_success(self):
        """Record successful execution"""
        if self.state == CircuitBreakerState.HALF_OPEN:
            self.half_open_successes += 1
            if self.half_open_successes >= self.half_open_requests:
                self.state = CircuitBreakerState.CLOSED
                self.failure_count = 0
        else:
            self.failure_count = 0

    def record_failure(self):
        """Record failed execution"""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == CircuitBreakerState.HALF_OPEN:
            self.state = CircuitBreakerState.OPEN
        elif self.failure_count >= self.failure_threshold:
            self.state = CircuitBreakerState.OPEN


def make_insights_key(event_id: str, user_id: str) -> str:
    """Cache key for one event as seen by one requesting user"""
    return f"{CachePrefix.INSIGHTS.value}:{event_id}:{user_id}"


class ResponseCache(ABC):
    """Cache of JSON-shaped responses with a fixed time-to-live"""

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "invalidations": 0}

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Dict[str, Any]) -> bool:
        pass

    @abstractmethod
    async def invalidate(self, key: str) -> bool:
        pass

    async def initialize(self) -> None:
        """Open backing connections, if any"""

    async def close(self) -> None:
        """Release backing connections, if any"""

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "stats": self.get_stats()}

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0

        return {
            **self._stats,
            "backend": self.backend,
            "ttl_seconds": self.ttl_seconds,
            "total_requests": total,
            "hit_rate_percent": round(hit_rate, 2),
        }

    @property
    @abstractmethod
    def backend(self) -> str:
        pass


class InMemoryResponseCache(ResponseCache):
    """Process-local map of key -> (stored_at, value)"""

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        super().__init__(ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    @property
    def backend(self) -> str:
        return "memory"

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            self._stats["misses"] += 1
            return None

        self._stats["hits"] += 1
        return value

    async def set(self, key: str, value: Dict[str, Any]) -> bool:
        now = self._clock()
        self._purge_expired(now)
        self._entries[key] = (now, value)
        self._stats["sets"] += 1
        return True

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired cache entries")

    async def invalidate(self, key: str) -> bool:
        self._stats["invalidations"] += 1
        return self._entries.pop(key, None) is not None

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisResponseCache(ResponseCache):
    """Redis-backed cache shared by every service instance"""

    def __init__(self, ttl_seconds: int, redis_url: Optional[str] = None):
        super().__init__(ttl_seconds)
        self.redis_url = redis_url or settings.REDIS_URL
        self._client: Optional[redis.Redis] = None
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
            recovery_timeout=settings.CIRCUIT_BREAKER_TIMEOUT
        )
        self._stats["errors"] = 0

    @property
    def backend(self) -> str:
        return "redis"

    async def initialize(self) -> None:
        """Initialize Redis connection"""
        if self._client is not None:
            return

        logger.info("Initializing Redis connection...")

        self._client = redis.from_url(
            self.redis_url,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            decode_responses=False,
            retry_on_timeout=True
        )

        try:
            await self._client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._client = None
            raise

    async def close(self) -> None:
        """Close Redis connection"""
        if self._client:
            logger.info("Closing Redis connection...")
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

    async def health_check(self) -> Dict[str, Any]:
        """Check Redis health"""
        try:
            if not self._client:
                await self.initialize()
            start = time.time()
            await self._client.ping()
            latency_ms = (time.time() - start) * 1000
            return {
                "status": "healthy",
                "latency_ms": round(latency_ms, 2),
                "stats": self.get_stats(),
            }
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return {"status": "unhealthy", "error": str(e), "stats": self.get_stats()}

    def _make_key(self, key: str) -> str:
        return f"{settings.APP_NAME}:{key}"

    async def _execute_with_circuit_breaker(self, operation: Callable) -> Any:
        """Execute operation with circuit breaker protection"""
        if not self._circuit_breaker.can_execute():
            self._stats["errors"] += 1
            raise ConnectionError("Circuit breaker is open")

        try:
            result = await operation()
            self._circuit_breaker.record_success()
            return result
        except (ConnectionError, TimeoutError) as e:
            self._circuit_breaker.record_failure()
            self._stats["errors"] += 1
            logger.error(f"Redis operation failed: {e}")
            raise

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        if not self._client:
            await self.initialize()

        full_key = self._make_key(key)

        async def _get():
            return await self._client.get(full_key)

        try:
            value = await self._execute_with_circuit_breaker(_get)
        except Exception as e:
            logger.warning(f"Cache get failed for {full_key}: {e}")
            return None

        if value is None:
            self._stats["misses"] += 1
            return None

        self._stats["hits"] += 1
        try:
            return json.loads(value.decode('utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Discarding undecodable cache entry {full_key}: {e}")
            return None

    async def set(self, key: str, value: Dict[str, Any]) -> bool:
        if not self._client:
            await self.initialize()

        full_key = self._make_key(key)
        serialized = json.dumps(value, default=str).encode('utf-8')

        async def _set():
            return await self._client.setex(full_key, self.ttl_seconds, serialized)

        try:
            await self._execute_with_circuit_breaker(_set)
            self._stats["sets"] += 1
            return True
        except Exception as e:
            logger.warning(f"Cache set failed for {full_key}: {e}")
            return False

    async def invalidate(self, key: str) -> bool:
        if not self._client:
            return False

        full_key = self._make_key(key)

        async def _delete():
            return await self._client.delete(full_key)

        self._stats["invalidations"] += 1
        try:
            return bool(await self._execute_with_circuit_breaker(_delete))
        except Exception as e:
            logger.warning(f"Cache invalidate failed for {full_key}: {e}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        return {
            **super().get_stats(),
            "circuit_breaker_state": self._circuit_breaker.state.value
        }


def build_response_cache(
    backend: Optional[str] = None,
    ttl_seconds: Optional[int] = None
) -> ResponseCache:
    """Construct the configured cache backend"""
    backend = backend or settings.CACHE_BACKEND
    ttl_seconds = ttl_seconds or settings.INSIGHTS_CACHE_TTL

    if backend == "redis":
        return RedisResponseCache(ttl_seconds)
    return InMemoryResponseCache(ttl_seconds)


# Global response cache instance
response_cache = build_response_cache()


def get_response_cache() -> ResponseCache:
    """Get the global response cache instance."""
    return response_cache
