# weekblocks/services/cache_service.py
"""
Cache Service for the week block store.

Thin key/value layer over Redis with JSON serialization, per-key TTLs,
pattern invalidation, hit/miss statistics and a circuit breaker. When Redis
is not configured or unreachable it keeps entries in process memory instead.
Nothing stored here is authoritative.
"""

from datetime import datetime, timedelta
from enum import Enum
import fnmatch
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar

import redis
from redis import Redis
from redis.exceptions import RedisError

from ..core.config import settings
from .base import BaseService

logger = logging.getLogger(__name__)


T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreaker:
    """
    Circuit breaker pattern implementation for cache resilience.

    Prevents cascading failures when cache is unavailable.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: type[BaseException] = RedisError,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self._failure_count: int = 0
        self._last_failure_time: Optional[datetime] = None
        self._state: CircuitState = CircuitState.CLOSED
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._last_failure_time:
                elapsed = (datetime.now() - self._last_failure_time).total_seconds()
                if elapsed >= self.recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
            return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        """
        Execute function with circuit breaker protection.

        Returns:
            Function result or None if circuit is open

        Raises:
            The expected exception while the circuit is still closed
        """
        if self.state == CircuitState.OPEN:
            logger.warning("Circuit breaker is OPEN, skipping %s", func.__name__)
            return None

        try:
            result = func(*args, **kwargs)
            self._on_success()
            return result
        except self.expected_exception:
            self._on_failure()
            if self.state == CircuitState.CLOSED:
                raise
            return None

    def _on_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info("Circuit breaker recovered, closing circuit")

    def _on_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = datetime.now()

            if self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning("Circuit breaker opened after %d failures", self._failure_count)


class CacheKeyBuilder:
    """Standardized cache key generation."""

    @staticmethod
    def build(*parts: Any) -> str:
        """
        Build a cache key from parts.

        Examples:
            build('week_location', 'team-1', 2025, 'W25') -> 'week_location:team-1:2025:W25'
        """
        return ":".join(str(part) for part in parts)


class CacheService:
    """
    Key/value cache with Redis backing and an in-memory fallback.

    Values are JSON-serialized in both backends so callers always get a
    fresh copy back, never a shared object.
    """

    DEFAULT_TTL = 300

    def __init__(self, redis_client: Optional[Redis] = None, *, redis_url: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5, recovery_timeout=60, expected_exception=RedisError
        )
        self.key_builder = CacheKeyBuilder()

        # In-memory fallback
        self._memory_cache: Dict[str, str] = {}
        self._memory_expiry: Dict[str, datetime] = {}
        self._memory_lock = threading.Lock()

        self.redis: Optional[Redis] = redis_client
        if self.redis is None and redis_url:
            self._setup_redis_connection(redis_url)

        self._stats: Dict[str, int] = self._initialize_stats()

    @classmethod
    def from_settings(cls) -> "CacheService":
        return cls(redis_url=settings.redis_url)

    def _setup_redis_connection(self, redis_url: str) -> None:
        """Connect to Redis, falling back to the in-memory cache on failure."""
        try:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_keepalive=True,
                socket_connect_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            client.ping()
            self.redis = client
            logger.info("Connected to Redis cache")
        except (RedisError, ConnectionError) as e:
            logger.warning("Redis not available: %s. Using in-memory fallback.", e)
            self.redis = None

    def _initialize_stats(self) -> Dict[str, int]:
        return {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "errors": 0,
        }

    @property
    def backend(self) -> str:
        return "redis" if self.redis is not None else "memory"

    # Core Cache Operations

    @BaseService.measure_operation("cache_get")
    def get(self, key: str) -> Optional[Any]:
        """Get value from cache with circuit breaker protection."""

        redis_client = self.redis

        def _get_from_redis() -> Optional[Any]:
            assert redis_client is not None
            value = redis_client.get(key)
            if value is not None:
                return json.loads(value)
            return None

        try:
            if redis_client is not None:
                if self.circuit_breaker.state != CircuitState.OPEN:
                    value = self.circuit_breaker.call(_get_from_redis)
                    if value is not None:
                        self._stats["hits"] += 1
                        return value
            else:
                raw = self._memory_get(key)
                if raw is not None:
                    self._stats["hits"] += 1
                    return json.loads(raw)

            self._stats["misses"] += 1
            return None

        except Exception as e:
            logger.error("Cache get error for key %s: %s", key, e)
            self._stats["errors"] += 1
            return None

    @BaseService.measure_operation("cache_set")
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with circuit breaker protection."""

        redis_client = self.redis
        ttl = ttl if ttl is not None else self.DEFAULT_TTL

        try:
            serialized = json.dumps(value, default=str)

            def _set_in_redis() -> bool:
                assert redis_client is not None
                redis_client.setex(key, ttl, serialized)
                return True

            if redis_client is not None:
                if self.circuit_breaker.state != CircuitState.OPEN:
                    if self.circuit_breaker.call(_set_in_redis):
                        self._stats["sets"] += 1
                        return True
                return False

            with self._memory_lock:
                self._memory_cache[key] = serialized
                self._memory_expiry[key] = datetime.now() + timedelta(seconds=ttl)
            self._stats["sets"] += 1
            return True

        except Exception as e:
            logger.error("Cache set error for key %s: %s", key, e)
            self._stats["errors"] += 1
            return False

    @BaseService.measure_operation("cache_delete")
    def delete(self, key: str) -> bool:
        """Delete a key from cache with circuit breaker protection."""

        redis_client = self.redis

        def _delete_from_redis() -> bool:
            assert redis_client is not None
            return bool(redis_client.delete(key))

        try:
            if redis_client is not None:
                if self.circuit_breaker.state != CircuitState.OPEN and self.circuit_breaker.call(
                    _delete_from_redis
                ):
                    self._stats["deletes"] += 1
                    return True
                return False

            with self._memory_lock:
                existed = key in self._memory_cache
                self._memory_cache.pop(key, None)
                self._memory_expiry.pop(key, None)
            if existed:
                self._stats["deletes"] += 1
            return existed

        except Exception as e:
            logger.error("Cache delete error for key %s: %s", key, e)
            self._stats["errors"] += 1
            return False

    @BaseService.measure_operation("cache_delete_pattern")
    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob-style pattern."""
        try:
            if self.redis is not None:
                count = self._delete_pattern_redis(pattern)
            else:
                count = self._delete_pattern_memory(pattern)

            self._stats["deletes"] += count
            logger.info("Deleted %d keys matching pattern: %s", count, pattern)
            return count

        except Exception as e:
            logger.error("Cache delete pattern error: %s", e)
            self._stats["errors"] += 1
            return 0

    def _delete_pattern_redis(self, pattern: str) -> int:
        """Delete pattern from Redis using SCAN."""
        count = 0
        redis_client = self.redis
        if redis_client is None:
            return 0
        for key in redis_client.scan_iter(match=pattern):
            if redis_client.delete(key):
                count += 1
        return count

    def _delete_pattern_memory(self, pattern: str) -> int:
        with self._memory_lock:
            keys_to_delete = [k for k in self._memory_cache if fnmatch.fnmatchcase(k, pattern)]
            for key in keys_to_delete:
                self._memory_cache.pop(key, None)
                self._memory_expiry.pop(key, None)
        return len(keys_to_delete)

    def _memory_get(self, key: str) -> Optional[str]:
        with self._memory_lock:
            raw = self._memory_cache.get(key)
            if raw is None:
                return None
            expires_at = self._memory_expiry.get(key)
            if expires_at is not None and datetime.now() >= expires_at:
                # Expired
                self._memory_cache.pop(key, None)
                self._memory_expiry.pop(key, None)
                return None
            return raw

    # Monitoring

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics including circuit breaker state."""
        total_requests = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total_requests * 100) if total_requests > 0 else 0

        return {
            **self._stats,
            "backend": self.backend,
            "hit_rate": f"{hit_rate:.2f}%",
            "total_requests": total_requests,
            "circuit_breaker": {
                "state": self.circuit_breaker.state.value,
                "failure_count": self.circuit_breaker.failure_count,
                "threshold": self.circuit_breaker.failure_threshold,
            },
        }

    def reset_stats(self) -> None:
        self._stats = self._initialize_stats()
