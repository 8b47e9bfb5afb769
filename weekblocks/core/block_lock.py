"""
Advisory locks around scope regions.

Block creation appends rows and then indexes them; two writers doing that for
the same scope at once would compute the same next position. ``hold`` is a
per-scope mutex (Redis ``SET NX EX`` with an ownership token), ``try_hold`` the
non-blocking form used by scheduled jobs. Without Redis the manager falls back
to process-local locks.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Callable, ContextManager, Dict, Iterator, Optional

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings
from .exceptions import BlockLockTimeoutException
from .ulid_helper import generate_ulid

logger = logging.getLogger(__name__)

# Delete the key only while it still holds our token
_RELEASE_LUA = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def scope_lock_key(scope_id: str) -> str:
    return f"scope:{scope_id}:mutex"


def connect_lock_redis(redis_url: Optional[str]) -> Optional[Redis]:
    """Build a Redis client for locks, or None when Redis is not configured/reachable."""
    if not redis_url:
        return None
    try:
        client = Redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        client.ping()
    except Exception as exc:
        logger.warning("scope_lock_redis_unavailable: %s", exc)
        return None
    return client


class ScopeLockManager:
    """Named mutexes shared by every writer of the block store."""

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        *,
        ttl_s: Optional[int] = None,
        wait_timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
        namespace: Optional[str] = None,
    ) -> None:
        self._redis = redis_client
        self.ttl_s = ttl_s if ttl_s is not None else settings.lock_ttl_s
        self.wait_timeout_s = (
            wait_timeout_s if wait_timeout_s is not None else settings.lock_wait_timeout_s
        )
        self.poll_interval_s = (
            poll_interval_s if poll_interval_s is not None else settings.lock_poll_interval_s
        )
        self.namespace = namespace or settings.namespace
        self._local_locks: Dict[str, threading.Lock] = {}
        self._local_guard = threading.Lock()

    @property
    def distributed(self) -> bool:
        return self._redis is not None

    def _namespaced_key(self, key: str) -> str:
        return f"{self.namespace}:lock:{key}"

    def _local_lock(self, key: str) -> threading.Lock:
        with self._local_guard:
            lock = self._local_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._local_locks[key] = lock
            return lock

    def _release_redis(self, name: str, token: str) -> None:
        assert self._redis is not None
        try:
            released = self._redis.eval(_RELEASE_LUA, 1, name, token)
        except Exception as exc:
            logger.warning(
                "scope_lock_release_failed",
                extra={"lock_key": name, "error": str(exc), "error_type": type(exc).__name__},
            )
            return
        if not released:
            # TTL expired while held; someone else may own it now
            logger.warning("scope_lock_expired_before_release", extra={"lock_key": name})

    def _acquire(self, key: str, *, wait: bool, action: str) -> Optional[Callable[[], None]]:
        """Return a release callable, or None when the lock is held elsewhere."""
        deadline = time.monotonic() + (self.wait_timeout_s if wait else 0.0)

        if self._redis is not None:
            name = self._namespaced_key(key)
            token = generate_ulid()
            try:
                while True:
                    if self._redis.set(name, token, nx=True, ex=self.ttl_s):
                        prometheus_metrics.record_scope_lock(action, "acquired")
                        return lambda: self._release_redis(name, token)
                    if not wait or time.monotonic() >= deadline:
                        return None
                    time.sleep(self.poll_interval_s)
            except Exception as exc:
                prometheus_metrics.record_scope_lock(action, "fallback")
                logger.warning(
                    "scope_lock_redis_failed_using_local_lock",
                    extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
                )

        local = self._local_lock(key)
        if wait:
            acquired = local.acquire(timeout=max(deadline - time.monotonic(), 0.0))
        else:
            acquired = local.acquire(blocking=False)
        if not acquired:
            return None
        prometheus_metrics.record_scope_lock(action, "acquired")
        return local.release

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Block until ``key`` is ours; raise BlockLockTimeoutException past the wait timeout."""
        started = time.monotonic()
        release = self._acquire(key, wait=True, action="hold")
        if release is None:
            waited = time.monotonic() - started
            prometheus_metrics.record_scope_lock("hold", "timeout")
            logger.warning("scope_lock_timeout", extra={"lock_key": key, "waited_s": waited})
            raise BlockLockTimeoutException(key, waited)
        try:
            yield
        finally:
            release()

    @contextmanager
    def try_hold(self, key: str) -> Iterator[bool]:
        """Yield True when ``key`` was free and is now held, False otherwise."""
        release = self._acquire(key, wait=False, action="try_hold")
        if release is None:
            prometheus_metrics.record_scope_lock("try_hold", "contended")
        try:
            yield release is not None
        finally:
            if release is not None:
                release()

    def hold_scope(self, scope_id: str) -> ContextManager[None]:
        return self.hold(scope_lock_key(scope_id))
