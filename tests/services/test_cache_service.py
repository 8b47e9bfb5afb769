"""Tests for the cache service and the block cache built on it."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

from redis.exceptions import RedisError

from weekblocks.schemas.week_block import BlockDescriptor, StructuredAvailability
from weekblocks.services.block_cache import BlockCache
from weekblocks.services.cache_service import CacheService, CircuitBreaker, CircuitState


def _block(week=25, start_row=2):
    return BlockDescriptor(
        scope_id="team-alpha",
        year=2025,
        week=week,
        month="June",
        start_row=start_row,
        end_row=start_row + 10,
    )


def _content(week=25):
    return StructuredAvailability(
        scope_id="team-alpha",
        year=2025,
        week=week,
        month="June",
        start_row=2,
        end_row=12,
        day_headers=["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"],
        slots=[],
    )


class TestCacheService:
    def test_memory_backend_round_trips_json(self):
        cache = CacheService()
        payload = {"a": [1, 2]}

        assert cache.backend == "memory"
        assert cache.set("k", payload, ttl=60) is True
        fetched = cache.get("k")

        assert fetched == payload
        assert fetched is not payload

    def test_memory_entries_expire(self):
        cache = CacheService()
        cache.set("k", 1, ttl=60)
        cache._memory_expiry["k"] = datetime.now() - timedelta(seconds=1)

        assert cache.get("k") is None

    def test_delete_pattern(self):
        cache = CacheService()
        cache.set("week_location:a:2025:W1", 1)
        cache.set("week_location:b:2025:W1", 2)
        cache.set("schedule_data:a:2025:W1", 3)

        assert cache.delete_pattern("week_location:*") == 2
        assert cache.get("schedule_data:a:2025:W1") == 3

    def test_stats_track_hits_and_misses(self):
        cache = CacheService()
        cache.set("k", 1)
        cache.get("k")
        cache.get("missing")

        stats = cache.get_stats()
        assert (stats["hits"], stats["misses"]) == (1, 1)
        assert stats["hit_rate"] == "50.00%"

    def test_redis_errors_degrade_to_miss(self):
        client = MagicMock()
        client.get.side_effect = RedisError("down")
        cache = CacheService(client)

        assert cache.get("k") is None
        assert cache.get_stats()["errors"] == 1


def test_circuit_breaker_opens_after_threshold():
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)

    def boom():
        raise RedisError("down")

    for _ in range(2):
        try:
            breaker.call(boom)
        except RedisError:
            pass

    assert breaker.state == CircuitState.OPEN
    assert breaker.call(lambda: "skipped") is None


class TestBlockCache:
    def test_location_round_trip(self):
        block_cache = BlockCache(CacheService())
        block_cache.put_location(_block())

        assert block_cache.get_location("team-alpha", 2025, 25) == _block()
        assert block_cache.get_location("team-alpha", 2025, 26) is None

    def test_keys_follow_naming_scheme(self):
        location = BlockCache.location_key("team-alpha", 2025, 25)
        content = BlockCache.content_key("team-alpha", 2025, 25)

        assert location == "week_location:team-alpha:2025:W25"
        assert content == "schedule_data:team-alpha:2025:W25"

    def test_content_for_another_week_is_evicted(self):
        cache = CacheService()
        block_cache = BlockCache(cache)
        cache.set(BlockCache.content_key("team-alpha", 2025, 25), _content(week=26).model_dump())

        assert block_cache.get_content("team-alpha", 2025, 25) is None
        assert cache.get(BlockCache.content_key("team-alpha", 2025, 25)) is None

    def test_cached_error_marker_is_evicted(self):
        cache = CacheService()
        block_cache = BlockCache(cache)
        key = BlockCache.content_key("team-alpha", 2025, 25)
        cache.set(key, {"error": "boom", "code": "STORE_ACCESS_FAILURE"})

        assert block_cache.get_content("team-alpha", 2025, 25) is None
        assert cache.get(key) is None

    def test_content_round_trip_and_invalidate(self):
        block_cache = BlockCache(CacheService())
        block_cache.put_content(_content())

        assert block_cache.get_content("team-alpha", 2025, 25) == _content()
        block_cache.invalidate_content("team-alpha", 2025, 25)
        assert block_cache.get_content("team-alpha", 2025, 25) is None

    def test_invalidate_scope_drops_both_kinds(self):
        block_cache = BlockCache(CacheService())
        block_cache.put_location(_block())
        block_cache.put_content(_content())

        assert block_cache.invalidate_scope("team-alpha") == 2
        assert block_cache.get_location("team-alpha", 2025, 25) is None
        assert block_cache.get_content("team-alpha", 2025, 25) is None

    def test_ttls_come_from_settings(self):
        block_cache = BlockCache(CacheService())
        assert (block_cache.location_ttl, block_cache.content_ttl) == (21600, 300)
