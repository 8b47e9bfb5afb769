# weekblocks/services/block_cache.py
"""
Ephemeral cache for resolved block locations and parsed block content.

Two kinds of entries live side by side:
- location entries (``week_location:*``), long TTL, trusted on hit
- content entries (``schedule_data:*``), short TTL, checked on every read

Content entries are only ever written from a successful read. A cached
payload that belongs to another key, or that looks like an error result,
is evicted and reported as a miss.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from ..core.config import settings
from ..core.constants import CONTENT_CACHE_PREFIX, LOCATION_CACHE_PREFIX
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..schemas.week_block import BlockDescriptor, StructuredAvailability
from .cache_service import CacheKeyBuilder, CacheService

logger = logging.getLogger(__name__)


class BlockCache:
    def __init__(
        self,
        cache: CacheService,
        *,
        location_ttl: Optional[int] = None,
        content_ttl: Optional[int] = None,
    ):
        self.cache = cache
        self.location_ttl = (
            location_ttl if location_ttl is not None else settings.location_cache_ttl
        )
        self.content_ttl = content_ttl if content_ttl is not None else settings.content_cache_ttl

    @staticmethod
    def location_key(scope_id: str, year: int, week: int) -> str:
        return CacheKeyBuilder.build(LOCATION_CACHE_PREFIX, scope_id, year, f"W{week}")

    @staticmethod
    def content_key(scope_id: str, year: int, week: int) -> str:
        return CacheKeyBuilder.build(CONTENT_CACHE_PREFIX, scope_id, year, f"W{week}")

    # Locations

    def get_location(self, scope_id: str, year: int, week: int) -> Optional[BlockDescriptor]:
        key = self.location_key(scope_id, year, week)
        payload = self.cache.get(key)
        if payload is None:
            prometheus_metrics.record_cache_read("location", "miss")
            return None
        try:
            block = BlockDescriptor.model_validate(payload)
        except ValidationError:
            block = None
        if block is None or (block.scope_id, block.year, block.week) != (scope_id, year, week):
            logger.warning("Evicting unusable location entry", extra={"cache_key": key})
            self.cache.delete(key)
            prometheus_metrics.record_cache_read("location", "evicted")
            return None
        prometheus_metrics.record_cache_read("location", "hit")
        return block

    def put_location(self, block: BlockDescriptor) -> bool:
        return self.cache.set(
            self.location_key(block.scope_id, block.year, block.week),
            block.model_dump(),
            ttl=self.location_ttl,
        )

    def invalidate_location(self, scope_id: str, year: int, week: int) -> None:
        self.cache.delete(self.location_key(scope_id, year, week))

    def invalidate_all_locations(self) -> int:
        return self.cache.delete_pattern(f"{LOCATION_CACHE_PREFIX}:*")

    # Content

    def get_content(self, scope_id: str, year: int, week: int) -> Optional[StructuredAvailability]:
        key = self.content_key(scope_id, year, week)
        payload = self.cache.get(key)
        if payload is None:
            prometheus_metrics.record_cache_read("content", "miss")
            return None
        content = self._usable_content(payload, scope_id, year, week)
        if content is None:
            logger.warning("Evicting stale or error content entry", extra={"cache_key": key})
            self.cache.delete(key)
            prometheus_metrics.record_cache_read("content", "evicted")
            return None
        prometheus_metrics.record_cache_read("content", "hit")
        return content

    def put_content(self, content: StructuredAvailability) -> bool:
        return self.cache.set(
            self.content_key(content.scope_id, content.year, content.week),
            content.model_dump(),
            ttl=self.content_ttl,
        )

    def invalidate_content(self, scope_id: str, year: int, week: int) -> None:
        self.cache.delete(self.content_key(scope_id, year, week))

    def invalidate_scope(self, scope_id: str) -> int:
        """Drop every location and content entry of one scope."""
        removed = self.cache.delete_pattern(f"{LOCATION_CACHE_PREFIX}:{scope_id}:*")
        removed += self.cache.delete_pattern(f"{CONTENT_CACHE_PREFIX}:{scope_id}:*")
        return removed

    @staticmethod
    def _usable_content(
        payload: Any, scope_id: str, year: int, week: int
    ) -> Optional[StructuredAvailability]:
        if not isinstance(payload, dict) or "error" in payload:
            return None
        try:
            content = StructuredAvailability.model_validate(payload)
        except ValidationError:
            return None
        if (content.scope_id, content.year, content.week) != (scope_id, year, week):
            return None
        return content
