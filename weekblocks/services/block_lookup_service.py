# weekblocks/services/block_lookup_service.py
"""
Block Lookup Service

Resolves (scope, year, week) to a block location through three tiers of
increasing cost:

1. ephemeral cache - trusted on hit
2. location index - stale entries for retired scopes are purged
3. full scan of the scope region - a hit here is written back to the
   index and the cache (self-heal)

Resolution never writes to the block rows themselves. Errors in any tier are
logged and treated as a miss: the caller's response to "not found" is to
create the block, which is safe.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..monitoring.prometheus_metrics import prometheus_metrics
from ..schemas.week_block import BlockDescriptor
from .base import BaseService
from .block_cache import BlockCache
from .block_scanner import BlockScanner
from .collaborators import ScopeDirectory
from .location_index_service import LocationIndexService

logger = logging.getLogger(__name__)


class BlockLookupService(BaseService):
    """Three-tier block resolution with write-back repair."""

    def __init__(
        self,
        db: Session,
        *,
        cache: BlockCache,
        index: LocationIndexService,
        scanner: BlockScanner,
        directory: ScopeDirectory,
    ):
        super().__init__(db)
        self.cache = cache
        self.index = index
        self.scanner = scanner
        self.directory = directory

    @BaseService.measure_operation("resolve")
    def resolve(self, scope_id: str, year: int, week: int) -> Optional[BlockDescriptor]:
        """
        Locate a block.

        Returns:
            The block descriptor, or None when no such block exists
        """
        block = self._from_cache(scope_id, year, week)
        if block is not None:
            return block

        block = self._from_index(scope_id, year, week)
        if block is not None:
            return block

        return self._from_scan(scope_id, year, week)

    def _from_cache(self, scope_id: str, year: int, week: int) -> Optional[BlockDescriptor]:
        try:
            block = self.cache.get_location(scope_id, year, week)
        except Exception as e:
            self._log_tier_failure("cache", scope_id, year, week, e)
            return None
        prometheus_metrics.record_lookup("cache", "hit" if block else "miss")
        return block

    def _from_index(self, scope_id: str, year: int, week: int) -> Optional[BlockDescriptor]:
        try:
            block = self.index.lookup(scope_id, year, week)
        except Exception as e:
            self._log_tier_failure("index", scope_id, year, week, e)
            return None

        prometheus_metrics.record_lookup("index", "hit" if block else "miss")
        if block is None:
            return None

        try:
            self.cache.put_location(block)
        except Exception as e:
            logger.warning(
                "Failed to cache indexed location",
                extra={"scope_id": scope_id, "error": str(e), "error_type": type(e).__name__},
            )
        return block

    def _from_scan(self, scope_id: str, year: int, week: int) -> Optional[BlockDescriptor]:
        try:
            if not self.directory.scope_exists(scope_id):
                prometheus_metrics.record_lookup("scan", "miss")
                return None
            scan = self.scanner.scan_scope(scope_id)
        except Exception as e:
            self._log_tier_failure("scan", scope_id, year, week, e)
            return None

        found = scan.find(year, week)
        if found is None:
            prometheus_metrics.record_lookup("scan", "miss")
            return None

        prometheus_metrics.record_lookup("scan", "hit")
        block = scan.descriptor(found)
        self._self_heal(block)
        return block

    def _self_heal(self, block: BlockDescriptor) -> None:
        """Write a scan result back to the index and the cache."""
        try:
            self.index.upsert(block.scope_id, block.year, block.week, block.start_row)
            self.cache.put_location(block)
        except Exception as e:
            logger.warning(
                "Self-heal write-back failed for %s %s",
                block.scope_id,
                block.block_key,
                extra={"scope_id": block.scope_id, "error": str(e), "error_type": type(e).__name__},
            )
            return
        prometheus_metrics.inc_self_heal()
        logger.info(
            "Self-healed index entry for %s %s at row %d",
            block.scope_id,
            block.block_key,
            block.start_row,
            extra={"scope_id": block.scope_id, "start_row": block.start_row},
        )

    def _log_tier_failure(
        self, tier: str, scope_id: str, year: int, week: int, error: Exception
    ) -> None:
        prometheus_metrics.record_lookup(tier, "error")
        logger.warning(
            "Lookup tier %s failed for %s %d-W%02d; treating as miss",
            tier,
            scope_id,
            year,
            week,
            extra={"scope_id": scope_id, "error": str(error), "error_type": type(error).__name__},
        )
