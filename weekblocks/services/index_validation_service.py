# weekblocks/services/index_validation_service.py
"""
Index Validation Service

Audits the location index against ground truth obtained by scanning every
active scope, and rebuilds it from scratch when it has drifted too far.

Mismatch categories:
- missing_index_entry: a block exists but has no index entry
- row_mismatch: the entry points at a different row than the block's start
- orphaned_index_entry: the entry's scope is not active, or its key has no block
- duplicate_block: the scan found a second block with an already-seen key

The error rate is ``error_count / total_entries`` where ``total_entries`` is
the number of distinct keys seen on either side (scanned or indexed). With
nothing on either side the rate is 1.0, which forces a rebuild.
"""

from collections import Counter
from datetime import datetime, timezone
import logging
import time
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..schemas.week_block import IndexMismatch, RebuildReport, RepairReport, ValidationReport
from .base import BaseService
from .block_cache import BlockCache
from .block_scanner import BlockScanner
from .collaborators import ScopeDirectory
from .location_index_service import LocationIndexService

logger = logging.getLogger(__name__)

BlockKey = Tuple[str, int, int]


class IndexValidationService(BaseService):
    def __init__(
        self,
        db: Session,
        *,
        directory: ScopeDirectory,
        scanner: BlockScanner,
        index: LocationIndexService,
        cache: BlockCache,
        error_threshold: Optional[float] = None,
        auto_rebuild: Optional[bool] = None,
    ):
        super().__init__(db)
        self.directory = directory
        self.scanner = scanner
        self.index = index
        self.cache = cache
        self.error_threshold = (
            error_threshold if error_threshold is not None else settings.validation_error_threshold
        )
        self.auto_rebuild = (
            auto_rebuild if auto_rebuild is not None else settings.auto_rebuild_on_error
        )

    @BaseService.measure_operation("validate_index")
    def validate(self) -> ValidationReport:
        """Compare the index with every active scope's scanned blocks."""
        active = self.directory.list_active_scopes()
        active_set = set(active)

        actual: Dict[BlockKey, int] = {}
        mismatches: List[IndexMismatch] = []
        for scope_id in active:
            scan = self.scanner.scan_scope(scope_id)
            for block in scan.blocks:
                actual[(scope_id, block.year, block.week)] = block.start_row
            for dup in scan.duplicates:
                mismatches.append(
                    IndexMismatch(
                        category="duplicate_block",
                        scope_id=scope_id,
                        year=dup.year,
                        week=dup.week,
                        actual_row=dup.start_row,
                    )
                )

        indexed: Dict[BlockKey, int] = {
            (scope_id, year, week): start_row
            for scope_id, year, week, start_row in self.index.list_all()
        }

        for key, start_row in sorted(actual.items()):
            indexed_row = indexed.get(key)
            if indexed_row is None:
                category = "missing_index_entry"
            elif indexed_row != start_row:
                category = "row_mismatch"
            else:
                continue
            mismatches.append(
                IndexMismatch(
                    category=category,
                    scope_id=key[0],
                    year=key[1],
                    week=key[2],
                    actual_row=start_row,
                    indexed_row=indexed_row,
                )
            )

        for key, indexed_row in sorted(indexed.items()):
            if key[0] in active_set and key in actual:
                continue
            mismatches.append(
                IndexMismatch(
                    category="orphaned_index_entry",
                    scope_id=key[0],
                    year=key[1],
                    week=key[2],
                    indexed_row=indexed_row,
                )
            )

        total = len(set(actual) | set(indexed))
        error_count = len(mismatches)
        error_rate = min(error_count / total, 1.0) if total else 1.0
        needs_rebuild = error_rate >= self.error_threshold

        report = ValidationReport(
            scopes_checked=len(active),
            total_entries=total,
            error_count=error_count,
            error_rate=error_rate,
            threshold=self.error_threshold,
            needs_rebuild=needs_rebuild,
            counts=dict(Counter(m.category for m in mismatches)),
            mismatches=mismatches,
            checked_at=datetime.now(timezone.utc),
        )
        prometheus_metrics.set_index_error_rate(error_rate)

        if needs_rebuild:
            logger.error(
                "Index error rate %.1f%% meets threshold %.1f%%",
                error_rate * 100,
                self.error_threshold * 100,
                extra={"counts": report.counts, "total_entries": total},
            )
        elif mismatches:
            logger.warning(
                "Index has %d mismatches (%.1f%%), below rebuild threshold",
                error_count,
                error_rate * 100,
                extra={"counts": report.counts, "total_entries": total},
            )
        return report

    @BaseService.measure_operation("rebuild_index")
    def rebuild(self, trigger: str = "manual") -> RebuildReport:
        """
        Rewrite the index from a fresh scan of every active scope.

        Entries are written in (scope, year, week) order, so running it twice
        in a row yields the same index contents.
        """
        started = time.monotonic()
        active = self.directory.list_active_scopes()

        entries: List[Tuple[str, int, int, int]] = []
        malformed = duplicates = 0
        for scope_id in active:
            scan = self.scanner.scan_scope(scope_id)
            entries.extend((scope_id, b.year, b.week, b.start_row) for b in scan.blocks)
            malformed += len(scan.malformed)
            duplicates += len(scan.duplicates)

        removed, written = self.index.replace_all(entries)
        # Cached locations may point at offsets the rebuild just corrected
        self.cache.invalidate_all_locations()
        prometheus_metrics.inc_index_rebuild(trigger)

        report = RebuildReport(
            scopes_processed=len(active),
            blocks_indexed=written,
            entries_removed=removed,
            malformed_runs=malformed,
            duplicate_blocks=duplicates,
        )
        logger.info(
            "Rebuilt location index in %.2fs: %d entries across %d scopes",
            time.monotonic() - started,
            written,
            len(active),
            extra=report.model_dump(),
        )
        return report

    def validate_and_repair(self) -> RepairReport:
        """Validate, and rebuild when the error rate calls for it and auto-rebuild is on."""
        validation = self.validate()
        rebuild = None
        if validation.needs_rebuild and self.auto_rebuild:
            rebuild = self.rebuild(trigger="threshold")
        return RepairReport(validation=validation, rebuild=rebuild)
