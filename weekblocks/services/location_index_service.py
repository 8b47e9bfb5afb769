# weekblocks/services/location_index_service.py
"""
Location Index Service

Persistent (scope, year, week) -> start row mapping shared by every scope.
Entries are hints, not truth: an entry whose scope is no longer active is
purged the first time a lookup touches it.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..repositories.week_block_index_repository import WeekBlockIndexRepository
from ..schemas.week_block import BlockDescriptor
from ..utils.week_helpers import month_label
from .base import BaseService
from .collaborators import ScopeDirectory

logger = logging.getLogger(__name__)

IndexItem = Tuple[int, int, int]  # (year, week, start_row)


class LocationIndexService(BaseService):
    def __init__(
        self,
        db: Session,
        directory: ScopeDirectory,
        *,
        num_slots: Optional[int] = None,
    ):
        super().__init__(db)
        self.repository = WeekBlockIndexRepository(db)
        self.directory = directory
        self.num_slots = num_slots or settings.num_slots

    def _descriptor(self, scope_id: str, year: int, week: int, start_row: int) -> BlockDescriptor:
        return BlockDescriptor(
            scope_id=scope_id,
            year=year,
            week=week,
            month=month_label(year, week),
            start_row=start_row,
            end_row=start_row + self.num_slots - 1,
        )

    @BaseService.measure_operation("index_lookup")
    def lookup(self, scope_id: str, year: int, week: int) -> Optional[BlockDescriptor]:
        """
        Indexed location of a block.

        A hit for a scope that no longer exists deletes the stale entry and
        reports a miss.
        """
        entry = self.repository.find_entry(scope_id, year, week)
        if entry is None:
            return None

        if not self.directory.scope_exists(scope_id):
            with self.transaction():
                self.repository.delete_entry(scope_id, year, week)
            logger.info(
                "Purged stale index entry for retired scope",
                extra={"scope_id": scope_id, "year": year, "week": week},
            )
            return None

        return self._descriptor(scope_id, year, week, entry.start_row)

    @BaseService.measure_operation("index_upsert")
    def upsert(self, scope_id: str, year: int, week: int, start_row: int) -> bool:
        """Insert or update one entry; False when it already matched."""
        with self.transaction():
            return self.repository.upsert_entry(scope_id, year, week, start_row)

    @BaseService.measure_operation("index_batch_upsert")
    def batch_upsert(self, scope_id: str, entries: Iterable[IndexItem]) -> int:
        """
        Bulk insert-or-update for one scope.

        Existing rows are loaded once and only entries that are new or point
        at a different row are written.

        Returns:
            Number of entries written
        """
        wanted: Dict[Tuple[int, int], int] = {(year, week): row for year, week, row in entries}
        if not wanted:
            return 0

        with self.transaction():
            existing = {(e.year, e.week): e for e in self.repository.list_for_scope(scope_id)}
            inserts = []
            written = 0
            for (year, week), start_row in sorted(wanted.items()):
                entry = existing.get((year, week))
                if entry is None:
                    inserts.append(
                        {"scope_id": scope_id, "year": year, "week": week, "start_row": start_row}
                    )
                elif entry.start_row != start_row:
                    entry.start_row = start_row
                    written += 1
            if inserts:
                self.repository.bulk_create(inserts)
            self.repository.flush()

        written += len(inserts)
        self.log_operation("index_batch_upsert", scope_id=scope_id, written=written)
        return written

    @BaseService.measure_operation("index_remove_scope")
    def remove_all_for_scope(self, scope_id: str) -> int:
        with self.transaction():
            return self.repository.delete_for_scope(scope_id)

    def list_for_scope(self, scope_id: str) -> List[BlockDescriptor]:
        """Every entry of a scope, ascending by (year, week)."""
        return [
            self._descriptor(e.scope_id, e.year, e.week, e.start_row)
            for e in self.repository.list_for_scope(scope_id)
        ]

    def list_all(self) -> List[Tuple[str, int, int, int]]:
        return self.repository.snapshot()

    @BaseService.measure_operation("index_replace_all")
    def replace_all(self, entries: Iterable[Tuple[str, int, int, int]]) -> Tuple[int, int]:
        """
        Clear the index and write ``entries`` in one transaction.

        Returns:
            (entries removed, entries written)
        """
        rows = [
            {"scope_id": scope_id, "year": year, "week": week, "start_row": start_row}
            for scope_id, year, week, start_row in sorted(entries)
        ]
        with self.transaction():
            removed = self.repository.delete_all()
            if rows:
                self.repository.bulk_create(rows)
        return removed, len(rows)
