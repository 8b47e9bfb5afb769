# weekblocks/services/block_layout_service.py
"""
Block Layout Service

Lays out week blocks in a scope region. A region starts with the scope
header row (day labels); blocks are appended after the last populated row
and never move once written.

Layout:
    row 1               Time | Mon | Tue | ... | Sun
    row 2 .. 2+n-1      first block, one row per time slot
    row 2+n ..          next block
"""

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.block_lock import ScopeLockManager
from ..core.config import settings
from ..core.constants import (
    DAY_COLUMNS,
    HEADER_TIME_LABEL,
    MAX_BLOCK_YEAR,
    MAX_ISO_WEEK,
    MIN_BLOCK_YEAR,
    MIN_ISO_WEEK,
)
from ..core.exceptions import (
    ConflictException,
    DuplicateBlockException,
    NotFoundException,
    RepositoryException,
    StoreAccessFailure,
    ValidationException,
)
from ..repositories.block_row_repository import BlockRowRepository
from ..schemas.week_block import BlockDescriptor, EnsureBlockResult
from ..utils.week_helpers import block_key, is_valid_iso_week, month_label, week_label
from .base import BaseService
from .block_cache import BlockCache
from .block_lookup_service import BlockLookupService
from .collaborators import MembershipProvider, RosterEntry, ScopeDirectory
from .location_index_service import LocationIndexService

logger = logging.getLogger(__name__)


class BlockLayoutService(BaseService):
    """Creates, finds room for, and discards week blocks."""

    def __init__(
        self,
        db: Session,
        *,
        lookup: BlockLookupService,
        index: LocationIndexService,
        cache: BlockCache,
        locks: ScopeLockManager,
        directory: ScopeDirectory,
        membership: Optional[MembershipProvider] = None,
        time_slots: Optional[List[str]] = None,
        day_labels: Optional[List[str]] = None,
        header_rows: Optional[int] = None,
        changelog_sentinel: Optional[str] = None,
    ):
        super().__init__(db)
        self.repository = BlockRowRepository(db)
        self.lookup = lookup
        self.index = index
        self.cache = cache
        self.locks = locks
        self.directory = directory
        self.membership = membership
        self.time_slots = list(time_slots or settings.time_slots)
        self.day_labels = list(day_labels or settings.day_labels)
        self.header_rows = header_rows or settings.header_rows
        self.changelog_sentinel = changelog_sentinel or settings.changelog_sentinel

    @property
    def num_slots(self) -> int:
        return len(self.time_slots)

    @property
    def data_start_row(self) -> int:
        return self.header_rows + 1

    @staticmethod
    def _validate_key(year: int, week: int) -> None:
        if not MIN_BLOCK_YEAR <= year <= MAX_BLOCK_YEAR:
            raise ValidationException(f"Year {year} outside {MIN_BLOCK_YEAR}-{MAX_BLOCK_YEAR}")
        if not MIN_ISO_WEEK <= week <= MAX_ISO_WEEK or not is_valid_iso_week(year, week):
            raise ValidationException(f"{year} has no ISO week {week}")

    def _header_rows(self, scope_id: str) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for row_number in range(1, self.header_rows + 1):
            row: Dict[str, Any] = {
                "scope_id": scope_id,
                "row_number": row_number,
                "time_label": HEADER_TIME_LABEL if row_number == 1 else "",
            }
            if row_number == 1:
                row.update(dict(zip(DAY_COLUMNS, self.day_labels)))
            rows.append(row)
        return rows

    def _block_rows(
        self, scope_id: str, year: int, week: int, start_row: int, roster: List[RosterEntry]
    ) -> List[Dict[str, Any]]:
        month = month_label(year, week)
        rows: List[Dict[str, Any]] = []
        for offset, slot in enumerate(self.time_slots):
            row: Dict[str, Any] = {
                "scope_id": scope_id,
                "row_number": start_row + offset,
                "year": year,
                "month_label": month,
                "week_label": week_label(week),
                "time_label": slot,
            }
            if offset == 0:
                row.update(
                    block_key=block_key(year, week),
                    block_length=self.num_slots,
                    roster_snapshot=json.dumps(roster),
                    changelog=self.changelog_sentinel,
                )
            rows.append(row)
        return rows

    @BaseService.measure_operation("create_block")
    def create_block(
        self,
        scope_id: str,
        year: int,
        week: int,
        start_row: int,
        roster: Optional[List[RosterEntry]] = None,
    ) -> BlockDescriptor:
        """
        Write the rows of a new block starting at ``start_row``.

        The grid starts empty, the roster snapshot holds ``roster`` (or an
        empty list) and the changelog holds the pristine sentinel. The scope
        header row is written first when the region is still empty.

        Raises:
            ValidationException: year/week out of range, or start row inside the header
            DuplicateBlockException: the scope already has a block for this key
            ConflictException: the target rows are already occupied
            StoreAccessFailure: the underlying read or write failed
        """
        self._validate_key(year, week)
        if start_row < self.data_start_row:
            raise ValidationException(
                f"Start row {start_row} overlaps the scope header",
                details={"start_row": start_row, "data_start_row": self.data_start_row},
            )

        key = block_key(year, week)
        end_row = start_row + self.num_slots - 1
        try:
            existing = self.repository.find_block_header(scope_id, key)
            occupied = self.repository.get_rows_in_range(scope_id, start_row, end_row)
        except RepositoryException as e:
            raise StoreAccessFailure(str(e), details={"scope_id": scope_id}) from e

        if existing is not None:
            raise DuplicateBlockException(scope_id, year, week, start_row=existing.row_number)
        if occupied:
            raise ConflictException(
                f"Rows {start_row}-{end_row} of scope {scope_id} are already occupied",
                details={"scope_id": scope_id, "start_row": start_row, "end_row": end_row},
            )

        with self.transaction():
            rows = self._block_rows(scope_id, year, week, start_row, roster or [])
            if self.repository.get_row(scope_id, 1) is None:
                rows = self._header_rows(scope_id) + rows
            self.repository.insert_rows(rows)

        self.log_operation("create_block", scope_id=scope_id, block_key=key, start_row=start_row)
        return BlockDescriptor(
            scope_id=scope_id,
            year=year,
            week=week,
            month=month_label(year, week),
            start_row=start_row,
            end_row=end_row,
        )

    def next_available_position(self, scope_id: str) -> int:
        """First row after the last populated row, or the header offset for an empty scope."""
        try:
            last = self.repository.get_last_row_number(scope_id)
        except RepositoryException as e:
            raise StoreAccessFailure(str(e), details={"scope_id": scope_id}) from e
        if last is None or last < self.data_start_row:
            return self.data_start_row
        return last + 1

    @BaseService.measure_operation("ensure_block_exists")
    def ensure_block_exists(self, scope_id: str, year: int, week: int) -> EnsureBlockResult:
        """
        Find-or-create a block.

        The unlocked resolve serves the common case. On a miss the scope lock
        is taken and the block is resolved again before a position is chosen,
        so concurrent callers create exactly one block.
        """
        self._validate_key(year, week)
        block = self.lookup.resolve(scope_id, year, week)
        if block is not None:
            return EnsureBlockResult(created=False, block=block)

        if not self.directory.scope_exists(scope_id):
            raise NotFoundException(
                f"Scope {scope_id} does not exist or is retired",
                details={"scope_id": scope_id},
            )

        with self.locks.hold_scope(scope_id):
            # Another writer may have created it while we waited
            self.db.expire_all()
            block = self.lookup.resolve(scope_id, year, week)
            if block is not None:
                return EnsureBlockResult(created=False, block=block)

            roster = self.membership.current_roster(scope_id) if self.membership else []
            block = self.create_block(
                scope_id, year, week, self.next_available_position(scope_id), roster=roster
            )
            self.index.upsert(scope_id, year, week, block.start_row)
            self.cache.put_location(block)

        return EnsureBlockResult(created=True, block=block)

    @BaseService.measure_operation("discard_scope")
    def discard_scope(self, scope_id: str) -> int:
        """Delete every row of a scope region. Returns the number of rows removed."""
        with self.transaction():
            removed = self.repository.delete_scope_rows(scope_id)
        self.log_operation("discard_scope", scope_id=scope_id, rows_removed=removed)
        return removed
