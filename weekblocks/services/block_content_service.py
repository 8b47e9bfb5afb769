# weekblocks/services/block_content_service.py
"""
Block Content Service

Reads and writes what lives inside a located block: the time-slot x day
availability grid and the two per-block fields (roster snapshot and
changelog) kept on the block's first row.

Each grid cell holds a sorted, comma-separated set of upper-case member
tokens. Every write invalidates the block's cached content.
"""

from datetime import datetime, timezone
import json
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import DAY_COLUMNS
from ..core.exceptions import (
    PartialAvailabilityWriteException,
    RepositoryException,
    StoreAccessFailure,
)
from ..models.block_row import BlockRow
from ..repositories.block_row_repository import BlockRowRepository
from ..schemas.week_block import (
    AvailabilityChange,
    AvailabilityWriteResult,
    BlockDescriptor,
    BlockReadError,
    CellAvailability,
    MultiWeekWriteResult,
    StructuredAvailability,
    TimeSlotAvailability,
    WeekWriteOutcome,
)
from ..utils.week_helpers import block_key, current_iso_week, iso_weeks_from, week_label
from .base import BaseService
from .block_cache import BlockCache
from .block_lookup_service import BlockLookupService
from .collaborators import RosterEntry, ScopeDirectory
from .location_index_service import LocationIndexService

logger = logging.getLogger(__name__)

CELL_SEPARATOR = ","
CELL_JOINER = ", "

BlockReadResult = Union[StructuredAvailability, BlockReadError]


def parse_cell(value: Optional[str]) -> List[str]:
    """'AB, CD' -> ['AB', 'CD']; blanks and repeats dropped, order kept."""
    tokens: List[str] = []
    for raw in (value or "").split(CELL_SEPARATOR):
        token = raw.strip()
        if token and token not in tokens:
            tokens.append(token)
    return tokens


def format_cell(tokens: Sequence[str]) -> str:
    return CELL_JOINER.join(sorted({t.strip().upper() for t in tokens if t.strip()}))


class BlockContentService(BaseService):
    def __init__(
        self,
        db: Session,
        *,
        cache: BlockCache,
        lookup: BlockLookupService,
        index: LocationIndexService,
        directory: Optional[ScopeDirectory] = None,
        day_labels: Optional[List[str]] = None,
        changelog_sentinel: Optional[str] = None,
    ):
        super().__init__(db)
        self.repository = BlockRowRepository(db)
        self.cache = cache
        self.lookup = lookup
        self.index = index
        self.directory = directory
        self.day_labels = list(day_labels or settings.day_labels)
        self.changelog_sentinel = changelog_sentinel or settings.changelog_sentinel

    # Helpers

    def _day_column(self, day: str) -> Optional[str]:
        """Grid column for a day given as header label ('Mon') or column name ('mon')."""
        wanted = day.strip().lower()
        for label, column in zip(self.day_labels, DAY_COLUMNS):
            if wanted in (label.lower(), column):
                return column
        return None

    def _block_problem(self, block: BlockDescriptor, rows: Sequence[BlockRow]) -> Optional[str]:
        """Why ``rows`` are not the block the descriptor names, or None."""
        if not rows or rows[0].row_number != block.start_row:
            return "block start row is empty"
        if rows[0].block_key != block.block_key:
            return f"row {block.start_row} holds {rows[0].block_key!r}, not {block.block_key}"
        if len(rows) != block.num_rows:
            return f"expected {block.num_rows} rows, found {len(rows)}"
        label = week_label(block.week)
        for row in rows:
            if row.year != block.year or row.week_label != label:
                return f"row {row.row_number} does not belong to {block.block_key}"
        return None

    def _load_block_rows(self, block: BlockDescriptor) -> List[BlockRow]:
        """Rows of the block, verified against its header; raises StoreAccessFailure."""
        try:
            rows = self.repository.get_rows_in_range(block.scope_id, block.start_row, block.end_row)
        except RepositoryException as e:
            raise StoreAccessFailure(str(e), details={"scope_id": block.scope_id}) from e

        problem = self._block_problem(block, rows)
        if problem is not None:
            self.cache.invalidate_location(block.scope_id, block.year, block.week)
            raise StoreAccessFailure(
                f"Block {block.block_key} of scope {block.scope_id} moved: {problem}",
                details={"scope_id": block.scope_id, "start_row": block.start_row},
            )
        return rows

    def _header_row(self, block: BlockDescriptor) -> BlockRow:
        return self._load_block_rows(block)[0]

    # Reads

    @BaseService.measure_operation("read_block")
    def read_block(self, block: BlockDescriptor) -> BlockReadResult:
        """
        Parsed availability grid of a block.

        Failures come back as a BlockReadError rather than raising; they are
        never cached. A descriptor whose start row no longer carries the
        block's header also evicts the cached location.
        """
        cached = self.cache.get_content(block.scope_id, block.year, block.week)
        if cached is not None and cached.start_row == block.start_row:
            return cached

        try:
            rows = self.repository.get_rows_in_range(block.scope_id, block.start_row, block.end_row)
            scope_header = self.repository.get_row(block.scope_id, 1)
        except (RepositoryException, SQLAlchemyError) as e:
            logger.warning(
                "Block read failed for %s %s",
                block.scope_id,
                block.block_key,
                extra={"scope_id": block.scope_id, "error": str(e), "error_type": type(e).__name__},
            )
            return self._read_error(block, "STORE_ACCESS_FAILURE", str(e))

        problem = self._block_problem(block, rows)
        if problem is not None:
            self.cache.invalidate_location(block.scope_id, block.year, block.week)
            logger.warning(
                "Malformed block read for %s %s: %s",
                block.scope_id,
                block.block_key,
                problem,
                extra={"scope_id": block.scope_id, "start_row": block.start_row},
            )
            return self._read_error(block, "MALFORMED_BLOCK", problem)

        day_headers = [
            (getattr(scope_header, column) if scope_header is not None else "") or label
            for column, label in zip(DAY_COLUMNS, self.day_labels)
        ]
        slots = []
        for row in rows:
            cells = []
            for column, day in zip(DAY_COLUMNS, day_headers):
                occupants = parse_cell(getattr(row, column))
                cells.append(
                    CellAvailability(
                        time=row.time_label or "",
                        day=day,
                        occupants=occupants,
                        count=len(occupants),
                    )
                )
            slots.append(TimeSlotAvailability(time=row.time_label or "", cells=cells))

        content = StructuredAvailability(
            scope_id=block.scope_id,
            year=block.year,
            week=block.week,
            month=rows[0].month_label or block.month,
            start_row=block.start_row,
            end_row=block.end_row,
            day_headers=day_headers,
            slots=slots,
        )
        self.cache.put_content(content)
        return content

    @staticmethod
    def _read_error(block: BlockDescriptor, code: str, message: str) -> BlockReadError:
        return BlockReadError(
            error=message,
            code=code,
            scope_id=block.scope_id,
            year=block.year,
            week=block.week,
            details={"start_row": block.start_row, "end_row": block.end_row},
        )

    def read_week_range(
        self, scope_id: str, start_year: int, start_week: int, count: int
    ) -> List[StructuredAvailability]:
        """Content of ``count`` consecutive weeks; weeks that do not resolve are skipped."""
        results: List[StructuredAvailability] = []
        for year, week in iso_weeks_from(start_year, start_week, count):
            block = self.lookup.resolve(scope_id, year, week)
            if block is None:
                continue
            content = self.read_block(block)
            if isinstance(content, BlockReadError):
                logger.warning(
                    "Skipping unreadable week %s in range read",
                    block.block_key,
                    extra={"scope_id": scope_id, "code": content.code},
                )
                continue
            results.append(content)
        return results

    # Availability writes

    @BaseService.measure_operation("write_availability_delta")
    def write_availability_delta(
        self,
        block: BlockDescriptor,
        changes: Sequence[AvailabilityChange],
        changed_by: Optional[str] = None,
    ) -> AvailabilityWriteResult:
        """
        Add or remove member tokens in individual grid cells.

        Cells that name an unknown time slot or day are counted as invalid and
        skipped. Each modified cell is committed on its own; when a later cell
        fails the earlier ones stay applied and PartialAvailabilityWriteException
        reports how far the write got.
        """
        rows = self._load_block_rows(block)
        by_time: Dict[str, BlockRow] = {row.time_label: row for row in rows if row.time_label}

        modified = invalid = 0
        failure: Optional[Exception] = None
        for change in changes:
            row = by_time.get(change.time_slot.strip())
            column = self._day_column(change.day)
            if row is None or column is None or not change.member:
                invalid += 1
                continue

            tokens = parse_cell(getattr(row, column))
            if change.action == "add":
                if change.member in tokens:
                    continue
                tokens.append(change.member)
            else:
                if change.member not in tokens:
                    continue
                tokens.remove(change.member)

            try:
                with self.transaction():
                    setattr(row, column, format_cell(tokens))
                    self.repository.flush()
            except StoreAccessFailure as e:
                failure = e
                break
            modified += 1

        if modified or failure is not None:
            self.cache.invalidate_content(block.scope_id, block.year, block.week)

        if modified:
            self._record_activity(block, modified, changed_by)

        if failure is not None:
            logger.error(
                "Availability write for %s %s stopped after %d of %d cells",
                block.scope_id,
                block.block_key,
                modified,
                len(changes),
                extra={"scope_id": block.scope_id, "error": str(failure)},
            )
            raise PartialAvailabilityWriteException(
                f"Applied {modified} of {len(changes)} availability changes before a write failed",
                cells_requested=len(changes),
                cells_modified=modified,
                invalid_cells=invalid,
            ) from failure

        return AvailabilityWriteResult(
            cells_requested=len(changes), cells_modified=modified, invalid_cells=invalid
        )

    @BaseService.measure_operation("write_availability_weeks")
    def write_availability_weeks(
        self,
        scope_id: str,
        weekly_changes: Mapping[Tuple[int, int], Sequence[AvailabilityChange]],
        changed_by: Optional[str] = None,
    ) -> MultiWeekWriteResult:
        """
        Apply availability changes to several weeks of one scope.

        Weeks are written in (year, week) order. A week whose block does not
        resolve is skipped and all of its changes count as invalid. A week
        whose write fails is reported as failed; later weeks are still written.
        """
        result = MultiWeekWriteResult()
        for (year, week), changes in sorted(weekly_changes.items()):
            if not changes:
                continue
            requested = len(changes)

            block = self.lookup.resolve(scope_id, year, week)
            if block is None:
                logger.warning(
                    "Week %s not found; skipping %d availability changes",
                    block_key(year, week),
                    requested,
                    extra={"scope_id": scope_id},
                )
                outcome = WeekWriteOutcome(
                    year=year,
                    week=week,
                    status="not_found",
                    cells_requested=requested,
                    invalid_cells=requested,
                )
            else:
                try:
                    written = self.write_availability_delta(block, changes, changed_by)
                except PartialAvailabilityWriteException as e:
                    outcome = WeekWriteOutcome(
                        year=year,
                        week=week,
                        status="failed",
                        cells_requested=requested,
                        cells_modified=e.cells_modified,
                        invalid_cells=e.invalid_cells,
                        error=e.message,
                    )
                except StoreAccessFailure as e:
                    outcome = WeekWriteOutcome(
                        year=year,
                        week=week,
                        status="failed",
                        cells_requested=requested,
                        error=e.message,
                    )
                else:
                    outcome = WeekWriteOutcome(
                        year=year,
                        week=week,
                        status="applied",
                        cells_requested=requested,
                        cells_modified=written.cells_modified,
                        invalid_cells=written.invalid_cells,
                    )

            result.weeks.append(outcome)
            result.cells_modified += outcome.cells_modified
            result.invalid_cells += outcome.invalid_cells
            if outcome.status == "failed":
                result.failed_weeks.append(block_key(year, week))

        self.log_operation(
            "write_availability_weeks",
            scope_id=scope_id,
            weeks_requested=len(result.weeks),
            cells_modified=result.cells_modified,
            invalid_cells=result.invalid_cells,
            failed_weeks=result.failed_weeks,
        )
        return result

    def _record_activity(
        self, block: BlockDescriptor, modified: int, changed_by: Optional[str]
    ) -> None:
        if changed_by:
            stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")
            try:
                self.append_changelog(
                    block, f"{stamp} {changed_by} updated {modified} availability slots"
                )
            except StoreAccessFailure as e:
                logger.warning(
                    "Changelog append failed after availability write",
                    extra={"scope_id": block.scope_id, "error": str(e)},
                )
        if self.directory is not None:
            try:
                with self.transaction():
                    self.directory.touch(block.scope_id)
            except StoreAccessFailure as e:
                logger.warning(
                    "Failed to record scope activity",
                    extra={"scope_id": block.scope_id, "error": str(e)},
                )

    @BaseService.measure_operation("remove_member_from_scope")
    def remove_member_from_scope(
        self,
        scope_id: str,
        member: str,
        from_week: Optional[Tuple[int, int]] = None,
    ) -> int:
        """
        Clear a member token from every indexed block at or after ``from_week``.

        Defaults to the current ISO week, so past weeks keep their history.

        Returns:
            Number of cells modified
        """
        token = member.strip().upper()
        start = from_week or current_iso_week()
        modified = 0

        for block in self.index.list_for_scope(scope_id):
            if (block.year, block.week) < start:
                continue
            try:
                rows = self._load_block_rows(block)
            except StoreAccessFailure as e:
                logger.warning(
                    "Skipping block %s while removing member",
                    block.block_key,
                    extra={"scope_id": scope_id, "error": str(e)},
                )
                continue

            touched = 0
            with self.transaction():
                for row in rows:
                    for column in DAY_COLUMNS:
                        tokens = parse_cell(getattr(row, column))
                        if token in tokens:
                            tokens.remove(token)
                            setattr(row, column, format_cell(tokens))
                            touched += 1
                self.repository.flush()

            if touched:
                self.cache.invalidate_content(scope_id, block.year, block.week)
                modified += touched

        self.log_operation("remove_member_from_scope", scope_id=scope_id, cells_modified=modified)
        return modified

    # Roster snapshot and changelog

    def read_roster_snapshot(self, block: BlockDescriptor) -> List[RosterEntry]:
        raw = self._header_row(block).roster_snapshot
        try:
            roster = json.loads(raw or "[]")
        except ValueError:
            logger.warning("Unreadable roster snapshot", extra={"scope_id": block.scope_id})
            return []
        return roster if isinstance(roster, list) else []

    @BaseService.measure_operation("update_roster_snapshot")
    def update_roster_snapshot(self, block: BlockDescriptor, roster: List[RosterEntry]) -> None:
        """Overwrite the block's roster snapshot with ``roster``."""
        header = self._header_row(block)
        with self.transaction():
            header.roster_snapshot = json.dumps(roster)
            self.repository.flush()
        self.cache.invalidate_content(block.scope_id, block.year, block.week)

    def read_changelog(self, block: BlockDescriptor) -> str:
        return self._header_row(block).changelog or self.changelog_sentinel

    @BaseService.measure_operation("append_changelog")
    def append_changelog(self, block: BlockDescriptor, entry: str) -> str:
        """
        Append one line to the block's changelog.

        The pristine sentinel is replaced outright; later entries are
        newline-joined. Returns the new changelog text.
        """
        header = self._header_row(block)
        current = header.changelog or ""
        if not current.strip() or current == self.changelog_sentinel:
            updated = entry
        else:
            updated = f"{current}\n{entry}"

        with self.transaction():
            header.changelog = updated
            self.repository.flush()
        self.cache.invalidate_content(block.scope_id, block.year, block.week)
        return updated
