# weekblocks/services/block_scanner.py
"""
Full scan of a scope region: ground truth for lookups, validation and rebuild.

A block is recognised only from its explicit header. The first row carries
``block_key``/``block_length``; the next ``block_length - 1`` rows must be
consecutive, carry no header of their own, and agree with the first row on
year and week label. Any run that fails those checks is reported as
malformed and skipped, and the scan resumes at the following row.
"""

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.block_row import BlockRow
from ..repositories.block_row_repository import BlockRowRepository
from ..schemas.week_block import BlockDescriptor
from ..utils.week_helpers import parse_block_key, parse_week_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScannedBlock:
    year: int
    week: int
    start_row: int
    end_row: int
    month: str = ""

    @property
    def key(self) -> Tuple[int, int]:
        return self.year, self.week


@dataclass(frozen=True)
class MalformedRun:
    start_row: int
    end_row: int
    reason: str


@dataclass
class ScanResult:
    scope_id: str
    blocks: List[ScannedBlock] = field(default_factory=list)
    duplicates: List[ScannedBlock] = field(default_factory=list)
    malformed: List[MalformedRun] = field(default_factory=list)

    def find(self, year: int, week: int) -> Optional[ScannedBlock]:
        for block in self.blocks:
            if block.key == (year, week):
                return block
        return None

    def by_key(self) -> Dict[Tuple[int, int], ScannedBlock]:
        return {block.key: block for block in self.blocks}

    def descriptor(self, block: ScannedBlock) -> BlockDescriptor:
        return BlockDescriptor(
            scope_id=self.scope_id,
            year=block.year,
            week=block.week,
            month=block.month,
            start_row=block.start_row,
            end_row=block.end_row,
        )


class BlockScanner:
    """Groups the rows of a scope region into week blocks."""

    def __init__(
        self,
        db: Session,
        *,
        num_slots: Optional[int] = None,
        data_start_row: Optional[int] = None,
    ):
        self.repository = BlockRowRepository(db)
        self.num_slots = num_slots or settings.num_slots
        self.data_start_row = data_start_row or settings.data_start_row

    def scan_scope(self, scope_id: str) -> ScanResult:
        rows = self.repository.get_scope_rows(scope_id, from_row=self.data_start_row)
        result = self.group_rows(scope_id, rows)
        for run in result.malformed:
            logger.warning(
                "Skipping malformed rows %d-%d in scope %s: %s",
                run.start_row,
                run.end_row,
                scope_id,
                run.reason,
                extra={"scope_id": scope_id, "start_row": run.start_row, "reason": run.reason},
            )
        for dup in result.duplicates:
            logger.warning(
                "Duplicate block %d-W%02d at row %d in scope %s ignored",
                dup.year,
                dup.week,
                dup.start_row,
                scope_id,
                extra={"scope_id": scope_id, "start_row": dup.start_row},
            )
        return result

    def group_rows(self, scope_id: str, rows: Sequence[BlockRow]) -> ScanResult:
        result = ScanResult(scope_id=scope_id)
        seen: Dict[Tuple[int, int], ScannedBlock] = {}
        i = 0

        while i < len(rows):
            row = rows[i]
            if row.block_key is None:
                # Headerless rows up to the next header form one malformed run
                j = i
                while j + 1 < len(rows) and rows[j + 1].block_key is None:
                    j += 1
                result.malformed.append(
                    MalformedRun(
                        row.row_number, rows[j].row_number, "rows outside any block header"
                    )
                )
                i = j + 1
                continue

            key = parse_block_key(row.block_key)
            if key is None:
                result.malformed.append(
                    MalformedRun(
                        row.row_number,
                        row.row_number,
                        f"unreadable block header {row.block_key!r}",
                    )
                )
                i += 1
                continue

            candidate = rows[i : i + self.num_slots]
            reason = self._check_run(candidate, key)
            if reason is not None:
                result.malformed.append(MalformedRun(row.row_number, row.row_number, reason))
                i += 1
                continue

            block = ScannedBlock(
                year=key[0],
                week=key[1],
                start_row=row.row_number,
                end_row=candidate[-1].row_number,
                month=row.month_label or "",
            )
            if block.key in seen:
                result.duplicates.append(block)
            else:
                seen[block.key] = block
                result.blocks.append(block)
            i += self.num_slots

        return result

    def _check_run(
        self, candidate: Sequence[BlockRow], key: Tuple[int, int]
    ) -> Optional[str]:
        """Reason the run headed by ``key`` is not a well-formed block, or None."""
        first = candidate[0]
        if first.block_length != self.num_slots:
            return f"block length {first.block_length} != {self.num_slots}"
        if key != (first.year, parse_week_label(first.week_label)):
            return "block header disagrees with row metadata"
        if len(candidate) < self.num_slots:
            return "truncated block"
        for offset, row in enumerate(candidate[1:], start=1):
            if row.row_number != first.row_number + offset:
                return f"gap before row {row.row_number}"
            if row.block_key is not None:
                return f"block header inside block at row {row.row_number}"
            if row.year != first.year or row.week_label != first.week_label:
                return f"row {row.row_number} does not match block metadata"
        return None
