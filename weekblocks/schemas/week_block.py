# weekblocks/schemas/week_block.py
"""
Week block schemas.

A block is addressed by (scope, year, ISO week). Descriptors carry the row
range only so the content accessor can reach the block; callers should not
hold on to raw row numbers across operations.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.constants import MAX_BLOCK_YEAR, MAX_ISO_WEEK, MIN_BLOCK_YEAR, MIN_ISO_WEEK

AvailabilityActionLiteral = Literal["add", "remove"]
WeekWriteStatusLiteral = Literal["applied", "not_found", "failed"]
MismatchCategoryLiteral = Literal[
    "missing_index_entry",
    "row_mismatch",
    "orphaned_index_entry",
    "duplicate_block",
]


class BlockDescriptor(BaseModel):
    """Location of one week block inside its scope region."""

    scope_id: str
    year: int = Field(ge=MIN_BLOCK_YEAR, le=MAX_BLOCK_YEAR)
    week: int = Field(ge=MIN_ISO_WEEK, le=MAX_ISO_WEEK)
    month: str = ""
    start_row: int = Field(ge=1)
    end_row: int = Field(ge=1)

    model_config = ConfigDict(frozen=True)

    @property
    def block_key(self) -> str:
        return f"{self.year}-W{self.week:02d}"

    @property
    def num_rows(self) -> int:
        return self.end_row - self.start_row + 1


class EnsureBlockResult(BaseModel):
    created: bool
    block: BlockDescriptor


class AvailabilityChange(BaseModel):
    """Add or remove one member token in one (time slot, day) cell."""

    time_slot: str
    day: str
    member: str
    action: AvailabilityActionLiteral = "add"

    @field_validator("member")
    @classmethod
    def normalize_member(cls, v: str) -> str:
        """Tokens are stored upper-cased."""
        return v.strip().upper()


class AvailabilityWriteResult(BaseModel):
    cells_requested: int
    cells_modified: int
    invalid_cells: int = 0


class WeekWriteOutcome(BaseModel):
    """What happened to one week of a multi-week availability write."""

    year: int
    week: int
    status: WeekWriteStatusLiteral
    cells_requested: int
    cells_modified: int = 0
    invalid_cells: int = 0
    error: Optional[str] = None


class MultiWeekWriteResult(BaseModel):
    weeks: List[WeekWriteOutcome] = Field(default_factory=list)
    cells_modified: int = 0
    invalid_cells: int = 0
    failed_weeks: List[str] = Field(default_factory=list)


class CellAvailability(BaseModel):
    time: str
    day: str
    occupants: List[str] = Field(default_factory=list)
    count: int = 0


class TimeSlotAvailability(BaseModel):
    time: str
    cells: List[CellAvailability]


class StructuredAvailability(BaseModel):
    """Parsed availability grid of one block."""

    scope_id: str
    year: int
    week: int
    month: str
    start_row: int
    end_row: int
    day_headers: List[str]
    slots: List[TimeSlotAvailability]

    def cell(self, time: str, day: str) -> Optional[CellAvailability]:
        """Look up one cell by time label and day header."""
        for slot in self.slots:
            if slot.time != time:
                continue
            for cell in slot.cells:
                if cell.day == day:
                    return cell
        return None


class BlockReadError(BaseModel):
    """Explicit error descriptor for a block that could not be read. Never cached."""

    error: str
    code: str
    scope_id: str
    year: int
    week: int
    details: Dict[str, Any] = Field(default_factory=dict)


class IndexMismatch(BaseModel):
    category: MismatchCategoryLiteral
    scope_id: str
    year: int
    week: int
    actual_row: Optional[int] = None
    indexed_row: Optional[int] = None


class ValidationReport(BaseModel):
    """Result of comparing the location index against scanned ground truth."""

    scopes_checked: int = 0
    total_entries: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    threshold: float = 0.1
    needs_rebuild: bool = False
    counts: Dict[str, int] = Field(default_factory=dict)
    mismatches: List[IndexMismatch] = Field(default_factory=list)
    checked_at: datetime


class RebuildReport(BaseModel):
    scopes_processed: int = 0
    blocks_indexed: int = 0
    entries_removed: int = 0
    malformed_runs: int = 0
    duplicate_blocks: int = 0


class RepairReport(BaseModel):
    validation: ValidationReport
    rebuild: Optional[RebuildReport] = None
