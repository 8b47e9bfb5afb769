"""Pydantic DTOs returned to collaborators of the block store."""

from .week_block import (
    AvailabilityChange,
    AvailabilityWriteResult,
    BlockDescriptor,
    BlockReadError,
    CellAvailability,
    EnsureBlockResult,
    IndexMismatch,
    MultiWeekWriteResult,
    RebuildReport,
    RepairReport,
    StructuredAvailability,
    TimeSlotAvailability,
    ValidationReport,
    WeekWriteOutcome,
)

__all__ = [
    "AvailabilityChange",
    "AvailabilityWriteResult",
    "BlockDescriptor",
    "BlockReadError",
    "CellAvailability",
    "EnsureBlockResult",
    "IndexMismatch",
    "MultiWeekWriteResult",
    "RebuildReport",
    "RepairReport",
    "StructuredAvailability",
    "TimeSlotAvailability",
    "ValidationReport",
    "WeekWriteOutcome",
]
