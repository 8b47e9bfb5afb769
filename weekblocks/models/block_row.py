"""Rows of the append-only week block store."""

from __future__ import annotations

from sqlalchemy import Column, Integer, String, Text, UniqueConstraint

from ..core.ulid_helper import generate_ulid
from ..database import Base


class BlockRow(Base):
    """
    One row of a scope region.

    Row 1 of a region is the scope header (day labels). Every block occupies
    ``block_length`` consecutive rows; its first row carries the block header
    (``block_key``/``block_length``) and the two merged per-block fields.
    """

    __tablename__ = "week_block_rows"
    __table_args__ = (
        UniqueConstraint("scope_id", "row_number", name="uq_week_block_rows_scope_row"),
        UniqueConstraint("scope_id", "block_key", name="uq_week_block_rows_scope_block_key"),
    )

    id = Column(String(26), primary_key=True, default=generate_ulid)
    scope_id = Column(String(64), nullable=False)
    row_number = Column(Integer, nullable=False)

    # Metadata columns
    year = Column(Integer, nullable=True)
    month_label = Column(String(16), nullable=True)
    week_label = Column(String(8), nullable=True)
    time_label = Column(String(16), nullable=True)

    # Availability grid, Monday first
    mon = Column(Text, nullable=False, default="")
    tue = Column(Text, nullable=False, default="")
    wed = Column(Text, nullable=False, default="")
    thu = Column(Text, nullable=False, default="")
    fri = Column(Text, nullable=False, default="")
    sat = Column(Text, nullable=False, default="")
    sun = Column(Text, nullable=False, default="")

    # Self-describing block header (first row of a block only)
    block_key = Column(String(16), nullable=True)
    block_length = Column(Integer, nullable=True)

    # Merged per-block fields (first row of a block only)
    roster_snapshot = Column(Text, nullable=True)
    changelog = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<BlockRow scope={self.scope_id} row={self.row_number} "
            f"{self.year}-{self.week_label} {self.time_label}>"
        )
