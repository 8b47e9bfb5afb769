"""Persistent location index: (scope, year, week) -> block start row."""

from __future__ import annotations

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from ..core.ulid_helper import generate_ulid
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class WeekBlockIndexEntry(Base):
    __tablename__ = "week_block_index"
    __table_args__ = (
        UniqueConstraint("scope_id", "year", "week", name="uq_week_block_index_key"),
    )

    id = Column(String(26), primary_key=True, default=generate_ulid)
    scope_id = Column(String(64), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    week = Column(Integer, nullable=False)
    start_row = Column(Integer, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        onupdate=_now_utc,
        server_default=sa.func.now(),
    )

    def __repr__(self) -> str:
        return f"<WeekBlockIndexEntry {self.scope_id} {self.year}-W{self.week} @{self.start_row}>"
