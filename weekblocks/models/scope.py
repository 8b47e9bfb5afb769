"""Default backing tables for the scope directory and membership collaborators."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Scope(Base):
    """A team/unit owning one row region of the block store."""

    __tablename__ = "schedule_scopes"

    scope_id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    last_activity_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    retired_at = Column(DateTime(timezone=True), nullable=True)

    members = relationship(
        "ScopeMember",
        back_populates="scope",
        cascade="all, delete-orphan",
        order_by="ScopeMember.display_name",
    )

    def __repr__(self) -> str:
        return f"<Scope {self.scope_id} active={self.is_active}>"


class ScopeMember(Base):
    __tablename__ = "schedule_scope_members"
    __table_args__ = (
        UniqueConstraint("scope_id", "initials", name="uq_schedule_scope_members_initials"),
    )

    id = Column(String(26), primary_key=True, default=generate_ulid)
    scope_id = Column(
        String(64),
        ForeignKey("schedule_scopes.scope_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    display_name = Column(String(50), nullable=False)
    initials = Column(String(4), nullable=False)
    role = Column(String(20), nullable=False, default="member")

    scope = relationship("Scope", back_populates="members")
