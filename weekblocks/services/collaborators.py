# weekblocks/services/collaborators.py
"""
Collaborator interfaces the block store depends on, plus SQL-backed defaults.

The hosting application owns scopes and memberships. The block store only
needs to know whether a scope exists, which scopes are active, and who is on
a scope's roster right now.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.orm import Session

from ..repositories.scope_repository import ScopeRepository

RosterEntry = Dict[str, Any]


class ScopeDirectory(Protocol):
    """Interface for the scope/team manager."""

    def scope_exists(self, scope_id: str) -> bool:
        """True while the scope is active."""
        ...

    def list_active_scopes(self) -> List[str]:
        ...

    def list_idle_scopes(self, cutoff: datetime) -> List[str]:
        """Active scopes with no activity since ``cutoff``."""
        ...

    def touch(self, scope_id: str, when: Optional[datetime] = None) -> None:
        ...

    def retire(self, scope_id: str) -> bool:
        """Mark a scope inactive; False when it was already retired or unknown."""
        ...


class MembershipProvider(Protocol):
    """Interface for the membership manager."""

    def current_roster(self, scope_id: str) -> List[RosterEntry]:
        ...


class SqlScopeDirectory:
    """ScopeDirectory over the ``schedule_scopes`` table."""

    def __init__(self, db: Session):
        self.repository = ScopeRepository(db)

    def scope_exists(self, scope_id: str) -> bool:
        return self.repository.is_active(scope_id)

    def list_active_scopes(self) -> List[str]:
        return self.repository.list_active_ids()

    def list_idle_scopes(self, cutoff: datetime) -> List[str]:
        return self.repository.list_idle_ids(cutoff)

    def touch(self, scope_id: str, when: Optional[datetime] = None) -> None:
        self.repository.touch(scope_id, when or datetime.now(timezone.utc))

    def retire(self, scope_id: str) -> bool:
        return self.repository.mark_retired(scope_id, datetime.now(timezone.utc))


class SqlMembershipProvider:
    """MembershipProvider over the ``schedule_scope_members`` table."""

    def __init__(self, db: Session):
        self.repository = ScopeRepository(db)

    def current_roster(self, scope_id: str) -> List[RosterEntry]:
        return [
            {"name": member.display_name, "initials": member.initials, "role": member.role}
            for member in self.repository.get_members(scope_id)
        ]
