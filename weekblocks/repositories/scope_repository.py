# weekblocks/repositories/scope_repository.py
"""
Data access for the default scope directory and membership tables.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.scope import Scope, ScopeMember
from .base_repository import BaseRepository


class ScopeRepository(BaseRepository[Scope]):
    """Repository for Scope and its members."""

    def __init__(self, db: Session):
        super().__init__(db, Scope)

    def get_scope(self, scope_id: str) -> Optional[Scope]:
        return self.find_one_by(scope_id=scope_id)

    def is_active(self, scope_id: str) -> bool:
        return self.exists(scope_id=scope_id, is_active=True)

    def list_active_ids(self) -> List[str]:
        try:
            rows = (
                self.db.query(Scope.scope_id)
                .filter(Scope.is_active.is_(True))
                .order_by(Scope.scope_id)
                .all()
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error("Error listing active scopes: %s", e)
            raise RepositoryException(f"Failed to list active scopes: {e}") from e

    def list_idle_ids(self, cutoff: datetime) -> List[str]:
        """Active scopes whose last activity is older than ``cutoff``."""
        try:
            rows = (
                self.db.query(Scope.scope_id)
                .filter(Scope.is_active.is_(True), Scope.last_activity_at < cutoff)
                .order_by(Scope.scope_id)
                .all()
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error("Error listing idle scopes: %s", e)
            raise RepositoryException(f"Failed to list idle scopes: {e}") from e

    def touch(self, scope_id: str, when: datetime) -> bool:
        scope = self.get_scope(scope_id)
        if scope is None:
            return False
        scope.last_activity_at = when
        self.flush()
        return True

    def mark_retired(self, scope_id: str, when: datetime) -> bool:
        scope = self.get_scope(scope_id)
        if scope is None or not scope.is_active:
            return False
        scope.is_active = False
        scope.retired_at = when
        self.flush()
        return True

    def get_members(self, scope_id: str) -> List[ScopeMember]:
        try:
            return (
                self.db.query(ScopeMember)
                .filter(ScopeMember.scope_id == scope_id)
                .order_by(ScopeMember.display_name)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error("Error loading members for scope %s: %s", scope_id, e)
            raise RepositoryException(f"Failed to load scope members: {e}") from e
