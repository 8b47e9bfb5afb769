# weekblocks/repositories/week_block_index_repository.py
"""
Data access for the shared location index table.
"""

from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.week_block_index import WeekBlockIndexEntry
from .base_repository import BaseRepository


class WeekBlockIndexRepository(BaseRepository[WeekBlockIndexEntry]):
    """Repository for WeekBlockIndexEntry."""

    def __init__(self, db: Session):
        super().__init__(db, WeekBlockIndexEntry)

    def find_entry(self, scope_id: str, year: int, week: int) -> Optional[WeekBlockIndexEntry]:
        return self.find_one_by(scope_id=scope_id, year=year, week=week)

    def upsert_entry(self, scope_id: str, year: int, week: int, start_row: int) -> bool:
        """
        Insert or update one entry.

        Returns:
            True when a row was written, False when it already matched
        """
        entry = self.find_entry(scope_id, year, week)
        if entry is None:
            self.create(scope_id=scope_id, year=year, week=week, start_row=start_row)
            return True
        if entry.start_row == start_row:
            return False
        entry.start_row = start_row
        self.flush()
        return True

    def list_for_scope(self, scope_id: str) -> List[WeekBlockIndexEntry]:
        try:
            return (
                self.db.query(WeekBlockIndexEntry)
                .filter(WeekBlockIndexEntry.scope_id == scope_id)
                .order_by(WeekBlockIndexEntry.year, WeekBlockIndexEntry.week)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error("Error listing index entries for scope %s: %s", scope_id, e)
            raise RepositoryException(f"Failed to list index entries: {e}") from e

    def list_all(self) -> List[WeekBlockIndexEntry]:
        try:
            return (
                self.db.query(WeekBlockIndexEntry)
                .order_by(
                    WeekBlockIndexEntry.scope_id,
                    WeekBlockIndexEntry.year,
                    WeekBlockIndexEntry.week,
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error("Error listing index entries: %s", e)
            raise RepositoryException(f"Failed to list index entries: {e}") from e

    def snapshot(self) -> List[Tuple[str, int, int, int]]:
        """(scope_id, year, week, start_row) for every entry, in key order."""
        return [(e.scope_id, e.year, e.week, e.start_row) for e in self.list_all()]

    def delete_entry(self, scope_id: str, year: int, week: int) -> bool:
        try:
            deleted = (
                self.db.query(WeekBlockIndexEntry)
                .filter(
                    WeekBlockIndexEntry.scope_id == scope_id,
                    WeekBlockIndexEntry.year == year,
                    WeekBlockIndexEntry.week == week,
                )
                .delete(synchronize_session=False)
            )
            self.db.flush()
            return bool(deleted)
        except SQLAlchemyError as e:
            self.logger.error("Error deleting index entry %s %d-W%d: %s", scope_id, year, week, e)
            raise RepositoryException(f"Failed to delete index entry: {e}") from e

    def delete_for_scope(self, scope_id: str) -> int:
        try:
            deleted = (
                self.db.query(WeekBlockIndexEntry)
                .filter(WeekBlockIndexEntry.scope_id == scope_id)
                .delete(synchronize_session=False)
            )
            self.db.flush()
            return int(deleted or 0)
        except SQLAlchemyError as e:
            self.logger.error("Error deleting index entries for scope %s: %s", scope_id, e)
            raise RepositoryException(f"Failed to delete index entries: {e}") from e

    def delete_all(self) -> int:
        """Clear the index table; the table itself is kept."""
        try:
            deleted = self.db.query(WeekBlockIndexEntry).delete(synchronize_session=False)
            self.db.flush()
            return int(deleted or 0)
        except SQLAlchemyError as e:
            self.logger.error("Error clearing index: %s", e)
            raise RepositoryException(f"Failed to clear index: {e}") from e
