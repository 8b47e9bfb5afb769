# weekblocks/repositories/block_row_repository.py
"""
Data access for the rows of each scope region.

Rows are addressed by (scope_id, row_number). This repository never
interprets block structure; grouping rows into blocks is the layout
service's job.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.block_row import BlockRow
from .base_repository import BaseRepository


class BlockRowRepository(BaseRepository[BlockRow]):
    """Repository for BlockRow."""

    def __init__(self, db: Session):
        super().__init__(db, BlockRow)

    def get_scope_rows(self, scope_id: str, *, from_row: int = 1) -> List[BlockRow]:
        """All rows of a scope region at or after ``from_row``, in row order."""
        try:
            return (
                self.db.query(BlockRow)
                .filter(BlockRow.scope_id == scope_id, BlockRow.row_number >= from_row)
                .order_by(BlockRow.row_number)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error("Error loading rows for scope %s: %s", scope_id, e)
            raise RepositoryException(f"Failed to load scope rows: {e}") from e

    def get_rows_in_range(self, scope_id: str, start_row: int, end_row: int) -> List[BlockRow]:
        try:
            return (
                self.db.query(BlockRow)
                .filter(
                    BlockRow.scope_id == scope_id,
                    BlockRow.row_number >= start_row,
                    BlockRow.row_number <= end_row,
                )
                .order_by(BlockRow.row_number)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(
                "Error loading rows %d-%d for scope %s: %s", start_row, end_row, scope_id, e
            )
            raise RepositoryException(f"Failed to load block rows: {e}") from e

    def get_row(self, scope_id: str, row_number: int) -> Optional[BlockRow]:
        try:
            return (
                self.db.query(BlockRow)
                .filter(BlockRow.scope_id == scope_id, BlockRow.row_number == row_number)
                .one_or_none()
            )
        except SQLAlchemyError as e:
            self.logger.error("Error loading row %d for scope %s: %s", row_number, scope_id, e)
            raise RepositoryException(f"Failed to load row: {e}") from e

    def get_last_row_number(self, scope_id: str) -> Optional[int]:
        """Highest populated row number of the scope region, None if it is empty."""
        try:
            return (
                self.db.query(func.max(BlockRow.row_number))
                .filter(BlockRow.scope_id == scope_id)
                .scalar()
            )
        except SQLAlchemyError as e:
            self.logger.error("Error reading last row for scope %s: %s", scope_id, e)
            raise RepositoryException(f"Failed to read last row: {e}") from e

    def find_block_header(self, scope_id: str, block_key: str) -> Optional[BlockRow]:
        """First row of the block carrying ``block_key``, if any."""
        return self.find_one_by(scope_id=scope_id, block_key=block_key)

    def insert_rows(self, rows: List[Dict[str, Any]]) -> List[BlockRow]:
        return self.bulk_create(rows)

    def delete_scope_rows(self, scope_id: str) -> int:
        """Delete a whole scope region (header row included)."""
        try:
            deleted = (
                self.db.query(BlockRow)
                .filter(BlockRow.scope_id == scope_id)
                .delete(synchronize_session=False)
            )
            self.db.flush()
            return int(deleted or 0)
        except SQLAlchemyError as e:
            self.logger.error("Error deleting rows for scope %s: %s", scope_id, e)
            raise RepositoryException(f"Failed to delete scope rows: {e}") from e
