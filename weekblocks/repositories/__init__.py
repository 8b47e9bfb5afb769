"""
Repository layer for the week block store.

Repositories flush, services commit.
"""

from .base_repository import BaseRepository
from .block_row_repository import BlockRowRepository
from .scope_repository import ScopeRepository
from .week_block_index_repository import WeekBlockIndexRepository

__all__ = [
    "BaseRepository",
    "BlockRowRepository",
    "ScopeRepository",
    "WeekBlockIndexRepository",
]
