"""
Database models for the week block store.

- BlockRow: rows of every scope region (header row + week blocks)
- WeekBlockIndexEntry: persistent location index shared across scopes
- Scope / ScopeMember: default backing for the scope directory and roster
"""

from .block_row import BlockRow
from .scope import Scope, ScopeMember
from .week_block_index import WeekBlockIndexEntry

__all__ = [
    "BlockRow",
    "Scope",
    "ScopeMember",
    "WeekBlockIndexEntry",
]
