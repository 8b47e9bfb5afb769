# weekblocks/services/week_block_store.py
"""
Wiring for the block store services of one database session.

The cache and lock manager are long-lived and owned by the hosting
application; everything else is built per session.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..core.block_lock import ScopeLockManager
from .block_cache import BlockCache
from .block_content_service import BlockContentService
from .block_layout_service import BlockLayoutService
from .block_lookup_service import BlockLookupService
from .block_scanner import BlockScanner
from .cache_service import CacheService
from .collaborators import (
    MembershipProvider,
    ScopeDirectory,
    SqlMembershipProvider,
    SqlScopeDirectory,
)
from .index_validation_service import IndexValidationService
from .location_index_service import LocationIndexService


@dataclass
class WeekBlockStore:
    db: Session
    cache: BlockCache
    locks: ScopeLockManager
    directory: ScopeDirectory
    membership: MembershipProvider
    scanner: BlockScanner
    index: LocationIndexService
    lookup: BlockLookupService
    layout: BlockLayoutService
    content: BlockContentService
    validator: IndexValidationService

    @classmethod
    def create(
        cls,
        db: Session,
        cache_service: CacheService,
        locks: ScopeLockManager,
        *,
        directory: Optional[ScopeDirectory] = None,
        membership: Optional[MembershipProvider] = None,
    ) -> "WeekBlockStore":
        directory = directory or SqlScopeDirectory(db)
        membership = membership or SqlMembershipProvider(db)
        cache = BlockCache(cache_service)
        scanner = BlockScanner(db)
        index = LocationIndexService(db, directory)
        lookup = BlockLookupService(
            db, cache=cache, index=index, scanner=scanner, directory=directory
        )
        layout = BlockLayoutService(
            db,
            lookup=lookup,
            index=index,
            cache=cache,
            locks=locks,
            directory=directory,
            membership=membership,
        )
        content = BlockContentService(
            db, cache=cache, lookup=lookup, index=index, directory=directory
        )
        validator = IndexValidationService(
            db, directory=directory, scanner=scanner, index=index, cache=cache
        )
        return cls(
            db=db,
            cache=cache,
            locks=locks,
            directory=directory,
            membership=membership,
            scanner=scanner,
            index=index,
            lookup=lookup,
            layout=layout,
            content=content,
            validator=validator,
        )
