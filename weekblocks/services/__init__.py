"""
Service layer for the week block store.

Business logic, transactions, caching and metrics live here; see
WeekBlockStore for how the services are wired for one session.
"""

from .block_cache import BlockCache
from .block_content_service import BlockContentService
from .block_layout_service import BlockLayoutService
from .block_lookup_service import BlockLookupService
from .block_scanner import BlockScanner, ScanResult
from .cache_service import CacheService
from .collaborators import (
    MembershipProvider,
    ScopeDirectory,
    SqlMembershipProvider,
    SqlScopeDirectory,
)
from .index_validation_service import IndexValidationService
from .location_index_service import LocationIndexService
from .week_block_store import WeekBlockStore
from .week_maintenance_service import WeekMaintenanceService

__all__ = [
    "BlockCache",
    "BlockContentService",
    "BlockLayoutService",
    "BlockLookupService",
    "BlockScanner",
    "CacheService",
    "IndexValidationService",
    "LocationIndexService",
    "MembershipProvider",
    "ScanResult",
    "ScopeDirectory",
    "SqlMembershipProvider",
    "SqlScopeDirectory",
    "WeekBlockStore",
    "WeekMaintenanceService",
]
