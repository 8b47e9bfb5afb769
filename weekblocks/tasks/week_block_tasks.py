# weekblocks/tasks/week_block_tasks.py
"""
Scheduled maintenance jobs for the week block store.

Each job takes a non-blocking maintenance lock first; an overlapping run of
the same job returns ``{"skipped": True}`` instead of interleaving with it.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, cast

from celery import shared_task

from weekblocks.core.block_lock import ScopeLockManager, connect_lock_redis
from weekblocks.core.config import settings
from weekblocks.core.constants import RETIRE_LOCK_KEY, ROLLOVER_LOCK_KEY, VALIDATION_LOCK_KEY
from weekblocks.database import get_db_session
from weekblocks.services.cache_service import CacheService
from weekblocks.services.week_block_store import WeekBlockStore
from weekblocks.services.week_maintenance_service import WeekMaintenanceService

logger = logging.getLogger(__name__)

_TaskFunc = TypeVar("_TaskFunc", bound=Callable[..., Any])

_RUNTIME: Optional[Tuple[CacheService, ScopeLockManager]] = None
_RUNTIME_LOCK = threading.Lock()


def _typed_shared_task(*args: Any, **kwargs: Any) -> Callable[[_TaskFunc], _TaskFunc]:
    """Typed wrapper for Celery's shared_task decorator."""
    return cast(Callable[[_TaskFunc], _TaskFunc], shared_task(*args, **kwargs))


def get_runtime() -> Tuple[CacheService, ScopeLockManager]:
    """Process-wide cache and lock manager for the worker."""
    global _RUNTIME
    if _RUNTIME is not None:
        return _RUNTIME
    with _RUNTIME_LOCK:
        if _RUNTIME is None:
            _RUNTIME = (
                CacheService.from_settings(),
                ScopeLockManager(connect_lock_redis(settings.redis_url)),
            )
        return _RUNTIME


@_typed_shared_task(name="week_blocks.weekly_rollover")
def weekly_rollover() -> Dict[str, Any]:
    """Ensure the active week window exists for every active scope."""
    cache, locks = get_runtime()
    with locks.try_hold(ROLLOVER_LOCK_KEY) as acquired:
        if not acquired:
            logger.info("[WEEK-BLOCKS] weekly rollover already running; skipping")
            return {"skipped": True}
        with get_db_session() as db:
            store = WeekBlockStore.create(db, cache, locks)
            result = WeekMaintenanceService(store).weekly_rollover()
    logger.info("[WEEK-BLOCKS] weekly rollover created %d blocks", result["blocks_created"])
    return {"skipped": False, **result}


@_typed_shared_task(name="week_blocks.validate_index")
def validate_index() -> Dict[str, Any]:
    """Validate the location index and rebuild it past the error threshold."""
    cache, locks = get_runtime()
    with locks.try_hold(VALIDATION_LOCK_KEY) as acquired:
        if not acquired:
            logger.info("[WEEK-BLOCKS] index validation already running; skipping")
            return {"skipped": True}
        with get_db_session() as db:
            store = WeekBlockStore.create(db, cache, locks)
            report = store.validator.validate_and_repair()

    validation = report.validation
    return {
        "skipped": False,
        "error_rate": validation.error_rate,
        "error_count": validation.error_count,
        "total_entries": validation.total_entries,
        "counts": validation.counts,
        "rebuilt": report.rebuild is not None,
        "blocks_indexed": report.rebuild.blocks_indexed if report.rebuild else None,
    }


@_typed_shared_task(name="week_blocks.retire_idle_scopes")
def retire_idle_scopes() -> Dict[str, Any]:
    """Retire scopes idle for longer than the configured number of days."""
    cache, locks = get_runtime()
    with locks.try_hold(RETIRE_LOCK_KEY) as acquired:
        if not acquired:
            logger.info("[WEEK-BLOCKS] idle scope retirement already running; skipping")
            return {"skipped": True}
        with get_db_session() as db:
            store = WeekBlockStore.create(db, cache, locks)
            result = WeekMaintenanceService(store).retire_idle_scopes()
    if result["retired"]:
        logger.info("[WEEK-BLOCKS] retired %d idle scopes", len(result["retired"]))
    return {"skipped": False, **result}
