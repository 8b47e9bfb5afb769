# weekblocks/services/week_maintenance_service.py
"""
Week Maintenance Service

Periodic housekeeping run by the scheduled jobs:
- weekly rollover: provision the current week and the weeks ahead for every
  active scope, and resnapshot the current week's roster
- idle scope retirement: retire scopes with no recent activity and discard
  their blocks, index entries and cache entries
"""

from datetime import date, datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional

from ..core.config import settings
from ..core.exceptions import DomainException, RepositoryException
from ..utils.week_helpers import current_iso_week, iso_weeks_from
from .base import BaseService
from .week_block_store import WeekBlockStore

logger = logging.getLogger(__name__)


class WeekMaintenanceService(BaseService):
    def __init__(
        self,
        store: WeekBlockStore,
        *,
        active_weeks_window: Optional[int] = None,
        idle_scope_days: Optional[int] = None,
    ):
        super().__init__(store.db)
        self.store = store
        self.active_weeks_window = active_weeks_window or settings.active_weeks_window
        self.idle_scope_days = idle_scope_days or settings.idle_scope_days

    @BaseService.measure_operation("weekly_rollover")
    def weekly_rollover(self, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Ensure the active window of weeks exists for every active scope.

        A failing scope is logged and counted; the others still roll over.
        """
        year, week = current_iso_week(today)
        weeks = iso_weeks_from(year, week, self.active_weeks_window)
        scopes = self.store.directory.list_active_scopes()

        created = resnapshotted = 0
        failed = []
        for scope_id in scopes:
            try:
                for y, w in weeks:
                    if self.store.layout.ensure_block_exists(scope_id, y, w).created:
                        created += 1
                current = self.store.lookup.resolve(scope_id, year, week)
                if current is not None:
                    roster = self.store.membership.current_roster(scope_id)
                    self.store.content.update_roster_snapshot(current, roster)
                    resnapshotted += 1
            except (DomainException, RepositoryException) as e:
                self.db.rollback()
                failed.append(scope_id)
                logger.error(
                    "Weekly rollover failed for scope %s: %s",
                    scope_id,
                    e,
                    extra={"scope_id": scope_id, "error_type": type(e).__name__},
                )

        result = {
            "week": f"{year}-W{week:02d}",
            "scopes": len(scopes),
            "blocks_created": created,
            "rosters_snapshotted": resnapshotted,
            "failed_scopes": failed,
        }
        self.log_operation("weekly_rollover", **result)
        return result

    @BaseService.measure_operation("retire_idle_scopes")
    def retire_idle_scopes(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Retire scopes idle for longer than ``idle_scope_days``."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=self.idle_scope_days)
        idle = self.store.directory.list_idle_scopes(cutoff)

        retired = []
        for scope_id in idle:
            with self.transaction():
                if not self.store.directory.retire(scope_id):
                    continue
            entries = self.store.index.remove_all_for_scope(scope_id)
            rows = self.store.layout.discard_scope(scope_id)
            self.store.cache.invalidate_scope(scope_id)
            retired.append(scope_id)
            logger.info(
                "Retired idle scope %s",
                scope_id,
                extra={"scope_id": scope_id, "index_entries": entries, "rows": rows},
            )

        return {"cutoff": cutoff.isoformat(), "idle": len(idle), "retired": retired}
