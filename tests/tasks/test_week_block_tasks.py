"""Unit tests for the week block maintenance tasks."""

from unittest.mock import MagicMock, patch

from weekblocks.core.constants import ROLLOVER_LOCK_KEY, VALIDATION_LOCK_KEY


def _session(mock_get_session, db):
    mock_get_session.return_value.__enter__ = MagicMock(return_value=db)
    mock_get_session.return_value.__exit__ = MagicMock(return_value=False)


class TestWeeklyRollover:
    @patch("weekblocks.tasks.week_block_tasks.get_runtime")
    @patch("weekblocks.tasks.week_block_tasks.get_db_session")
    def test_rollover_creates_blocks(
        self, mock_get_session, mock_runtime, db, scope, cache_service, locks
    ):
        from weekblocks.tasks.week_block_tasks import weekly_rollover

        _session(mock_get_session, db)
        mock_runtime.return_value = (cache_service, locks)

        result = weekly_rollover()

        assert result["skipped"] is False
        assert result["scopes"] == 1
        assert result["blocks_created"] == 4

    @patch("weekblocks.tasks.week_block_tasks.get_runtime")
    @patch("weekblocks.tasks.week_block_tasks.get_db_session")
    def test_rollover_skipped_while_lock_held(
        self, mock_get_session, mock_runtime, cache_service, locks
    ):
        from weekblocks.tasks.week_block_tasks import weekly_rollover

        mock_runtime.return_value = (cache_service, locks)

        with locks.hold(ROLLOVER_LOCK_KEY):
            result = weekly_rollover()

        assert result == {"skipped": True}
        mock_get_session.assert_not_called()


class TestValidateIndex:
    @patch("weekblocks.tasks.week_block_tasks.get_runtime")
    @patch("weekblocks.tasks.week_block_tasks.get_db_session")
    def test_validate_rebuilds_drifted_index(
        self, mock_get_session, mock_runtime, db, store, scope, cache_service, locks
    ):
        from weekblocks.tasks.week_block_tasks import validate_index

        _session(mock_get_session, db)
        mock_runtime.return_value = (cache_service, locks)
        store.layout.ensure_block_exists(scope, 2025, 25)
        store.index.remove_all_for_scope(scope)

        result = validate_index()

        assert result["skipped"] is False
        assert result["counts"] == {"missing_index_entry": 1}
        assert result["rebuilt"] is True
        assert result["blocks_indexed"] == 1
        assert store.index.lookup(scope, 2025, 25).start_row == 2

    @patch("weekblocks.tasks.week_block_tasks.get_runtime")
    @patch("weekblocks.tasks.week_block_tasks.get_db_session")
    def test_validate_clean_index(
        self, mock_get_session, mock_runtime, db, store, scope, cache_service, locks
    ):
        from weekblocks.tasks.week_block_tasks import validate_index

        _session(mock_get_session, db)
        mock_runtime.return_value = (cache_service, locks)
        store.layout.ensure_block_exists(scope, 2025, 25)

        result = validate_index()

        assert result["error_rate"] == 0.0
        assert result["rebuilt"] is False
        assert result["blocks_indexed"] is None

    @patch("weekblocks.tasks.week_block_tasks.get_runtime")
    @patch("weekblocks.tasks.week_block_tasks.get_db_session")
    def test_validate_empty_store_forces_rebuild(
        self, mock_get_session, mock_runtime, db, scope, cache_service, locks
    ):
        from weekblocks.tasks.week_block_tasks import validate_index

        _session(mock_get_session, db)
        mock_runtime.return_value = (cache_service, locks)

        result = validate_index()

        assert result["total_entries"] == 0
        assert result["error_rate"] == 1.0
        assert result["rebuilt"] is True
        assert result["blocks_indexed"] == 0

    @patch("weekblocks.tasks.week_block_tasks.get_runtime")
    @patch("weekblocks.tasks.week_block_tasks.get_db_session")
    def test_validate_skipped_while_lock_held(
        self, mock_get_session, mock_runtime, cache_service, locks
    ):
        from weekblocks.tasks.week_block_tasks import validate_index

        mock_runtime.return_value = (cache_service, locks)

        with locks.hold(VALIDATION_LOCK_KEY):
            assert validate_index() == {"skipped": True}
        mock_get_session.assert_not_called()


class TestRetireIdleScopes:
    @patch("weekblocks.tasks.week_block_tasks.get_runtime")
    @patch("weekblocks.tasks.week_block_tasks.get_db_session")
    def test_retires_idle_scope(
        self, mock_get_session, mock_runtime, db, make_scope, long_ago, cache_service, locks
    ):
        from weekblocks.tasks.week_block_tasks import retire_idle_scopes

        _session(mock_get_session, db)
        mock_runtime.return_value = (cache_service, locks)
        make_scope("team-idle", last_activity_at=long_ago)
        make_scope("team-busy")

        result = retire_idle_scopes()

        assert result["skipped"] is False
        assert result["retired"] == ["team-idle"]


def test_beat_schedule_routes_every_task():
    from weekblocks.tasks.beat_schedule import CELERYBEAT_SCHEDULE

    tasks = {entry["task"] for entry in CELERYBEAT_SCHEDULE.values()}
    assert tasks == {
        "week_blocks.weekly_rollover",
        "week_blocks.validate_index",
        "week_blocks.retire_idle_scopes",
    }


def test_testing_schedule_validates_frequently():
    from datetime import timedelta

    from weekblocks.tasks.beat_schedule import get_beat_schedule

    schedule = get_beat_schedule("testing")

    assert schedule["week-blocks-validate-index"]["schedule"] == timedelta(seconds=30)
    assert "week-blocks-weekly-rollover" in schedule


def test_celery_app_routes_jobs_to_maintenance_queue():
    from weekblocks.tasks.celery_app import celery_app

    assert celery_app.conf.task_routes == {"week_blocks.*": {"queue": "maintenance"}}
    assert "weekblocks.tasks.week_block_tasks" in celery_app.conf.imports
    assert celery_app.conf.task_serializer == "json"
