"""Tests for block content reads and writes."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from weekblocks.core.exceptions import PartialAvailabilityWriteException, RepositoryException
from weekblocks.models import Scope
from weekblocks.schemas.week_block import (
    AvailabilityChange,
    BlockDescriptor,
    BlockReadError,
    StructuredAvailability,
)
from weekblocks.services.block_content_service import format_cell, parse_cell


def _add(time_slot, day, member):
    return AvailabilityChange(time_slot=time_slot, day=day, member=member, action="add")


def _remove(time_slot, day, member):
    return AvailabilityChange(time_slot=time_slot, day=day, member=member, action="remove")


@pytest.fixture
def block(store, scope) -> BlockDescriptor:
    return store.layout.ensure_block_exists(scope, 2025, 25).block


class TestCellFormat:
    def test_parse_cell(self):
        assert parse_cell("AB, CD,,AB ") == ["AB", "CD"]
        assert parse_cell(None) == []
        assert parse_cell("") == []

    def test_format_cell_sorts_and_upper_cases(self):
        assert format_cell(["cd", "AB", "ab"]) == "AB, CD"
        assert format_cell([]) == ""


class TestReadBlock:
    def test_fresh_block_is_empty(self, store, block):
        content = store.content.read_block(block)

        assert isinstance(content, StructuredAvailability)
        assert content.day_headers == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
        assert [slot.time for slot in content.slots][:2] == ["18:00", "18:30"]
        assert len(content.slots) == 11
        assert all(cell.count == 0 for slot in content.slots for cell in slot.cells)

    def test_two_members_in_one_cell(self, store, block):
        store.content.write_availability_delta(
            block, [_add("18:00", "Mon", "AB"), _add("18:00", "Mon", "CD")]
        )

        content = store.content.read_block(block)
        cell = content.cell("18:00", "Mon")

        assert cell.occupants == ["AB", "CD"]
        assert cell.count == 2
        assert content.cell("18:00", "Tue").count == 0

    def test_read_is_cached(self, store, block):
        first = store.content.read_block(block)

        with patch.object(store.content.repository, "get_rows_in_range") as fetch:
            second = store.content.read_block(block)

        fetch.assert_not_called()
        assert second == first

    def test_moved_block_returns_error_and_evicts_location(self, store, scope, block):
        moved = block.model_copy(update={"start_row": 40, "end_row": 50})
        store.cache.put_location(moved)

        result = store.content.read_block(moved)

        assert isinstance(result, BlockReadError)
        assert result.code == "MALFORMED_BLOCK"
        assert store.cache.get_location(scope, 2025, 25) is None
        assert store.cache.get_content(scope, 2025, 25) is None

    def test_store_failure_returns_error(self, store, block):
        with patch.object(
            store.content.repository,
            "get_rows_in_range",
            side_effect=RepositoryException("db down"),
        ):
            result = store.content.read_block(block)

        assert isinstance(result, BlockReadError)
        assert result.code == "STORE_ACCESS_FAILURE"
        assert store.cache.get_content(block.scope_id, 2025, 25) is None

    def test_read_week_range_skips_missing_weeks(self, store, scope, block):
        store.layout.ensure_block_exists(scope, 2025, 27)

        weeks = store.content.read_week_range(scope, 2025, 25, 3)

        assert [c.week for c in weeks] == [25, 27]

    def test_read_week_range_crosses_year_end(self, store, scope):
        store.layout.ensure_block_exists(scope, 2025, 52)
        store.layout.ensure_block_exists(scope, 2026, 1)

        weeks = store.content.read_week_range(scope, 2025, 52, 2)

        assert [(c.year, c.week) for c in weeks] == [(2025, 52), (2026, 1)]


class TestWriteAvailability:
    def test_add_then_remove(self, store, block):
        store.content.write_availability_delta(block, [_add("19:00", "Wed", "ab")])
        result = store.content.write_availability_delta(block, [_remove("19:00", "Wed", "AB")])

        assert result.cells_modified == 1
        assert store.content.read_block(block).cell("19:00", "Wed").occupants == []

    def test_noop_changes_are_not_counted(self, store, block):
        store.content.write_availability_delta(block, [_add("19:00", "Wed", "AB")])

        result = store.content.write_availability_delta(
            block, [_add("19:00", "Wed", "AB"), _remove("19:00", "Thu", "AB")]
        )

        assert result.cells_modified == 0

    def test_invalid_cells_are_skipped(self, store, block):
        result = store.content.write_availability_delta(
            block,
            [
                _add("17:00", "Mon", "AB"),
                _add("18:00", "Funday", "AB"),
                _add("18:00", "mon", "AB"),
            ],
        )

        assert (result.cells_requested, result.cells_modified, result.invalid_cells) == (3, 1, 2)

    def test_write_invalidates_cached_content(self, store, block):
        store.content.read_block(block)

        store.content.write_availability_delta(block, [_add("18:00", "Mon", "AB")])

        assert store.cache.get_content(block.scope_id, 2025, 25) is None
        assert store.content.read_block(block).cell("18:00", "Mon").occupants == ["AB"]

    def test_partial_write_keeps_committed_cells(self, store, block):
        with patch.object(
            store.content.repository,
            "flush",
            side_effect=[None, RepositoryException("disk full")],
        ):
            with pytest.raises(PartialAvailabilityWriteException) as exc_info:
                store.content.write_availability_delta(
                    block,
                    [
                        _add("18:00", "Mon", "AB"),
                        _add("18:30", "Mon", "AB"),
                        _add("19:00", "Mon", "AB"),
                    ],
                )

        assert exc_info.value.cells_modified == 1
        assert exc_info.value.cells_requested == 3
        content = store.content.read_block(block)
        assert content.cell("18:00", "Mon").occupants == ["AB"]
        assert content.cell("18:30", "Mon").occupants == []

    def test_changed_by_appends_changelog(self, store, block):
        store.content.write_availability_delta(
            block, [_add("18:00", "Mon", "AB"), _add("18:00", "Tue", "AB")], changed_by="Alice"
        )

        changelog = store.content.read_changelog(block)

        assert changelog.endswith("Alice updated 2 availability slots")
        assert "\n" not in changelog

    def test_write_records_scope_activity(self, db, store, make_scope, long_ago):
        scope_id = make_scope("team-quiet", last_activity_at=long_ago)
        quiet = store.layout.ensure_block_exists(scope_id, 2025, 25).block

        store.content.write_availability_delta(quiet, [_add("18:00", "Mon", "AB")])

        db.expire_all()
        touched = db.query(Scope).filter_by(scope_id=scope_id).one().last_activity_at
        assert touched.replace(tzinfo=None) > long_ago.replace(tzinfo=None)
        assert touched.replace(tzinfo=None) <= datetime.now(timezone.utc).replace(tzinfo=None)


class TestWriteAvailabilityWeeks:
    def test_writes_each_week_and_skips_missing_ones(self, store, scope, block):
        store.layout.ensure_block_exists(scope, 2025, 26)

        result = store.content.write_availability_weeks(
            scope,
            {
                (2025, 26): [_add("19:00", "Tue", "CD")],
                (2025, 25): [_add("18:00", "Mon", "AB"), _add("03:00", "Mon", "AB")],
                (2025, 27): [],
                (2025, 30): [_add("18:00", "Mon", "AB"), _add("18:30", "Mon", "AB")],
            },
        )

        assert [(o.week, o.status) for o in result.weeks] == [
            (25, "applied"),
            (26, "applied"),
            (30, "not_found"),
        ]
        assert result.cells_modified == 2
        assert result.invalid_cells == 3
        assert result.failed_weeks == []
        assert result.weeks[2].cells_requested == 2
        assert result.weeks[2].invalid_cells == 2
        week_26 = store.lookup.resolve(scope, 2025, 26)
        assert store.content.read_block(week_26).cell("19:00", "Tue").occupants == ["CD"]
        assert store.content.read_block(block).cell("18:00", "Mon").occupants == ["AB"]

    def test_failed_week_does_not_stop_later_weeks(self, store, scope, block):
        week_26 = store.layout.ensure_block_exists(scope, 2025, 26).block

        with patch.object(
            store.content.repository,
            "flush",
            side_effect=[None, RepositoryException("disk full"), None],
        ):
            result = store.content.write_availability_weeks(
                scope,
                {
                    (2025, 25): [_add("18:00", "Mon", "AB"), _add("18:30", "Mon", "AB")],
                    (2025, 26): [_add("18:00", "Wed", "CD")],
                },
            )

        failed, applied = result.weeks
        assert failed.status == "failed"
        assert failed.cells_modified == 1
        assert failed.error
        assert applied.status == "applied"
        assert applied.cells_modified == 1
        assert result.cells_modified == 2
        assert result.failed_weeks == ["2025-W25"]
        assert store.content.read_block(week_26).cell("18:00", "Wed").occupants == ["CD"]


class TestRemoveMember:
    def test_clears_member_from_current_and_future_weeks_only(self, store, scope, block):
        future = store.layout.ensure_block_exists(scope, 2025, 26).block
        for target in (block, future):
            store.content.write_availability_delta(
                target, [_add("18:00", "Mon", "AB"), _add("18:00", "Mon", "CD")]
            )

        modified = store.content.remove_member_from_scope(scope, "ab", from_week=(2025, 26))

        assert modified == 1
        assert store.content.read_block(block).cell("18:00", "Mon").occupants == ["AB", "CD"]
        assert store.content.read_block(future).cell("18:00", "Mon").occupants == ["CD"]


class TestRosterAndChangelog:
    def test_new_block_snapshots_membership(self, store, block):
        roster = store.content.read_roster_snapshot(block)

        assert [entry["initials"] for entry in roster] == ["AB", "CD"]

    def test_update_roster_snapshot_overwrites(self, store, block):
        store.content.update_roster_snapshot(block, [{"name": "Eve Fox", "initials": "EF"}])

        assert store.content.read_roster_snapshot(block) == [{"name": "Eve Fox", "initials": "EF"}]

    def test_changelog_starts_with_sentinel(self, store, block):
        assert store.content.read_changelog(block) == "(No changes this week)"

    def test_append_replaces_sentinel_then_joins(self, store, block):
        assert store.content.append_changelog(block, "first") == "first"
        assert store.content.append_changelog(block, "second") == "first\nsecond"
        assert store.content.read_changelog(block) == "first\nsecond"
