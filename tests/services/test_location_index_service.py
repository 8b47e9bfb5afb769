"""Tests for the persistent location index."""

from weekblocks.core.constants import STANDARD_TIME_SLOTS
from weekblocks.models import Scope, WeekBlockIndexEntry

NUM_SLOTS = len(STANDARD_TIME_SLOTS)


def _retire(db, scope_id):
    db.query(Scope).filter_by(scope_id=scope_id).update({"is_active": False})
    db.commit()


def test_lookup_hit_derives_end_row(store, scope):
    store.index.upsert(scope, 2025, 25, 50)

    block = store.index.lookup(scope, 2025, 25)

    assert (block.start_row, block.end_row) == (50, 50 + NUM_SLOTS - 1)
    assert block.month == "June"


def test_lookup_miss(store, scope):
    assert store.index.lookup(scope, 2025, 25) is None


def test_lookup_purges_entry_of_retired_scope(db, store, scope):
    store.index.upsert(scope, 2025, 25, 50)
    _retire(db, scope)

    assert store.index.lookup(scope, 2025, 25) is None
    assert db.query(WeekBlockIndexEntry).filter_by(scope_id=scope).count() == 0


def test_upsert_reports_whether_it_wrote(store, scope):
    assert store.index.upsert(scope, 2025, 25, 2) is True
    assert store.index.upsert(scope, 2025, 25, 2) is False
    assert store.index.upsert(scope, 2025, 25, 13) is True
    assert store.index.lookup(scope, 2025, 25).start_row == 13


def test_batch_upsert_only_writes_differences(store, scope):
    store.index.upsert(scope, 2025, 25, 2)
    store.index.upsert(scope, 2025, 26, 13)

    written = store.index.batch_upsert(
        scope,
        [(2025, 25, 2), (2025, 26, 99), (2025, 27, 24)],
    )

    assert written == 2
    assert [(b.week, b.start_row) for b in store.index.list_for_scope(scope)] == [
        (25, 2),
        (26, 99),
        (27, 24),
    ]


def test_batch_upsert_empty_is_noop(store, scope):
    assert store.index.batch_upsert(scope, []) == 0


def test_list_for_scope_sorted_by_year_then_week(store, scope, make_scope):
    other = make_scope("team-beta")
    store.index.upsert(scope, 2026, 1, 40)
    store.index.upsert(scope, 2025, 52, 29)
    store.index.upsert(scope, 2025, 3, 2)
    store.index.upsert(other, 2025, 1, 2)

    listed = store.index.list_for_scope(scope)

    assert [(b.year, b.week) for b in listed] == [(2025, 3), (2025, 52), (2026, 1)]
    assert all(b.end_row == b.start_row + NUM_SLOTS - 1 for b in listed)


def test_remove_all_for_scope_leaves_other_scopes(store, scope, make_scope):
    other = make_scope("team-beta")
    store.index.upsert(scope, 2025, 25, 2)
    store.index.upsert(scope, 2025, 26, 13)
    store.index.upsert(other, 2025, 25, 2)

    assert store.index.remove_all_for_scope(scope) == 2
    assert store.index.list_for_scope(scope) == []
    assert len(store.index.list_for_scope(other)) == 1
