"""Tests for three-tier block resolution and self-heal."""

from unittest.mock import patch

from weekblocks.models import BlockRow, Scope, WeekBlockIndexEntry
from weekblocks.services.block_cache import BlockCache


def _index_entry(db, scope_id, year, week):
    return db.query(WeekBlockIndexEntry).filter_by(scope_id=scope_id, year=year, week=week).first()


def test_unknown_block_resolves_to_none(store, scope):
    assert store.lookup.resolve(scope, 2025, 25) is None


def test_cache_hit_skips_index_and_scan(store, scope):
    created = store.layout.ensure_block_exists(scope, 2025, 25).block

    with patch.object(store.index, "lookup") as index_lookup, patch.object(
        store.scanner, "scan_scope"
    ) as scan:
        assert store.lookup.resolve(scope, 2025, 25) == created

    index_lookup.assert_not_called()
    scan.assert_not_called()


def test_index_hit_populates_cache(store, scope):
    created = store.layout.ensure_block_exists(scope, 2025, 25).block
    store.cache.invalidate_location(scope, 2025, 25)

    with patch.object(store.scanner, "scan_scope") as scan:
        assert store.lookup.resolve(scope, 2025, 25) == created

    scan.assert_not_called()
    assert store.cache.get_location(scope, 2025, 25) == created


def test_scan_hit_self_heals_index_and_cache(db, store, scope):
    store.layout.ensure_block_exists(scope, 2025, 24)
    created = store.layout.ensure_block_exists(scope, 2025, 25).block
    store.index.remove_all_for_scope(scope)
    store.cache.invalidate_scope(scope)

    resolved = store.lookup.resolve(scope, 2025, 25)

    assert resolved.start_row == created.start_row == 13
    assert _index_entry(db, scope, 2025, 25).start_row == 13
    assert store.cache.get_location(scope, 2025, 25).start_row == 13


def test_self_heal_metric_incremented(store, scope):
    store.layout.ensure_block_exists(scope, 2025, 25)
    store.index.remove_all_for_scope(scope)
    store.cache.invalidate_scope(scope)

    with patch(
        "weekblocks.services.block_lookup_service.prometheus_metrics.inc_self_heal"
    ) as inc:
        store.lookup.resolve(scope, 2025, 25)

    inc.assert_called_once()


def test_cache_failure_falls_through_to_index(store, scope):
    created = store.layout.ensure_block_exists(scope, 2025, 25).block

    with patch.object(BlockCache, "get_location", side_effect=RuntimeError("cache down")):
        assert store.lookup.resolve(scope, 2025, 25) == created


def test_index_failure_falls_through_to_scan(store, scope):
    created = store.layout.ensure_block_exists(scope, 2025, 25).block
    store.cache.invalidate_scope(scope)

    with patch.object(store.index, "lookup", side_effect=RuntimeError("index down")):
        assert store.lookup.resolve(scope, 2025, 25) == created


def test_scan_failure_is_a_miss(store, scope):
    with patch.object(store.scanner, "scan_scope", side_effect=RuntimeError("store down")):
        assert store.lookup.resolve(scope, 2025, 25) is None


def test_failed_self_heal_still_returns_block(store, scope):
    created = store.layout.ensure_block_exists(scope, 2025, 25).block
    store.index.remove_all_for_scope(scope)
    store.cache.invalidate_scope(scope)

    with patch.object(store.index, "upsert", side_effect=RuntimeError("index down")):
        assert store.lookup.resolve(scope, 2025, 25) == created


def test_retired_scope_resolves_to_none_and_purges_entry(db, store, scope):
    store.layout.ensure_block_exists(scope, 2025, 25)
    store.cache.invalidate_scope(scope)
    db.query(Scope).filter_by(scope_id=scope).update({"is_active": False})
    db.commit()

    assert store.lookup.resolve(scope, 2025, 25) is None
    assert _index_entry(db, scope, 2025, 25) is None


def test_resolution_never_writes_block_rows(db, store, scope):
    store.layout.ensure_block_exists(scope, 2025, 25)
    before = db.query(BlockRow).count()
    store.index.remove_all_for_scope(scope)
    store.cache.invalidate_scope(scope)

    store.lookup.resolve(scope, 2025, 25)
    store.lookup.resolve(scope, 2025, 26)

    assert db.query(BlockRow).count() == before
