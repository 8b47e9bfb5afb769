"""Tests for the Prometheus exposition of block store metrics."""

from weekblocks.monitoring.prometheus_metrics import REGISTRY, prometheus_metrics


def _sample(name, labels=None):
    value = REGISTRY.get_sample_value(name, labels or {})
    return value or 0.0


def test_lookup_tiers_are_counted(store, scope):
    store.layout.ensure_block_exists(scope, 2025, 25)
    store.cache.invalidate_scope(scope)
    before = _sample("weekblocks_lookup_total", {"tier": "index", "outcome": "hit"})

    store.lookup.resolve(scope, 2025, 25)

    after = _sample("weekblocks_lookup_total", {"tier": "index", "outcome": "hit"})
    assert after == before + 1


def test_validation_sets_error_rate_gauge(store, scope):
    store.index.upsert(scope, 2025, 30, 200)

    store.validator.validate()

    assert _sample("weekblocks_index_error_rate") == 1.0


def test_service_operations_are_timed(store, scope):
    labels = {"service": "BlockLayoutService", "operation": "ensure_block_exists"}
    before = _sample("weekblocks_service_operation_duration_seconds_count", labels)

    store.layout.ensure_block_exists(scope, 2025, 25)

    assert _sample("weekblocks_service_operation_duration_seconds_count", labels) == before + 1


def test_exposition_format():
    prometheus_metrics.record_scope_lock("hold", "acquired")

    payload = prometheus_metrics.get_metrics().decode()

    assert "# TYPE weekblocks_scope_lock_total counter" in payload
    assert 'weekblocks_scope_lock_total{action="hold",outcome="acquired"}' in payload
    assert prometheus_metrics.get_content_type().startswith("text/plain")
