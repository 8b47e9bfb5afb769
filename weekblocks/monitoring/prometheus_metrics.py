"""
Prometheus metrics module for the week block store.

Service timings come from the @measure_operation decorator on services; the
domain counters below track how lookups resolve, how often the index heals
itself, and how healthy the index looks to the validator.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "weekblocks_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "weekblocks_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "weekblocks_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Lookup cascade
lookup_total = Counter(
    "weekblocks_lookup_total",
    "Block resolutions by the tier that answered",
    ["tier", "outcome"],  # tier: cache | index | scan ; outcome: hit | miss | error
    registry=REGISTRY,
)

self_heal_total = Counter(
    "weekblocks_self_heal_total",
    "Number of full-scan resolutions written back to index and cache",
    registry=REGISTRY,
)

# Index health
index_error_rate = Gauge(
    "weekblocks_index_error_rate",
    "Error rate reported by the most recent index validation",
    registry=REGISTRY,
)

index_rebuild_total = Counter(
    "weekblocks_index_rebuild_total",
    "Number of location index rebuilds",
    ["trigger"],  # manual | threshold
    registry=REGISTRY,
)

# Locks and cache
scope_lock_total = Counter(
    "weekblocks_scope_lock_total",
    "Scope lock acquisition attempts",
    # action: hold | try_hold ; outcome: acquired | contended | timeout | fallback
    ["action", "outcome"],
    registry=REGISTRY,
)

cache_operations_total = Counter(
    "weekblocks_cache_operations_total",
    "Block cache reads by entry kind",
    ["kind", "outcome"],  # kind: location | content ; outcome: hit | miss | evicted
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BlockLookupService')
            operation: Operation/method name (e.g., 'resolve')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_lookup(tier: str, outcome: str) -> None:
        lookup_total.labels(tier=tier, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_self_heal() -> None:
        self_heal_total.inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def set_index_error_rate(rate: float) -> None:
        index_error_rate.set(rate)
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_index_rebuild(trigger: str = "manual") -> None:
        index_rebuild_total.labels(trigger=trigger).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_scope_lock(action: str, outcome: str) -> None:
        """Record a scope lock acquisition attempt."""
        scope_lock_total.labels(action=action, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_cache_read(kind: str, outcome: str) -> None:
        cache_operations_total.labels(kind=kind, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts
        ttl = PrometheusMetrics._cache_ttl_seconds

        if payload is not None and ts is not None and (now - ts) <= ttl:
            return payload

        with PrometheusMetrics._cache_lock:
            payload = PrometheusMetrics._cache_payload
            ts = PrometheusMetrics._cache_ts
            if payload is None or ts is None or (now - ts) > ttl:
                PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
                PrometheusMetrics._cache_ts = monotonic()
                payload = PrometheusMetrics._cache_payload

        return cast(bytes, payload)

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
