"""Prometheus metrics for the week block store."""

from .prometheus_metrics import REGISTRY, PrometheusMetrics, prometheus_metrics

__all__ = ["REGISTRY", "PrometheusMetrics", "prometheus_metrics"]
