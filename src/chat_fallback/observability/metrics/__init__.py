"""Metrics collection and exposition."""

from .collectors import MetricsCollector, get_metrics_collector, setup_metrics

__all__ = [
    "MetricsCollector",
    "get_metrics_collector",
    "setup_metrics",
]
