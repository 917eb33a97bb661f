"""Observability infrastructure for logging and metrics."""

from .logging import setup_logging
from .metrics import MetricsCollector, get_metrics_collector

__all__ = [
    "setup_logging",
    "MetricsCollector",
    "get_metrics_collector",
]
