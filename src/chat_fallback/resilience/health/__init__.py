"""Provider health tracking and recovery probing."""

from .monitor import HealthMonitor, OutcomeSample, ProviderHealthMetrics
from .recovery import RecoveryMonitor

__all__ = [
    "HealthMonitor",
    "OutcomeSample",
    "ProviderHealthMetrics",
    "RecoveryMonitor",
]
