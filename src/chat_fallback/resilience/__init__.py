"""Resilience patterns for keeping conversations answerable.

This package provides health monitoring, degradation level management,
per-provider circuit breakers, the fallback stages (semantic cache, backup
model chain, rule-based responses) and recovery probing.
"""

from .exceptions import (
    CacheMissException,
    ChainExhaustedException,
    CircuitBreakerOpenException,
    ResilienceException,
)
from .circuit_breaker import CircuitBreaker, CircuitBreakerManager
from .degradation import DegradationController
from .fallback import (
    BackupProviderDescriptor,
    BackupProviderRegistry,
    CacheFallbackResolver,
    ModelFallbackChain,
    RuleBasedResponder,
)
from .health import HealthMonitor, RecoveryMonitor

__all__ = [
    "BackupProviderDescriptor",
    "BackupProviderRegistry",
    "CacheFallbackResolver",
    "CacheMissException",
    "ChainExhaustedException",
    "CircuitBreaker",
    "CircuitBreakerManager",
    "CircuitBreakerOpenException",
    "DegradationController",
    "HealthMonitor",
    "ModelFallbackChain",
    "RecoveryMonitor",
    "ResilienceException",
    "RuleBasedResponder",
]
