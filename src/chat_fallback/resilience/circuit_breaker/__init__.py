"""Circuit breakers that put failing backup providers into cooldown."""

from .breaker import CircuitBreaker, CircuitBreakerMetrics, CircuitState
from .config import CircuitBreakerConfig
from .manager import CircuitBreakerManager

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "CircuitBreakerMetrics",
    "CircuitBreakerManager",
    "CircuitBreakerConfig",
]
