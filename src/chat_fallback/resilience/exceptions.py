"""Resilience-specific exceptions.

These are recovered inside the orchestrator by advancing to the next
fallback stage; none of them reaches the caller of ``resolve()``.
"""

from typing import Any

from chat_fallback.domain.exceptions import ChatFallbackException
from chat_fallback.domain.models import ErrorCode


class ResilienceException(ChatFallbackException):
    """Base exception for resilience patterns."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message, error_code, details, correlation_id)


class CacheMissException(ResilienceException):
    """No cached response met the similarity threshold."""

    def __init__(self, threshold: float, correlation_id: str | None = None):
        super().__init__(
            f"No cached response at or above similarity {threshold:.2f}",
            ErrorCode.CACHE_MISS,
            {"threshold": threshold},
            correlation_id,
        )
        self.threshold = threshold


class ChainExhaustedException(ResilienceException):
    """Every backup provider failed or was cooling down."""

    def __init__(
        self,
        attempted: list[str],
        skipped: list[str],
        correlation_id: str | None = None,
    ):
        super().__init__(
            "All backup providers failed or are cooling down",
            ErrorCode.CHAIN_EXHAUSTED,
            {"attempted": attempted, "skipped": skipped},
            correlation_id,
        )
        self.attempted = attempted
        self.skipped = skipped


class CircuitBreakerOpenException(ResilienceException):
    """Circuit breaker is open exception."""

    def __init__(self, service_name: str, correlation_id: str | None = None):
        super().__init__(
            f"Circuit breaker open for service: {service_name}",
            ErrorCode.CIRCUIT_BREAKER_OPEN,
            {"service_name": service_name},
            correlation_id,
        )
        self.service_name = service_name
