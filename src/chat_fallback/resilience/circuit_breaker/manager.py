"""Circuit breaker registry keyed by provider id."""

import time
from collections.abc import Callable
from typing import Any

import structlog

from .breaker import CircuitBreaker
from .config import CircuitBreakerConfig

logger = structlog.get_logger()


class CircuitBreakerManager:
    """Owns one circuit breaker per backup provider."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get_breaker(self, provider_id: str) -> CircuitBreaker:
        """Get or create the circuit breaker for a provider."""
        if provider_id not in self._breakers:
            self._breakers[provider_id] = CircuitBreaker(
                provider_id, self.config, clock=self._clock
            )
            logger.debug(
                "Created circuit breaker for provider",
                provider_id=provider_id,
                config=self.config.model_dump(),
            )

        return self._breakers[provider_id]

    def get_breaker_stats(self) -> dict[str, dict[str, Any]]:
        """State snapshot for every breaker."""
        return {
            name: breaker.get_state_info() for name, breaker in self._breakers.items()
        }

    def open_breakers(self) -> list[str]:
        """Providers currently cooling down."""
        return [name for name, breaker in self._breakers.items() if breaker.is_open]
