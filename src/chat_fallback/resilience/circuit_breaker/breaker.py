"""Circuit breaker implementation for provider cooldowns."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import structlog

from ..exceptions import CircuitBreakerOpenException
from .config import CircuitBreakerConfig

logger = structlog.get_logger()

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerMetrics:
    """Circuit breaker counters."""

    failure_count: int = 0
    success_count: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None
    total_requests: int = 0
    half_open_calls: int = 0
    state_changes: int = 0
    last_state_change: float | None = None


class CircuitBreaker:
    """Circuit breaker for one provider.

    Bookkeeping methods are synchronous and never await, so on a single
    event loop every state transition is atomic without holding a lock
    across the protected call.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            name: Name of the protected provider
            config: Circuit breaker configuration
            clock: Monotonic time source in seconds
        """
        self.name = name
        self.config = config
        self.state = CircuitState.CLOSED
        self.metrics = CircuitBreakerMetrics()
        self._clock = clock

    def allow_request(self) -> bool:
        """Whether a call may be issued now. Reserves a half-open trial slot."""
        self._update_state()

        if self.state == CircuitState.OPEN:
            return False

        if self.state == CircuitState.HALF_OPEN:
            if self.metrics.half_open_calls >= self.config.half_open_max_calls:
                return False
            self.metrics.half_open_calls += 1

        self.metrics.total_requests += 1
        return True

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute function with circuit breaker protection.

        A cancelled call is neither a success nor a failure; it gives back
        the half-open trial slot it reserved.

        Raises:
            CircuitBreakerOpenException: If circuit is open
        """
        if not self.allow_request():
            logger.info(
                "Circuit breaker is open, rejecting request",
                circuit_name=self.name,
                failure_count=self.metrics.failure_count,
            )
            raise CircuitBreakerOpenException(self.name)

        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            self.release_trial()
            raise
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def release_trial(self) -> None:
        """Return a reserved half-open slot without recording an outcome."""
        if self.state == CircuitState.HALF_OPEN and self.metrics.half_open_calls > 0:
            self.metrics.half_open_calls -= 1

    def _update_state(self) -> None:
        if self.state == CircuitState.OPEN:
            if (
                self.metrics.last_failure_time is not None
                and (self._clock() - self.metrics.last_failure_time)
                >= self.config.recovery_timeout
            ):
                self._transition_to_half_open()

    def _transition_to_open(self) -> None:
        self.state = CircuitState.OPEN
        self.metrics.state_changes += 1
        self.metrics.last_state_change = self._clock()

        logger.warning(
            "Circuit breaker opening",
            circuit_name=self.name,
            failure_count=self.metrics.failure_count,
            failure_threshold=self.config.failure_threshold,
            cooldown=self.config.recovery_timeout,
        )

    def _transition_to_half_open(self) -> None:
        self.state = CircuitState.HALF_OPEN
        self.metrics.state_changes += 1
        self.metrics.last_state_change = self._clock()
        self.metrics.half_open_calls = 0
        self.metrics.success_count = 0

        logger.info(
            "Circuit breaker transitioning to half-open",
            circuit_name=self.name,
            recovery_timeout=self.config.recovery_timeout,
        )

    def _transition_to_closed(self) -> None:
        self.state = CircuitState.CLOSED
        self.metrics.state_changes += 1
        self.metrics.last_state_change = self._clock()
        self.metrics.failure_count = 0
        self.metrics.half_open_calls = 0

        logger.info(
            "Circuit breaker closing after successful trial",
            circuit_name=self.name,
            success_count=self.metrics.success_count,
        )

    def record_success(self) -> None:
        """Record successful operation."""
        self.metrics.success_count += 1
        self.metrics.last_success_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            if self.metrics.success_count >= self.config.success_threshold:
                self._transition_to_closed()
        elif self.state == CircuitState.CLOSED:
            self.metrics.failure_count = 0

    def record_failure(self, error: BaseException | None = None) -> None:
        """Record failed operation."""
        self.metrics.failure_count += 1
        self.metrics.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            self._transition_to_open()
            logger.warning(
                "Circuit breaker returning to open state after failed trial",
                circuit_name=self.name,
                error_type=type(error).__name__ if error else None,
            )
        elif (
            self.state == CircuitState.CLOSED
            and self.metrics.failure_count >= self.config.failure_threshold
        ):
            self._transition_to_open()

    @property
    def is_open(self) -> bool:
        """Open and still cooling down (does not reserve a trial slot)."""
        self._update_state()
        return self.state == CircuitState.OPEN

    def get_state_info(self) -> dict[str, Any]:
        """Get current circuit breaker state information."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.metrics.failure_count,
            "success_count": self.metrics.success_count,
            "total_requests": self.metrics.total_requests,
            "half_open_calls": self.metrics.half_open_calls,
            "last_failure_time": self.metrics.last_failure_time,
            "last_success_time": self.metrics.last_success_time,
            "state_changes": self.metrics.state_changes,
        }
