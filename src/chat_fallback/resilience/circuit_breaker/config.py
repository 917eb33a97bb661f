"""Circuit breaker configuration model."""

from pydantic import BaseModel, Field

from chat_fallback.config.settings import ChainSettings


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker configuration for one provider."""

    failure_threshold: int = Field(
        default=3, ge=1, le=100, description="Consecutive failures before opening circuit"
    )
    recovery_timeout: float = Field(
        default=60.0,
        ge=0.0,
        le=3600.0,
        description="Seconds the circuit stays open before admitting a trial call",
    )
    success_threshold: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Number of successful calls to close circuit from half-open",
    )
    half_open_max_calls: int = Field(
        default=1, ge=1, le=20, description="Trial calls allowed while half-open"
    )

    @classmethod
    def from_chain_settings(cls, settings: ChainSettings) -> "CircuitBreakerConfig":
        """Breaker configuration shared by every backup provider."""
        return cls(
            failure_threshold=settings.failure_threshold,
            recovery_timeout=settings.cooldown,
        )
