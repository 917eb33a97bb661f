"""Domain models for the chat fallback orchestrator."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderState(str, Enum):
    """Rolling health state of a model provider."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class DegradationLevel(str, Enum):
    """Service quality tiers, declared from best to worst."""

    FULL = "full"
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SEVERE = "severe"

    @property
    def severity(self) -> int:
        """Position in the ordering (0 is best)."""
        return _LEVEL_ORDER.index(self)

    def worse_than(self, other: "DegradationLevel") -> bool:
        return self.severity > other.severity

    def step_better(self) -> "DegradationLevel":
        """The next better level, or FULL when already at FULL."""
        return _LEVEL_ORDER[max(self.severity - 1, 0)]

    @property
    def is_degraded(self) -> bool:
        return self is not DegradationLevel.FULL


_LEVEL_ORDER = (
    DegradationLevel.FULL,
    DegradationLevel.MINIMAL,
    DegradationLevel.MODERATE,
    DegradationLevel.SEVERE,
)


class TriggerKind(str, Enum):
    """Kinds of degradation signals."""

    LATENCY = "latency"
    ERROR_RATE = "error_rate"
    QUOTA = "quota"
    NETWORK = "network"


class ProviderErrorKind(str, Enum):
    """Failure kinds a provider call can report."""

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    QUOTA = "quota"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"

    @property
    def is_hard(self) -> bool:
        """Rate limit, quota and server errors count towards a hard outage."""
        return self in (
            ProviderErrorKind.RATE_LIMIT,
            ProviderErrorKind.QUOTA,
            ProviderErrorKind.SERVER_ERROR,
        )


class SourceKind(str, Enum):
    """Which generation path produced a response."""

    PRIMARY = "primary"
    CACHE_ADAPTED = "cache_adapted"
    BACKUP_MODEL = "backup_model"
    RULE_BASED = "rule_based"


class ErrorCode(str, Enum):
    """Standardized error codes."""

    VALIDATION_ERROR = "validation_error"
    PROVIDER_TIMEOUT = "provider_timeout"
    PROVIDER_ERROR = "provider_error"
    CACHE_MISS = "cache_miss"
    CHAIN_EXHAUSTED = "chain_exhausted"
    CIRCUIT_BREAKER_OPEN = "circuit_breaker_open"
    INTERNAL_ERROR = "internal_error"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RequestContext(BaseModel):
    """A user query as handed to the orchestrator. Immutable."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="forbid")

    query: str = Field(min_length=1)
    session_id: str = Field(min_length=1)
    user_id: str | None = None
    conversation_summary: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class HealthStatus(BaseModel):
    """Derived health of one provider."""

    model_config = ConfigDict(frozen=True)

    provider_id: str
    state: ProviderState = ProviderState.HEALTHY
    consecutive_failures: int = 0
    last_checked: datetime | None = None
    error_rate: float = 0.0
    p95_latency_ms: float = 0.0


class TriggerEvent(BaseModel):
    """A single degradation signal, consumed once by the controller."""

    model_config = ConfigDict(frozen=True)

    kind: TriggerKind
    observed_value: float
    threshold: float
    timestamp: datetime = Field(default_factory=_utcnow)
    provider_id: str | None = None
    indicated_state: ProviderState | None = None

    def target_level(self) -> DegradationLevel | None:
        """Level this trigger demands, or None when it demands nothing."""
        if self.indicated_state is ProviderState.HEALTHY:
            return None
        if self.indicated_state is ProviderState.DOWN:
            return DegradationLevel.SEVERE
        if self.kind is TriggerKind.QUOTA:
            return DegradationLevel.SEVERE
        if self.kind is TriggerKind.NETWORK:
            return DegradationLevel.MODERATE

        if self.threshold <= 0:
            ratio = float("inf") if self.observed_value > 0 else 0.0
        else:
            ratio = self.observed_value / self.threshold
        if ratio >= 3:
            return DegradationLevel.MODERATE
        if ratio > 1 or self.indicated_state is ProviderState.DEGRADED:
            return DegradationLevel.MINIMAL
        return None


class CachedResponse(BaseModel):
    """A prior response available for reuse."""

    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    query: str
    embedding: list[float]
    content: str
    created_at: datetime = Field(default_factory=_utcnow)
    hit_count: int = 0


class CacheMatch(BaseModel):
    """A cache entry together with its similarity to the current query."""

    entry: CachedResponse
    similarity: float = Field(ge=-1.0, le=1.0)


class StageAttempt(BaseModel):
    """Record of one fallback stage attempt."""

    model_config = ConfigDict(frozen=True)

    stage: str
    outcome: str
    latency_ms: float = 0.0
    error: str | None = None


class FallbackResult(BaseModel):
    """The single response produced for a request."""

    model_config = ConfigDict(frozen=True)

    content: str
    source_kind: SourceKind
    confidence: float = Field(ge=0.0, le=1.0)
    model: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
    degradation_level: DegradationLevel | None = None
    attempts: list[StageAttempt] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("content must not be empty")
        return value


class DegradationEventType(str, Enum):
    """Notification event types."""

    LEVEL_CHANGED = "level_changed"
    OVERRIDE_SET = "override_set"
    OVERRIDE_CLEARED = "override_cleared"
    RECOVERY_PROGRESS = "recovery_progress"


class DegradationEvent(BaseModel):
    """Payload published to the notification sink."""

    event_type: DegradationEventType
    level: DegradationLevel
    previous_level: DegradationLevel | None = None
    reason: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
    details: dict[str, Any] = Field(default_factory=dict)
