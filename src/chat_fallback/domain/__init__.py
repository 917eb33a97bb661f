"""Domain models and exceptions."""

from .exceptions import (
    ChatFallbackException,
    ProviderErrorException,
    ProviderTimeoutException,
    ValidationException,
)
from .models import (
    CachedResponse,
    CacheMatch,
    DegradationEvent,
    DegradationEventType,
    DegradationLevel,
    ErrorCode,
    FallbackResult,
    HealthStatus,
    ProviderErrorKind,
    ProviderState,
    RequestContext,
    SourceKind,
    StageAttempt,
    TriggerEvent,
    TriggerKind,
)

__all__ = [
    "CachedResponse",
    "CacheMatch",
    "ChatFallbackException",
    "DegradationEvent",
    "DegradationEventType",
    "DegradationLevel",
    "ErrorCode",
    "FallbackResult",
    "HealthStatus",
    "ProviderErrorException",
    "ProviderErrorKind",
    "ProviderState",
    "ProviderTimeoutException",
    "RequestContext",
    "SourceKind",
    "StageAttempt",
    "TriggerEvent",
    "TriggerKind",
    "ValidationException",
]
