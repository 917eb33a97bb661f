"""Infrastructure layer: provider, embedding, cache and notification boundaries."""

from .cache import CacheStore, InMemoryCacheStore
from .llm import (
    EmbeddingCapability,
    HashingEmbedder,
    ProviderCapability,
    ProviderErrorHandler,
    ScriptedProvider,
)
from .notifications import (
    InMemoryNotificationSink,
    LoggingNotificationSink,
    NotificationSink,
)

__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "EmbeddingCapability",
    "HashingEmbedder",
    "ProviderCapability",
    "ProviderErrorHandler",
    "ScriptedProvider",
    "NotificationSink",
    "LoggingNotificationSink",
    "InMemoryNotificationSink",
]
