"""Model provider and embedding capabilities."""

from .base import EmbeddingCapability, ProviderCapability, build_context
from .error_handler import ProviderErrorHandler
from .mock_client import HashingEmbedder, ScriptedProvider

__all__ = [
    "EmbeddingCapability",
    "ProviderCapability",
    "build_context",
    "ProviderErrorHandler",
    "HashingEmbedder",
    "ScriptedProvider",
]
