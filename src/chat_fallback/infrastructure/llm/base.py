"""Capability interfaces for model providers and embeddings.

The primary provider and every backup provider share one contract:
``generate(prompt, context, timeout_ms)`` returns content or raises a
provider failure.
"""

from abc import ABC, abstractmethod
from typing import Any


class ProviderCapability(ABC):
    """Abstract base class for text generation providers."""

    def __init__(self, provider_id: str, config: dict[str, Any] | None = None):
        self.provider_id = provider_id
        self.config = config or {}

    @abstractmethod
    async def generate(
        self, prompt: str, context: dict[str, Any], timeout_ms: float
    ) -> str:
        """Generate a completion.

        Raises:
            ProviderErrorException: The provider reported a failure.
            ProviderTimeoutException: The provider gave up within its budget.
        """
        pass

    async def health_check(self) -> bool:
        """Lightweight liveness probe. Providers override with a cheap call."""
        return True


class EmbeddingCapability(ABC):
    """Abstract base class for text embedders."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for ``text``."""
        pass


def build_context(
    session_id: str,
    user_id: str | None = None,
    conversation_summary: str | None = None,
) -> dict[str, Any]:
    """Context mapping passed alongside the prompt to every provider."""
    context: dict[str, Any] = {"session_id": session_id}
    if user_id:
        context["user_id"] = user_id
    if conversation_summary:
        context["conversation_summary"] = conversation_summary
    return context
