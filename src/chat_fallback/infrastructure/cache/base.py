"""
Cache store interface for semantic response reuse.

The orchestrator only reads through ``query_by_similarity``; ``put`` is used
by cache-warming processes and by optional persistence of primary responses.
"""

from abc import ABC, abstractmethod

from chat_fallback.domain.models import CachedResponse, CacheMatch


class CacheStore(ABC):
    """Abstract semantic cache store."""

    @abstractmethod
    async def query_by_similarity(
        self, vector: list[float], threshold: float, limit: int = 5
    ) -> list[CacheMatch]:
        """Return matches with similarity >= ``threshold``, best first."""
        ...

    @abstractmethod
    async def put(self, query: str, vector: list[float], content: str) -> CachedResponse:
        """Store a response for later reuse."""
        ...

    async def health_check(self) -> bool:
        """Check if the storage backend is healthy."""
        return True
