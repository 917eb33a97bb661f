"""
In-memory semantic cache store for development and testing.

Similarity is cosine similarity computed with numpy over all stored vectors.
Reads take a snapshot of the entry list, so concurrent warming writes are
tolerated with eventual consistency. Entries whose dimension differs from
the query vector are not scored.
"""

import asyncio

import numpy as np

from chat_fallback.domain.models import CachedResponse, CacheMatch

from .base import CacheStore


class InMemoryCacheStore(CacheStore):
    """In-memory semantic cache."""

    def __init__(self, max_entries: int = 10_000) -> None:
        self.max_entries = max_entries
        self._entries: list[CachedResponse] = []
        self._lock = asyncio.Lock()

    async def query_by_similarity(
        self, vector: list[float], threshold: float, limit: int = 5
    ) -> list[CacheMatch]:
        query = np.asarray(vector, dtype=np.float64)
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return []

        # Newest first: the stable sort keeps it ahead on ties.
        entries = [
            entry for entry in reversed(self._entries) if len(entry.embedding) == len(query)
        ]
        if not entries:
            return []

        matrix = np.asarray([entry.embedding for entry in entries], dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0] = np.inf
        similarities = (matrix @ query) / (norms * query_norm)

        matches = [
            CacheMatch(entry=entry, similarity=float(np.clip(score, -1.0, 1.0)))
            for entry, score in zip(entries, similarities, strict=True)
            if score >= threshold
        ]
        matches.sort(key=lambda m: (m.similarity, m.entry.created_at), reverse=True)
        return matches[:limit]

    async def put(self, query: str, vector: list[float], content: str) -> CachedResponse:
        entry = CachedResponse(query=query, embedding=list(vector), content=content)
        async with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self.max_entries:
                self._evict()
        return entry

    def _evict(self) -> None:
        """Drop the oldest, least used quarter of entries."""
        ranked = sorted(self._entries, key=lambda e: (e.hit_count, e.created_at))
        drop = {id(entry) for entry in ranked[: max(len(ranked) // 4, 1)]}
        self._entries = [entry for entry in self._entries if id(entry) not in drop]

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
