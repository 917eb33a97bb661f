"""Semantic cache fallback: reuse and adapt a prior similar response."""

import asyncio
import re

import structlog

from chat_fallback.config.settings import CacheSettings
from chat_fallback.domain.models import (
    CachedResponse,
    CacheMatch,
    DegradationLevel,
    FallbackResult,
    SourceKind,
)
from chat_fallback.infrastructure.cache.base import CacheStore
from chat_fallback.infrastructure.llm.base import EmbeddingCapability

logger = structlog.get_logger()

# Phrases that only make sense inside the conversation the response came from.
CONTEXT_REFERENCE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(?:como|conforme)\s+(?:eu\s+)?(?:mencionei|mencionado|disse|falei|expliquei)"
        r"(?:\s+(?:antes|anteriormente|acima))?\s*,?\s*",
        r"\bcomo\s+(?:j[aá]\s+)?(?:falamos|conversamos|vimos)(?:\s+(?:antes|anteriormente))?\s*,?\s*",
        r"\bvoltando\s+ao\s+que\s+(?:voc[eê]\s+)?(?:perguntou|disse)(?:\s+antes)?\s*,?\s*",
        r"\bas\s+I\s+(?:mentioned|said|explained)(?:\s+(?:earlier|before|above))?\s*,?\s*",
        r"\bas\s+we\s+(?:discussed|talked\s+about)(?:\s+(?:earlier|before))?\s*,?\s*",
        r"\blike\s+I\s+said(?:\s+(?:earlier|before))?\s*,?\s*",
    )
]

# Stock openings that are replaced by one pointing at the current query.
OPENING_PATTERN = re.compile(
    r"^\s*(?:(?:ótima|otima|boa|excelente)\s+pergunta|claro|certo|com\s+certeza|"
    r"olá|ola|oi|great\s+question|good\s+question|sure|of\s+course|hi|hello)"
    r"\s*[,.!:]+\s*",
    re.IGNORECASE,
)

MAX_QUERY_SNIPPET = 80


class CacheFallbackResolver:
    """Finds a semantically similar cached response and adapts it."""

    def __init__(
        self,
        embedder: EmbeddingCapability,
        store: CacheStore,
        settings: CacheSettings | None = None,
    ):
        self.embedder = embedder
        self.store = store
        self.settings = settings or CacheSettings()
        self.lookups = 0
        self.hits = 0

    async def find_similar(
        self, query: str, threshold: float | None = None
    ) -> CacheMatch | None:
        """Best cached match at or above ``threshold``, or None.

        Ties on similarity go to the most recently created entry. Embedding
        and store failures are logged and reported as a miss.
        """
        if threshold is None:
            threshold = self.settings.similarity_threshold
        self.lookups += 1

        try:
            matches = await asyncio.wait_for(
                self._lookup(query, threshold),
                timeout=self.settings.lookup_timeout_ms / 1000,
            )
        except TimeoutError:
            logger.warning(
                "Cache lookup timed out",
                timeout_ms=self.settings.lookup_timeout_ms,
            )
            return None
        except Exception as e:
            logger.warning("Cache lookup failed", error=str(e), error_type=type(e).__name__)
            return None

        candidates = [match for match in matches if match.similarity >= threshold]
        if not candidates:
            logger.debug("Cache miss", threshold=threshold, candidates=len(matches))
            return None

        best = max(candidates, key=lambda m: (m.similarity, m.entry.created_at))
        best.entry.hit_count += 1
        self.hits += 1
        logger.info(
            "Cache hit",
            entry_id=str(best.entry.id),
            similarity=round(best.similarity, 4),
            hit_count=best.entry.hit_count,
        )
        return best

    async def _lookup(self, query: str, threshold: float) -> list[CacheMatch]:
        vector = await self.embedder.embed(query)
        return await self.store.query_by_similarity(
            vector, threshold, limit=self.settings.max_candidates
        )

    def adapt(
        self,
        match: CacheMatch,
        query: str,
        degradation_level: DegradationLevel | None = None,
    ) -> FallbackResult:
        """Rewrite a cached response so it reads as an answer to ``query``."""
        original = match.entry.content
        content = self._strip_context_references(original, match.entry.query, query)
        content = OPENING_PATTERN.sub("", content, count=1).strip()
        if not content:
            content = original.strip()

        content = f"{self._opening_for(query)}{content}"

        return FallbackResult(
            content=content,
            source_kind=SourceKind.CACHE_ADAPTED,
            confidence=min(max(match.similarity, 0.0), 1.0),
            degradation_level=degradation_level,
        )

    @staticmethod
    def _strip_context_references(content: str, original_query: str, query: str) -> str:
        for pattern in CONTEXT_REFERENCE_PATTERNS:
            content = pattern.sub("", content)

        original_query = original_query.strip()
        if original_query and original_query.lower() != query.strip().lower():
            quoted = re.compile(
                r"[\"“']\s*" + re.escape(original_query) + r"\s*[\"”']", re.IGNORECASE
            )
            replacement = f'"{query.strip()}"'
            content = quoted.sub(lambda _: replacement, content)

        content = re.sub(r"[ \t]{2,}", " ", content)
        content = re.sub(r"\s+([,.!?])", r"\1", content)
        return content.strip()

    @staticmethod
    def _opening_for(query: str) -> str:
        snippet = " ".join(query.split())
        if len(snippet) > MAX_QUERY_SNIPPET:
            snippet = snippet[: MAX_QUERY_SNIPPET - 3].rstrip() + "..."
        return f'Sobre "{snippet}": '

    async def remember(self, query: str, content: str) -> CachedResponse | None:
        """Store a primary response for later reuse."""
        try:
            vector = await self.embedder.embed(query)
            entry = await self.store.put(query, vector, content)
        except Exception as e:
            logger.warning("Failed to store response in cache", error=str(e))
            return None
        logger.debug("Stored response in cache", entry_id=str(entry.id))
        return entry
