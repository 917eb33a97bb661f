"""Scripted provider and hashing embedder for demos and tests."""

import asyncio
import hashlib
import re
from collections.abc import Callable, Iterable
from typing import Any

import numpy as np
import structlog

from chat_fallback.domain.exceptions import ProviderErrorException
from chat_fallback.domain.models import ProviderErrorKind

from .base import EmbeddingCapability, ProviderCapability

logger = structlog.get_logger()

# A scripted step is either content to return, a failure kind to raise, or
# an exception instance to raise verbatim.
ScriptStep = str | ProviderErrorKind | BaseException


class ScriptedProvider(ProviderCapability):
    """Provider that replays a script of outcomes.

    Once the script is exhausted the last step repeats. ``delay`` simulates
    latency, which lets callers exercise timeouts.
    """

    def __init__(
        self,
        provider_id: str,
        script: Iterable[ScriptStep] | ScriptStep = "ok",
        delay: float = 0.0,
        healthy: bool | Callable[[], bool] = True,
        call_log: list[str] | None = None,
    ):
        super().__init__(provider_id)
        if isinstance(script, (str, ProviderErrorKind, BaseException)):
            script = [script]
        self.script: list[ScriptStep] = list(script) or ["ok"]
        self.delay = delay
        self.healthy = healthy
        self.call_log = call_log if call_log is not None else []
        self.calls: list[dict[str, Any]] = []
        self.health_checks = 0

    async def generate(
        self, prompt: str, context: dict[str, Any], timeout_ms: float
    ) -> str:
        index = min(len(self.calls), len(self.script) - 1)
        step = self.script[index]
        self.calls.append({"prompt": prompt, "context": context, "timeout_ms": timeout_ms})
        self.call_log.append(self.provider_id)

        if self.delay:
            await asyncio.sleep(self.delay)

        if isinstance(step, ProviderErrorKind):
            raise ProviderErrorException(self.provider_id, step)
        if isinstance(step, BaseException):
            raise step

        logger.debug("Scripted provider responding", provider_id=self.provider_id)
        return step

    async def health_check(self) -> bool:
        self.health_checks += 1
        if callable(self.healthy):
            return self.healthy()
        return self.healthy

    @property
    def call_count(self) -> int:
        return len(self.calls)


class HashingEmbedder(EmbeddingCapability):
    """Deterministic bag-of-words embedder using the hashing trick.

    Similar wording yields similar vectors, which is enough to drive the
    semantic cache without a model.
    """

    _token_pattern = re.compile(r"\w+", re.UNICODE)

    def __init__(self, dimensions: int = 256):
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for token in self._token_pattern.findall(text.lower()):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest, "big") % self.dimensions
            vector[bucket] += 1.0

        norm = np.linalg.norm(vector)
        if norm:
            vector /= norm
        return vector.tolist()
