"""Ordered chain of backup model providers."""

import asyncio
import re
import time
from collections.abc import Callable, Iterator
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from chat_fallback.config.settings import ChainSettings
from chat_fallback.domain.exceptions import ProviderErrorException
from chat_fallback.domain.models import (
    DegradationLevel,
    FallbackResult,
    ProviderErrorKind,
    RequestContext,
    SourceKind,
)
from chat_fallback.infrastructure.llm.base import ProviderCapability, build_context
from chat_fallback.infrastructure.llm.error_handler import ProviderErrorHandler

from ..circuit_breaker.config import CircuitBreakerConfig
from ..circuit_breaker.manager import CircuitBreakerManager
from ..exceptions import ChainExhaustedException, CircuitBreakerOpenException
from ..health.monitor import HealthMonitor

logger = structlog.get_logger()

# Confidence reported for a response from a provider of the given tier.
TIER_CONFIDENCE = {1: 0.85, 2: 0.75, 3: 0.65, 4: 0.55, 5: 0.5}

STOPWORDS = {
    "pt": frozenset(
        "o a os as um uma de do da dos das em no na nos nas para por com não nao "
        "que é são sao você voce seu sua isso este esta mas também tambem como "
        "mais pelo pela ao aos quando muito já ja".split()
    ),
    "en": frozenset(
        "the a an of to in on for with is are was were you your this that it "
        "and but also how more by when very already be can will not".split()
    ),
    "es": frozenset(
        "el la los las un una de del en para por con no que es son usted su "
        "esto este pero también como más cuando muy ya".split()
    ),
}

_WORD_PATTERN = re.compile(r"[^\W\d_]+", re.UNICODE)


def detect_language(text: str, min_hits: int = 2) -> str | None:
    """Guess the language of ``text`` from stopword frequency.

    Returns None when the text is too short or the top two candidates tie.
    """
    words = [word.lower() for word in _WORD_PATTERN.findall(text)]
    scores = {
        language: sum(1 for word in words if word in stopwords)
        for language, stopwords in STOPWORDS.items()
    }
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    (best, best_score), (_, runner_up) = ranked[0], ranked[1]
    if best_score < min_hits or best_score == runner_up:
        return None
    return best


class BackupProviderDescriptor(BaseModel):
    """Static description of one backup provider."""

    model_config = ConfigDict(frozen=True)

    provider_id: str = Field(min_length=1)
    quality_tier: int = Field(default=1, ge=1, le=5, description="1 is best")
    timeout_ms: float | None = Field(
        default=None, gt=0.0, description="None uses the chain's default timeout"
    )
    model: str | None = None

    @property
    def confidence(self) -> float:
        return TIER_CONFIDENCE[self.quality_tier]


class BackupProviderRegistry:
    """Declared order of backup providers, each bound to a capability."""

    def __init__(
        self,
        providers: list[tuple[BackupProviderDescriptor, ProviderCapability]] | None = None,
    ):
        self._entries: list[tuple[BackupProviderDescriptor, ProviderCapability]] = []
        for descriptor, provider in providers or []:
            self.register(descriptor, provider)

    def register(
        self, descriptor: BackupProviderDescriptor, provider: ProviderCapability
    ) -> None:
        if any(d.provider_id == descriptor.provider_id for d, _ in self._entries):
            raise ValueError(f"Duplicate backup provider id: {descriptor.provider_id}")
        self._entries.append((descriptor, provider))
        logger.info(
            "Registered backup provider",
            provider_id=descriptor.provider_id,
            quality_tier=descriptor.quality_tier,
            position=len(self._entries),
        )

    @property
    def descriptors(self) -> list[BackupProviderDescriptor]:
        return [descriptor for descriptor, _ in self._entries]

    def __iter__(self) -> Iterator[tuple[BackupProviderDescriptor, ProviderCapability]]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


class ModelFallbackChain:
    """Tries backup providers in declared order.

    Each provider sits behind its own circuit breaker; a provider in
    cooldown is skipped without being called.
    """

    def __init__(
        self,
        registry: BackupProviderRegistry,
        health_monitor: HealthMonitor | None = None,
        settings: ChainSettings | None = None,
        breakers: CircuitBreakerManager | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.health_monitor = health_monitor
        self.settings = settings or ChainSettings()
        self.breakers = breakers or CircuitBreakerManager(
            CircuitBreakerConfig.from_chain_settings(self.settings), clock=clock
        )
        self._clock = clock

    async def resolve(
        self,
        request: RequestContext,
        degradation_level: DegradationLevel | None = None,
    ) -> FallbackResult | None:
        """First valid backup response, or None when every provider failed or is cooling down."""
        result, _, _ = await self._run(request, degradation_level)
        return result

    async def resolve_or_raise(
        self,
        request: RequestContext,
        degradation_level: DegradationLevel | None = None,
        correlation_id: str | None = None,
    ) -> FallbackResult:
        """Like :meth:`resolve` but raises :class:`ChainExhaustedException`."""
        result, attempted, skipped = await self._run(request, degradation_level)
        if result is None:
            raise ChainExhaustedException(attempted, skipped, correlation_id)
        return result

    async def _run(
        self, request: RequestContext, degradation_level: DegradationLevel | None
    ) -> tuple[FallbackResult | None, list[str], list[str]]:
        attempted: list[str] = []
        skipped: list[str] = []
        context = build_context(
            request.session_id, request.user_id, request.conversation_summary
        )

        for descriptor, provider in self.registry:
            breaker = self.breakers.get_breaker(descriptor.provider_id)
            started = self._clock()
            try:
                content = await breaker.call(
                    self._generate, provider, descriptor, request.query, context
                )
            except CircuitBreakerOpenException:
                skipped.append(descriptor.provider_id)
                logger.info(
                    "Skipping backup provider in cooldown",
                    provider_id=descriptor.provider_id,
                )
                continue
            except Exception as e:
                attempted.append(descriptor.provider_id)
                latency_ms = (self._clock() - started) * 1000
                kind = ProviderErrorHandler.classify(e)
                self._record(descriptor.provider_id, False, latency_ms, kind)
                logger.warning(
                    "Backup provider failed",
                    provider_id=descriptor.provider_id,
                    error_kind=kind.value,
                    error=str(e),
                    latency_ms=round(latency_ms, 1),
                )
                continue

            attempted.append(descriptor.provider_id)
            latency_ms = (self._clock() - started) * 1000
            self._record(descriptor.provider_id, True, latency_ms)
            logger.info(
                "Backup provider succeeded",
                provider_id=descriptor.provider_id,
                latency_ms=round(latency_ms, 1),
            )
            return (
                FallbackResult(
                    content=content,
                    source_kind=SourceKind.BACKUP_MODEL,
                    confidence=descriptor.confidence,
                    model=descriptor.provider_id,
                    degradation_level=degradation_level,
                ),
                attempted,
                skipped,
            )

        logger.warning("Backup chain exhausted", attempted=attempted, skipped=skipped)
        return None, attempted, skipped

    async def _generate(
        self,
        provider: ProviderCapability,
        descriptor: BackupProviderDescriptor,
        query: str,
        context: dict[str, Any],
    ) -> str:
        timeout_ms = self.timeout_for(descriptor)
        content = await asyncio.wait_for(
            provider.generate(query, context, timeout_ms), timeout=timeout_ms / 1000
        )
        self._validate(content, descriptor)
        return content

    def timeout_for(self, descriptor: BackupProviderDescriptor) -> float:
        return descriptor.timeout_ms or self.settings.default_timeout_ms

    def _validate(self, content: Any, descriptor: BackupProviderDescriptor) -> None:
        if not isinstance(content, str) or not content.strip():
            raise ProviderErrorException(
                descriptor.provider_id,
                ProviderErrorKind.INVALID_RESPONSE,
                "Empty response",
            )

        expected = self.settings.expected_language
        if expected:
            detected = detect_language(content)
            if detected is not None and detected != expected:
                raise ProviderErrorException(
                    descriptor.provider_id,
                    ProviderErrorKind.INVALID_RESPONSE,
                    f"Response language {detected!r} does not match {expected!r}",
                )

    def _record(
        self,
        provider_id: str,
        success: bool,
        latency_ms: float,
        error_kind: ProviderErrorKind | None = None,
    ) -> None:
        if self.health_monitor is not None:
            self.health_monitor.record_outcome(provider_id, success, latency_ms, error_kind)

    def get_state_info(self) -> dict[str, Any]:
        return {
            "providers": [d.model_dump() for d in self.registry.descriptors],
            "breakers": self.breakers.get_breaker_stats(),
            "cooling_down": self.breakers.open_breakers(),
        }
