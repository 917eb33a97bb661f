"""Fallback orchestration: the single entry point for resolving a query."""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from chat_fallback.config.settings import OrchestratorSettings, Settings, get_settings
from chat_fallback.domain.exceptions import (
    ChatFallbackException,
    ProviderErrorException,
    ValidationException,
)
from chat_fallback.domain.models import (
    DegradationLevel,
    FallbackResult,
    ProviderErrorKind,
    RequestContext,
    SourceKind,
    StageAttempt,
)
from chat_fallback.infrastructure.cache.base import CacheStore
from chat_fallback.infrastructure.llm.base import (
    EmbeddingCapability,
    ProviderCapability,
    build_context,
)
from chat_fallback.infrastructure.llm.error_handler import ProviderErrorHandler
from chat_fallback.infrastructure.notifications import (
    LoggingNotificationSink,
    NotificationSink,
)
from chat_fallback.observability.logging.correlation import (
    generate_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from chat_fallback.observability.metrics import MetricsCollector
from chat_fallback.resilience.degradation.controller import DegradationController
from chat_fallback.resilience.exceptions import CacheMissException
from chat_fallback.resilience.fallback.cache import CacheFallbackResolver
from chat_fallback.resilience.fallback.chain import (
    BackupProviderDescriptor,
    BackupProviderRegistry,
    ModelFallbackChain,
)
from chat_fallback.resilience.fallback.rules import (
    LAST_RESORT_MESSAGE,
    RuleBasedResponder,
)
from chat_fallback.resilience.health.monitor import HealthMonitor
from chat_fallback.resilience.health.recovery import RecoveryMonitor

logger = structlog.get_logger()

Stage = Callable[[RequestContext, DegradationLevel, str], Awaitable[FallbackResult]]

STAGE_PRIMARY = "primary"
STAGE_CACHE = "cache"
STAGE_BACKUP = "backup"
STAGE_RULES = "rules"


class FallbackOrchestrator:
    """Resolves every request to usable content.

    Stages run in an order chosen by the current degradation level:
    primary, semantic cache, backup model chain and finally the
    rule-based responder, which never fails. Stage failures are recovered
    here; only a malformed request raises.
    """

    def __init__(
        self,
        primary: ProviderCapability,
        cache: CacheFallbackResolver,
        chain: ModelFallbackChain,
        rules: RuleBasedResponder,
        controller: DegradationController,
        health_monitor: HealthMonitor,
        recovery: RecoveryMonitor,
        settings: OrchestratorSettings | None = None,
        collector: MetricsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.primary = primary
        self.cache = cache
        self.chain = chain
        self.rules = rules
        self.controller = controller
        self.health_monitor = health_monitor
        self.recovery = recovery
        self.settings = settings or OrchestratorSettings()
        self._collector = collector
        self._clock = clock
        self._background_tasks: set[asyncio.Task[Any]] = set()

    async def resolve(self, request: RequestContext | Mapping[str, Any]) -> FallbackResult:
        """Produce a response for ``request``.

        Raises:
            ValidationException: If the request is malformed
        """
        correlation_id = get_correlation_id() or generate_correlation_id()
        context = self._coerce_request(request, correlation_id)

        token = set_correlation_id(correlation_id)
        try:
            with structlog.contextvars.bound_contextvars(session_id=context.session_id):
                return await self._resolve(context, correlation_id)
        finally:
            reset_correlation_id(token)

    @staticmethod
    def _coerce_request(
        request: RequestContext | Mapping[str, Any], correlation_id: str
    ) -> RequestContext:
        if isinstance(request, RequestContext):
            return request
        if not isinstance(request, Mapping):
            raise ValidationException(
                "Request must be a RequestContext or a mapping",
                field="request",
                value=type(request).__name__,
                correlation_id=correlation_id,
            )
        try:
            return RequestContext.model_validate(dict(request))
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "request"
            raise ValidationException(
                f"Invalid request: {error['msg']}",
                field=field,
                value=error.get("input"),
                correlation_id=correlation_id,
            ) from e

    async def _resolve(self, request: RequestContext, correlation_id: str) -> FallbackResult:
        started = self._clock()
        level = self.controller.current_level()
        attempts: list[StageAttempt] = []
        stages = self._plan(level, attempts)

        logger.info(
            "Resolving request",
            degradation_level=level.value,
            stages=[name for name, _ in stages],
        )

        result: FallbackResult | None = None
        for name, stage in stages:
            stage_started = self._clock()
            try:
                result = await stage(request, level, correlation_id)
            except ChatFallbackException as e:
                self._record_attempt(attempts, name, "failure", stage_started, e)
                logger.info(
                    "Fallback stage failed",
                    stage=name,
                    error_code=e.error_code.value,
                    error=str(e),
                )
                continue
            except Exception as e:
                self._record_attempt(attempts, name, "error", stage_started, e)
                logger.error(
                    "Unexpected error in fallback stage",
                    stage=name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            self._record_attempt(attempts, name, "success", stage_started)
            break

        if result is None:
            # The rule-based stage never raises; this covers a broken responder.
            result = FallbackResult(
                content=LAST_RESORT_MESSAGE,
                source_kind=SourceKind.RULE_BASED,
                confidence=self.rules.settings.confidence,
            )

        result = result.model_copy(
            update={"degradation_level": level, "attempts": attempts}
        )
        duration = self._clock() - started
        if self._collector is not None:
            self._collector.record_resolution(result.source_kind.value, duration)

        logger.info(
            "Request resolved",
            source_kind=result.source_kind.value,
            model=result.model,
            confidence=result.confidence,
            duration_ms=round(duration * 1000, 1),
        )
        return result

    def _plan(
        self, level: DegradationLevel, attempts: list[StageAttempt]
    ) -> list[tuple[str, Stage]]:
        stages: list[tuple[str, Stage]] = []
        skip_reason = self._primary_skip_reason(level)
        if skip_reason is None:
            stages.append((STAGE_PRIMARY, self._attempt_primary))
        else:
            attempts.append(
                StageAttempt(stage=STAGE_PRIMARY, outcome="skipped", error=skip_reason)
            )
            if self._collector is not None:
                self._collector.record_stage(STAGE_PRIMARY, "skipped")

        stages.extend(
            [
                (STAGE_CACHE, self._attempt_cache),
                (STAGE_BACKUP, self._attempt_backup),
                (STAGE_RULES, self._attempt_rules),
            ]
        )
        return stages

    def _primary_skip_reason(self, level: DegradationLevel) -> str | None:
        if level is DegradationLevel.SEVERE:
            return "severe_degradation"
        if self.health_monitor.is_down(self.primary.provider_id):
            return "provider_down"
        if level.is_degraded and not self.recovery.permits_primary():
            return "traffic_ramp"
        return None

    def _record_attempt(
        self,
        attempts: list[StageAttempt],
        stage: str,
        outcome: str,
        started: float,
        error: BaseException | None = None,
    ) -> None:
        attempts.append(
            StageAttempt(
                stage=stage,
                outcome=outcome,
                latency_ms=(self._clock() - started) * 1000,
                error=str(error) if error is not None else None,
            )
        )
        if self._collector is not None:
            self._collector.record_stage(stage, outcome)

    async def _attempt_primary(
        self, request: RequestContext, level: DegradationLevel, correlation_id: str
    ) -> FallbackResult:
        provider_id = self.primary.provider_id
        timeout_ms = self.settings.primary_timeout_ms
        context = build_context(
            request.session_id, request.user_id, request.conversation_summary
        )

        started = self._clock()
        try:
            content = await asyncio.wait_for(
                self.primary.generate(request.query, context, timeout_ms),
                timeout=timeout_ms / 1000,
            )
            if not isinstance(content, str) or not content.strip():
                raise ProviderErrorException(
                    provider_id,
                    ProviderErrorKind.INVALID_RESPONSE,
                    "Empty response",
                    correlation_id,
                )
        except Exception as e:
            latency_ms = (self._clock() - started) * 1000
            error = ProviderErrorHandler.to_exception(
                e, provider_id, timeout_ms, correlation_id
            )
            self.health_monitor.record_outcome(provider_id, False, latency_ms, error.kind)
            if level.is_degraded:
                self.recovery.record_failure(reason="ramped_request_failed")
            if error is e:
                raise
            raise error from e

        latency_ms = (self._clock() - started) * 1000
        self.health_monitor.record_outcome(provider_id, True, latency_ms)

        if self.settings.persist_primary_responses:
            self._spawn(self.cache.remember(request.query, content))

        return FallbackResult(
            content=content,
            source_kind=SourceKind.PRIMARY,
            confidence=1.0,
            model=provider_id,
        )

    async def _attempt_cache(
        self, request: RequestContext, level: DegradationLevel, correlation_id: str
    ) -> FallbackResult:
        match = await self.cache.find_similar(request.query)
        if match is None:
            raise CacheMissException(self.cache.settings.similarity_threshold, correlation_id)
        return self.cache.adapt(match, request.query, level)

    async def _attempt_backup(
        self, request: RequestContext, level: DegradationLevel, correlation_id: str
    ) -> FallbackResult:
        return await self.chain.resolve_or_raise(request, level, correlation_id)

    async def _attempt_rules(
        self, request: RequestContext, level: DegradationLevel, correlation_id: str
    ) -> FallbackResult:
        return self.rules.respond(request, level)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    @property
    def collector(self) -> MetricsCollector | None:
        return self._collector

    def current_degradation_level(self) -> DegradationLevel:
        return self.controller.current_level()

    async def override(self, level: DegradationLevel) -> None:
        """Pin the degradation level (operator control)."""
        await self.controller.override(level)

    async def clear_override(self) -> None:
        await self.controller.clear_override()

    async def start(self) -> None:
        """Start health evaluation and recovery probing."""
        await self.health_monitor.start_monitoring(self.controller)
        await self.recovery.start()

    async def stop(self) -> None:
        """Stop background work and wait for it to finish."""
        if self.health_monitor.is_monitoring:
            await self.health_monitor.stop_monitoring()
        if self.recovery.is_running:
            await self.recovery.stop()

        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._background_tasks.clear()

    async def __aenter__(self) -> "FallbackOrchestrator":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def get_state_info(self) -> dict[str, Any]:
        """Operator snapshot of level, ramp, provider health and breakers."""
        return {
            "controller": self.controller.get_state_info(),
            "recovery": self.recovery.get_state_info(),
            "providers": self.health_monitor.get_all_health(),
            "backup_chain": self.chain.get_state_info(),
            "cache": {"lookups": self.cache.lookups, "hits": self.cache.hits},
        }


def build_orchestrator(
    primary: ProviderCapability,
    embedder: EmbeddingCapability,
    store: CacheStore,
    backups: list[tuple[BackupProviderDescriptor, ProviderCapability]] | None = None,
    settings: Settings | None = None,
    sink: NotificationSink | None = None,
    collector: MetricsCollector | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> FallbackOrchestrator:
    """Wire every component from one :class:`Settings` instance."""
    settings = settings or get_settings()
    sink = sink or LoggingNotificationSink()

    health_monitor = HealthMonitor(
        settings.health,
        collector=collector,
        watched_providers=[primary.provider_id],
    )
    controller = DegradationController(
        settings.degradation, sink=sink, collector=collector, clock=clock
    )
    recovery = RecoveryMonitor(
        primary,
        controller,
        health_monitor=health_monitor,
        settings=settings.recovery,
        sink=sink,
        collector=collector,
        rng=rng,
        clock=clock,
    )
    chain = ModelFallbackChain(
        BackupProviderRegistry(backups),
        health_monitor=health_monitor,
        settings=settings.chain,
        clock=clock,
    )

    return FallbackOrchestrator(
        primary=primary,
        cache=CacheFallbackResolver(embedder, store, settings.cache),
        chain=chain,
        rules=RuleBasedResponder(settings.rules),
        controller=controller,
        health_monitor=health_monitor,
        recovery=recovery,
        settings=settings.orchestrator,
        collector=collector,
        clock=clock,
    )
