"""Rolling health tracking for model providers."""

import asyncio
import math
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import numpy as np
import structlog

from chat_fallback.config.settings import HealthMonitorSettings
from chat_fallback.domain.models import (
    HealthStatus,
    ProviderErrorKind,
    ProviderState,
    TriggerEvent,
    TriggerKind,
)
from chat_fallback.observability.metrics import MetricsCollector

if TYPE_CHECKING:
    from ..degradation.controller import DegradationController

logger = structlog.get_logger()

TriggerListener = Callable[[TriggerEvent], None]

# Oldest boundary triggers are dropped once this many wait for a drain.
MAX_PENDING_TRIGGERS = 100


@dataclass(frozen=True)
class OutcomeSample:
    """One recorded provider call."""

    success: bool
    latency_ms: float
    error_kind: ProviderErrorKind | None = None


@dataclass
class ProviderHealthMetrics:
    """Sliding window and counters for one provider."""

    provider_id: str
    window_size: int
    samples: deque[OutcomeSample] = field(init=False)
    consecutive_failures: int = 0
    consecutive_hard_errors: int = 0
    last_error_kind: ProviderErrorKind | None = None
    last_checked: datetime | None = None
    state: ProviderState = ProviderState.HEALTHY
    total_outcomes: int = 0

    def __post_init__(self) -> None:
        self.samples = deque(maxlen=self.window_size)

    @property
    def error_rate(self) -> float:
        if not self.samples:
            return 0.0
        failures = sum(1 for sample in self.samples if not sample.success)
        return failures / len(self.samples)

    @property
    def p95_latency_ms(self) -> float:
        if not self.samples:
            return 0.0
        return float(np.percentile([s.latency_ms for s in self.samples], 95))

    def add(self, sample: OutcomeSample) -> None:
        self.samples.append(sample)
        self.total_outcomes += 1
        self.last_checked = datetime.now(UTC)

        if sample.success:
            self.consecutive_failures = 0
            self.consecutive_hard_errors = 0
            return

        self.consecutive_failures += 1
        self.last_error_kind = sample.error_kind
        if sample.error_kind is not None and sample.error_kind.is_hard:
            self.consecutive_hard_errors += 1
        else:
            self.consecutive_hard_errors = 0


class HealthMonitor:
    """Tracks rolling health per provider and emits degradation triggers.

    ``record_outcome`` is synchronous and never awaits, so window updates
    are atomic on the event loop. Every boundary crossing produces a
    :class:`TriggerEvent` that is handed to listeners and queued for the
    next evaluation tick; the queue keeps only the newest
    ``MAX_PENDING_TRIGGERS`` when nothing drains it.
    """

    def __init__(
        self,
        settings: HealthMonitorSettings | None = None,
        collector: MetricsCollector | None = None,
        watched_providers: Iterable[str] | None = None,
    ):
        """Initialize health monitor.

        Args:
            settings: Window sizes and thresholds
            collector: Optional metrics collector
            watched_providers: Providers whose triggers drive the service
                level; None watches every provider
        """
        self.settings = settings or HealthMonitorSettings()
        self._collector = collector
        self.watched_providers = set(watched_providers) if watched_providers else None
        self.metrics: dict[str, ProviderHealthMetrics] = {}
        self._listeners: list[TriggerListener] = []
        self._pending: deque[TriggerEvent] = deque(maxlen=MAX_PENDING_TRIGGERS)
        self._monitoring_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    def add_listener(self, listener: TriggerListener) -> None:
        """Subscribe to boundary-crossing triggers."""
        self._listeners.append(listener)

    def record_outcome(
        self,
        provider_id: str,
        success: bool,
        latency_ms: float,
        error_kind: ProviderErrorKind | None = None,
    ) -> None:
        """Record one provider call. Malformed input is logged and ignored."""
        if not self._is_well_formed(provider_id, success, latency_ms, error_kind):
            logger.warning(
                "Ignoring malformed provider outcome",
                provider_id=provider_id,
                success=success,
                latency_ms=latency_ms,
                error_kind=error_kind,
            )
            return

        try:
            metrics = self.metrics.get(provider_id)
            if metrics is None:
                metrics = ProviderHealthMetrics(provider_id, self.settings.window_size)
                self.metrics[provider_id] = metrics

            metrics.add(OutcomeSample(success, float(latency_ms), error_kind))
            if self._collector is not None:
                self._collector.record_provider_call(provider_id, success)

            new_state = self._derive_state(metrics)
            if new_state != metrics.state:
                previous = metrics.state
                metrics.state = new_state
                self._on_state_change(metrics, previous)
        except Exception as e:
            logger.error(
                "Error recording provider outcome", provider_id=provider_id, error=str(e)
            )

    @staticmethod
    def _is_well_formed(
        provider_id: Any, success: Any, latency_ms: Any, error_kind: Any
    ) -> bool:
        if not isinstance(provider_id, str) or not provider_id.strip():
            return False
        if not isinstance(success, bool):
            return False
        if isinstance(latency_ms, bool) or not isinstance(latency_ms, (int, float)):
            return False
        if math.isnan(latency_ms) or math.isinf(latency_ms) or latency_ms < 0:
            return False
        return error_kind is None or isinstance(error_kind, ProviderErrorKind)

    def _derive_state(self, metrics: ProviderHealthMetrics) -> ProviderState:
        if metrics.consecutive_failures >= self.settings.down_consecutive_failures:
            return ProviderState.DOWN
        if metrics.consecutive_hard_errors >= self.settings.hard_error_threshold:
            return ProviderState.DOWN
        if len(metrics.samples) >= self.settings.min_samples and (
            self._error_rate_breached(metrics) or self._latency_breached(metrics)
        ):
            return ProviderState.DEGRADED
        return ProviderState.HEALTHY

    def _error_rate_breached(self, metrics: ProviderHealthMetrics) -> bool:
        return metrics.error_rate > self.settings.error_rate_threshold

    def _latency_breached(self, metrics: ProviderHealthMetrics) -> bool:
        return metrics.p95_latency_ms > self.settings.latency_p95_threshold_ms

    def _on_state_change(
        self, metrics: ProviderHealthMetrics, previous: ProviderState
    ) -> None:
        trigger = self._build_trigger(metrics)
        logger.warning(
            "Provider health state changed",
            provider_id=metrics.provider_id,
            previous_state=previous.value,
            state=metrics.state.value,
            trigger_kind=trigger.kind.value,
            error_rate=metrics.error_rate,
            consecutive_failures=metrics.consecutive_failures,
        )
        if self._collector is not None:
            self._collector.record_provider_state(metrics.provider_id, metrics.state)

        self._pending.append(trigger)
        for listener in self._listeners:
            try:
                listener(trigger)
            except Exception as e:
                logger.error("Error notifying trigger listener", error=str(e))

    def _build_trigger(self, metrics: ProviderHealthMetrics) -> TriggerEvent:
        """Trigger describing the provider's current state and its cause."""
        settings = self.settings
        kind = TriggerKind.ERROR_RATE
        observed = metrics.error_rate
        threshold = settings.error_rate_threshold

        if metrics.state is not ProviderState.HEALTHY:
            if metrics.consecutive_failures and metrics.last_error_kind is ProviderErrorKind.QUOTA:
                kind = TriggerKind.QUOTA
                observed = float(metrics.consecutive_hard_errors)
                threshold = float(settings.hard_error_threshold)
            elif (
                metrics.consecutive_failures
                and metrics.last_error_kind is ProviderErrorKind.NETWORK
            ):
                kind = TriggerKind.NETWORK
                observed = float(metrics.consecutive_failures)
                threshold = float(settings.down_consecutive_failures)
            elif self._latency_breached(metrics) and not self._error_rate_breached(metrics):
                kind = TriggerKind.LATENCY
                observed = metrics.p95_latency_ms
                threshold = settings.latency_p95_threshold_ms

        return TriggerEvent(
            kind=kind,
            observed_value=observed,
            threshold=threshold,
            provider_id=metrics.provider_id,
            indicated_state=metrics.state,
        )

    def current_status(self, provider_id: str) -> HealthStatus:
        """Current derived status; unknown providers are healthy."""
        metrics = self.metrics.get(provider_id)
        if metrics is None:
            return HealthStatus(provider_id=provider_id)
        return HealthStatus(
            provider_id=provider_id,
            state=metrics.state,
            consecutive_failures=metrics.consecutive_failures,
            last_checked=metrics.last_checked,
            error_rate=metrics.error_rate,
            p95_latency_ms=metrics.p95_latency_ms,
        )

    def is_down(self, provider_id: str) -> bool:
        metrics = self.metrics.get(provider_id)
        return metrics is not None and metrics.state is ProviderState.DOWN

    def active_triggers(self) -> list[TriggerEvent]:
        """Triggers implied by every provider that is currently not healthy."""
        return [
            self._build_trigger(metrics)
            for metrics in self.metrics.values()
            if metrics.state is not ProviderState.HEALTHY
        ]

    def drain_pending(self) -> list[TriggerEvent]:
        """Take the boundary-crossing triggers queued since the last drain."""
        pending = list(self._pending)
        self._pending.clear()
        return pending

    def _is_watched(self, trigger: TriggerEvent) -> bool:
        return self.watched_providers is None or trigger.provider_id in self.watched_providers

    def collect_triggers(self) -> list[TriggerEvent]:
        """Pending and active triggers for watched providers."""
        triggers = self.drain_pending() + self.active_triggers()
        return [trigger for trigger in triggers if self._is_watched(trigger)]

    async def start_monitoring(self, controller: "DegradationController") -> None:
        """Start feeding triggers into ``controller`` every evaluation interval."""
        if self._monitoring_task is not None:
            logger.warning("Health monitoring already started")
            return

        self._stop_event.clear()
        self._monitoring_task = asyncio.create_task(self._monitoring_loop(controller))
        logger.info(
            "Started health monitoring", interval=self.settings.evaluation_interval
        )

    async def stop_monitoring(self) -> None:
        """Stop health monitoring."""
        if self._monitoring_task is None:
            logger.warning("Health monitoring not started")
            return

        self._stop_event.set()
        self._monitoring_task.cancel()

        try:
            await self._monitoring_task
        except asyncio.CancelledError:
            pass

        self._monitoring_task = None
        logger.info("Stopped health monitoring")

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring_task is not None

    async def evaluate_once(self, controller: "DegradationController") -> None:
        """Run a single evaluation tick.

        Ticks with no triggers are skipped: stepping back up is left to the
        RecoveryMonitor, which evaluates after enough healthy probes.
        """
        triggers = self.collect_triggers()
        if not triggers:
            return
        await controller.evaluate(triggers)

    async def _monitoring_loop(self, controller: "DegradationController") -> None:
        while not self._stop_event.is_set():
            try:
                await self.evaluate_once(controller)
                await asyncio.sleep(self.settings.evaluation_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in health monitoring loop", error=str(e))
                await asyncio.sleep(self.settings.evaluation_interval)

    def get_all_health(self) -> dict[str, dict[str, Any]]:
        """Status snapshot for every tracked provider."""
        return {
            provider_id: self.current_status(provider_id).model_dump(mode="json")
            for provider_id in self.metrics
        }
