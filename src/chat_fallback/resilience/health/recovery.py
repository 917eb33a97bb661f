"""Background recovery probe and primary traffic ramp."""

import asyncio
import random
import time
from collections.abc import Callable
from typing import Any

import structlog

from chat_fallback.config.settings import RecoverySettings
from chat_fallback.domain.models import (
    DegradationEvent,
    DegradationEventType,
    ProviderErrorKind,
    ProviderState,
    TriggerEvent,
)
from chat_fallback.infrastructure.llm.base import ProviderCapability
from chat_fallback.infrastructure.notifications import NotificationSink
from chat_fallback.observability.metrics import MetricsCollector

from ..degradation.controller import DegradationController
from .monitor import HealthMonitor

logger = structlog.get_logger()

_STATE_RANK = {ProviderState.HEALTHY: 0, ProviderState.DEGRADED: 1, ProviderState.DOWN: 2}


class RecoveryMonitor:
    """Probes the primary provider and ramps traffic back to it.

    The ramp is the fraction of new requests allowed to try the primary
    while the level is degraded. It only grows while probes succeed and
    drops to zero on any failure signal. Every ``healthy_ticks_for_recovery``
    consecutive healthy checks trigger one recovery evaluation. The health
    monitoring loop skips ticks without triggers, so these evaluations are
    what step the level back up.
    """

    def __init__(
        self,
        primary: ProviderCapability,
        controller: DegradationController,
        health_monitor: HealthMonitor | None = None,
        settings: RecoverySettings | None = None,
        sink: NotificationSink | None = None,
        collector: MetricsCollector | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize recovery monitor.

        Args:
            primary: Primary provider to probe
            controller: Degradation controller receiving healthy ticks
            health_monitor: Monitor that samples probe outcomes and whose
                triggers reset the ramp
            settings: Probe interval, timeout and ramp configuration
            sink: Receives recovery progress events
            collector: Optional metrics collector
            rng: Random source used to sample the ramp
            clock: Monotonic time source in seconds
        """
        self.primary = primary
        self.controller = controller
        self.health_monitor = health_monitor
        self.settings = settings or RecoverySettings()
        self.sink = sink
        self._collector = collector
        self._rng = rng or random.Random()
        self._clock = clock

        self._ramp = 0.0
        self._seen_level = controller.current_level()
        self._primary_state = ProviderState.HEALTHY
        self.consecutive_healthy = 0
        self.probe_count = 0
        self._monitoring_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

        if health_monitor is not None:
            health_monitor.add_listener(self._on_trigger)

    @property
    def traffic_ramp(self) -> float:
        """Current ramp fraction in [0, 1]."""
        self._sync_with_level()
        if not self._seen_level.is_degraded:
            return 1.0
        return self._ramp

    def _sync_with_level(self) -> None:
        # A level that got worse since the last look is a failure signal.
        level = self.controller.current_level()
        if level.worse_than(self._seen_level):
            self._ramp = 0.0
            self.consecutive_healthy = 0
        self._seen_level = level

    def permits_primary(self) -> bool:
        """Sample the ramp for one new request."""
        ramp = self.traffic_ramp
        if ramp >= 1.0:
            return True
        if ramp <= 0.0:
            return False
        return self._rng.random() < ramp

    def record_failure(self, reason: str = "request_failure") -> None:
        """Failure signal: reset the ramp immediately."""
        self.consecutive_healthy = 0
        if self._ramp > 0.0:
            logger.warning(
                "Primary traffic ramp reset", previous_ramp=self._ramp, reason=reason
            )
        self._set_ramp(0.0)

    def _on_trigger(self, trigger: TriggerEvent) -> None:
        if trigger.provider_id != self.primary.provider_id:
            return

        state = trigger.indicated_state
        if state is None:
            worsened = trigger.target_level() is not None
        else:
            worsened = _STATE_RANK[state] > _STATE_RANK[self._primary_state]
            self._primary_state = state
        if worsened:
            self.record_failure(reason=f"trigger:{trigger.kind.value}")

    def _set_ramp(self, value: float) -> None:
        self._ramp = min(max(value, 0.0), 1.0)
        if self._collector is not None:
            self._collector.record_traffic_ramp(self.traffic_ramp)

    async def probe_once(self) -> bool:
        """Run one probe cycle and return whether the primary looked healthy."""
        self.probe_count += 1
        started = self._clock()
        error_kind: ProviderErrorKind | None = None
        try:
            healthy = await asyncio.wait_for(
                self.primary.health_check(), timeout=self.settings.probe_timeout
            )
        except TimeoutError:
            healthy, error_kind = False, ProviderErrorKind.TIMEOUT
        except Exception as e:
            logger.warning("Recovery probe raised", error=str(e))
            healthy, error_kind = False, ProviderErrorKind.SERVER_ERROR

        healthy = healthy is True
        latency_ms = (self._clock() - started) * 1000
        if self.health_monitor is not None:
            self.health_monitor.record_outcome(
                self.primary.provider_id,
                healthy,
                latency_ms,
                None if healthy else error_kind or ProviderErrorKind.SERVER_ERROR,
            )

        if not healthy:
            logger.info("Recovery probe failed", provider_id=self.primary.provider_id)
            self.record_failure(reason="probe_failed")
            return False

        await self._on_healthy_probe()
        return True

    async def _on_healthy_probe(self) -> None:
        self._sync_with_level()
        self.controller.record_healthy_tick()
        self.consecutive_healthy += 1

        level_before = self.controller.current_level()
        if level_before.is_degraded:
            self._set_ramp(self._ramp + self.settings.ramp_step)

        if self.consecutive_healthy >= self.settings.healthy_ticks_for_recovery:
            self.consecutive_healthy = 0
            level = await self.controller.evaluate([])
            if level != level_before:
                logger.info(
                    "Recovery evaluation stepped level",
                    previous_level=level_before.value,
                    level=level.value,
                )
            if not level.is_degraded:
                self._set_ramp(1.0)

        if level_before.is_degraded:
            await self._publish_progress()

    async def _publish_progress(self) -> None:
        if self.sink is None:
            return
        try:
            await self.sink.publish(
                DegradationEvent(
                    event_type=DegradationEventType.RECOVERY_PROGRESS,
                    level=self.controller.current_level(),
                    reason="healthy_probe",
                    details={
                        "traffic_ramp": round(self.traffic_ramp, 3),
                        "consecutive_healthy": self.consecutive_healthy,
                    },
                )
            )
        except Exception as e:
            logger.error("Error publishing recovery progress", error=str(e))

    async def start(self) -> None:
        """Start the background probe loop."""
        if self._monitoring_task is not None:
            logger.warning("Recovery monitor already started")
            return

        self._stop_event.clear()
        self._monitoring_task = asyncio.create_task(self._probe_loop())
        logger.info("Started recovery monitor", interval=self.settings.probe_interval)

    async def stop(self) -> None:
        """Stop the background probe loop."""
        if self._monitoring_task is None:
            logger.warning("Recovery monitor not started")
            return

        self._stop_event.set()
        self._monitoring_task.cancel()

        try:
            await self._monitoring_task
        except asyncio.CancelledError:
            pass

        self._monitoring_task = None
        logger.info("Stopped recovery monitor")

    @property
    def is_running(self) -> bool:
        return self._monitoring_task is not None

    async def _probe_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.probe_once()
                await asyncio.sleep(self.settings.probe_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in recovery probe loop", error=str(e))
                await asyncio.sleep(self.settings.probe_interval)

    def get_state_info(self) -> dict[str, Any]:
        return {
            "traffic_ramp": self.traffic_ramp,
            "consecutive_healthy": self.consecutive_healthy,
            "probe_count": self.probe_count,
            "running": self._monitoring_task is not None,
        }
