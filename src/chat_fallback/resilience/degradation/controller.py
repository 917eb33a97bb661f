"""Service degradation level state machine."""

import asyncio
import time
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from chat_fallback.config.settings import DegradationSettings
from chat_fallback.domain.models import (
    DegradationEvent,
    DegradationEventType,
    DegradationLevel,
    TriggerEvent,
)
from chat_fallback.infrastructure.notifications import (
    LoggingNotificationSink,
    NotificationSink,
)
from chat_fallback.observability.metrics import MetricsCollector

logger = structlog.get_logger()


class DegradationController:
    """Single source of truth for the current degradation level.

    Worsening is immediate: the level jumps to the worst level demanded by
    the evaluated triggers. Improving happens one step per evaluation and
    only after ``recovery_cooldown`` seconds without any demanding trigger
    and without any level change. All writes go through ``evaluate``,
    ``override`` and ``clear_override``, which share one lock. Reads of
    ``current_level()`` take no lock.
    """

    def __init__(
        self,
        settings: DegradationSettings | None = None,
        sink: NotificationSink | None = None,
        collector: MetricsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or DegradationSettings()
        self.sink = sink or LoggingNotificationSink()
        self._collector = collector
        self._clock = clock
        self._lock = asyncio.Lock()

        self._level = self.settings.initial_level
        self._override: DegradationLevel | None = None
        self._last_change_at = clock()
        self._last_demand_at: float | None = None

        self.evaluation_count = 0
        self.healthy_ticks = 0

    def current_level(self) -> DegradationLevel:
        """Snapshot of the current level."""
        return self._level

    @property
    def is_overridden(self) -> bool:
        return self._override is not None

    async def evaluate(self, triggers: Iterable[TriggerEvent] = ()) -> DegradationLevel:
        """Apply one evaluation cycle and return the resulting level."""
        triggers = list(triggers)
        async with self._lock:
            now = self._clock()
            self.evaluation_count += 1

            demanded = [
                level for level in (t.target_level() for t in triggers) if level is not None
            ]
            if demanded:
                self._last_demand_at = now

            if self._override is not None:
                logger.debug(
                    "Degradation override active, skipping evaluation",
                    level=self._level.value,
                    trigger_count=len(triggers),
                )
                return self._level

            current = self._level
            if demanded:
                worst = max(demanded, key=lambda level: level.severity)
                if worst.worse_than(current):
                    await self._transition(
                        worst,
                        DegradationEventType.LEVEL_CHANGED,
                        reason="degradation_triggered",
                        details={
                            "triggers": [
                                {
                                    "kind": t.kind.value,
                                    "observed_value": t.observed_value,
                                    "threshold": t.threshold,
                                    "provider_id": t.provider_id,
                                }
                                for t in triggers
                                if t.target_level() is not None
                            ]
                        },
                    )
                return self._level

            if current.is_degraded and self._cooldown_elapsed(now):
                await self._transition(
                    current.step_better(),
                    DegradationEventType.LEVEL_CHANGED,
                    reason="recovery_step",
                    details={"cooldown_seconds": self.settings.recovery_cooldown},
                )

            return self._level

    def _cooldown_elapsed(self, now: float) -> bool:
        cooldown = self.settings.recovery_cooldown
        if now - self._last_change_at < cooldown:
            return False
        return self._last_demand_at is None or now - self._last_demand_at >= cooldown

    def cooldown_remaining(self) -> float:
        """Seconds until the next recovery step may happen."""
        now = self._clock()
        anchors = [self._last_change_at]
        if self._last_demand_at is not None:
            anchors.append(self._last_demand_at)
        return max(0.0, self.settings.recovery_cooldown - (now - max(anchors)))

    def record_healthy_tick(self) -> None:
        """Positive health signal from the recovery probe."""
        self.healthy_ticks += 1

    async def override(self, level: DegradationLevel, reason: str = "operator") -> None:
        """Pin the level and suspend automatic evaluation."""
        async with self._lock:
            self._override = level
            await self._transition(
                level, DegradationEventType.OVERRIDE_SET, reason=reason, force_event=True
            )

    async def clear_override(self) -> None:
        """Resume automatic evaluation from the pinned level."""
        async with self._lock:
            if self._override is None:
                logger.warning("No degradation override to clear")
                return
            self._override = None
            self._last_change_at = self._clock()
            await self._publish(
                DegradationEvent(
                    event_type=DegradationEventType.OVERRIDE_CLEARED,
                    level=self._level,
                    previous_level=self._level,
                    reason="operator",
                )
            )
            logger.info("Degradation override cleared", level=self._level.value)

    async def _transition(
        self,
        level: DegradationLevel,
        event_type: DegradationEventType,
        reason: str,
        details: dict[str, Any] | None = None,
        force_event: bool = False,
    ) -> None:
        previous = self._level
        if level == previous and not force_event:
            return

        self._level = level
        if level != previous:
            self._last_change_at = self._clock()
            if self._collector is not None:
                self._collector.record_level_change(previous, level)

        logger.warning(
            "Degradation level changed",
            previous_level=previous.value,
            level=level.value,
            reason=reason,
            event_type=event_type.value,
        )
        await self._publish(
            DegradationEvent(
                event_type=event_type,
                level=level,
                previous_level=previous,
                reason=reason,
                details=details or {},
            )
        )

    async def _publish(self, event: DegradationEvent) -> None:
        try:
            await self.sink.publish(event)
        except Exception as e:
            logger.error(
                "Error publishing degradation event",
                event_type=event.event_type.value,
                error=str(e),
            )

    def get_state_info(self) -> dict[str, Any]:
        """Current controller state."""
        return {
            "level": self._level.value,
            "override": self._override.value if self._override else None,
            "cooldown_remaining": self.cooldown_remaining(),
            "recovery_cooldown": self.settings.recovery_cooldown,
            "evaluation_count": self.evaluation_count,
            "healthy_ticks": self.healthy_ticks,
        }
