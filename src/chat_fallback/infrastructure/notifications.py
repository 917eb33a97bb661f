"""Notification sinks for degradation and recovery events."""

from abc import ABC, abstractmethod

import structlog

from chat_fallback.domain.models import DegradationEvent

logger = structlog.get_logger()


class NotificationSink(ABC):
    """Receives level-change and recovery events for UI/ops consumers."""

    @abstractmethod
    async def publish(self, event: DegradationEvent) -> None:
        pass


class LoggingNotificationSink(NotificationSink):
    """Default sink: writes events to the structured log."""

    async def publish(self, event: DegradationEvent) -> None:
        logger.info(
            "Degradation event",
            event_type=event.event_type.value,
            level=event.level.value,
            previous_level=event.previous_level.value if event.previous_level else None,
            reason=event.reason,
            **event.details,
        )


class InMemoryNotificationSink(NotificationSink):
    """Keeps published events in memory (operator dashboards, tests)."""

    def __init__(self, max_events: int = 1000):
        self.max_events = max_events
        self.events: list[DegradationEvent] = []

    async def publish(self, event: DegradationEvent) -> None:
        self.events.append(event)
        if len(self.events) > self.max_events:
            del self.events[: len(self.events) - self.max_events]
