"""Tests for the degradation level state machine."""

import pytest

from chat_fallback.config.settings import DegradationSettings
from chat_fallback.domain.models import (
    DegradationEventType,
    DegradationLevel,
    ProviderState,
    TriggerEvent,
    TriggerKind,
)
from chat_fallback.infrastructure.notifications import NotificationSink
from chat_fallback.resilience.degradation import DegradationController


def error_rate_trigger(observed: float, threshold: float = 0.05) -> TriggerEvent:
    return TriggerEvent(
        kind=TriggerKind.ERROR_RATE, observed_value=observed, threshold=threshold
    )


def down_trigger() -> TriggerEvent:
    return TriggerEvent(
        kind=TriggerKind.ERROR_RATE,
        observed_value=1.0,
        threshold=0.05,
        provider_id="primary",
        indicated_state=ProviderState.DOWN,
    )


class FailingSink(NotificationSink):
    async def publish(self, event):
        raise ConnectionError("sink unavailable")


@pytest.fixture
def controller(sink, collector, clock):
    return DegradationController(
        DegradationSettings(recovery_cooldown=120.0),
        sink=sink,
        collector=collector,
        clock=clock,
    )


class TestTriggerMapping:
    """Test the level each trigger demands."""

    @pytest.mark.parametrize(
        "trigger,expected",
        [
            (error_rate_trigger(0.06), DegradationLevel.MINIMAL),
            (error_rate_trigger(0.2), DegradationLevel.MODERATE),
            (error_rate_trigger(0.04), None),
            (
                TriggerEvent(kind=TriggerKind.QUOTA, observed_value=2, threshold=2),
                DegradationLevel.SEVERE,
            ),
            (
                TriggerEvent(kind=TriggerKind.NETWORK, observed_value=1, threshold=3),
                DegradationLevel.MODERATE,
            ),
            (
                TriggerEvent(
                    kind=TriggerKind.LATENCY, observed_value=6000, threshold=5000
                ),
                DegradationLevel.MINIMAL,
            ),
            (down_trigger(), DegradationLevel.SEVERE),
        ],
    )
    def test_target_level(self, trigger, expected):
        assert trigger.target_level() == expected


class TestDegradation:
    """Test worsening transitions."""

    @pytest.mark.asyncio
    async def test_starts_at_full(self, controller):
        assert controller.current_level() == DegradationLevel.FULL
        assert await controller.evaluate([]) == DegradationLevel.FULL

    @pytest.mark.asyncio
    async def test_error_rate_above_threshold_moves_to_minimal(self, controller, sink):
        level = await controller.evaluate([error_rate_trigger(0.06)])

        assert level == DegradationLevel.MINIMAL
        assert len(sink.events) == 1
        event = sink.events[0]
        assert event.event_type == DegradationEventType.LEVEL_CHANGED
        assert event.previous_level == DegradationLevel.FULL
        assert event.level == DegradationLevel.MINIMAL

    @pytest.mark.asyncio
    async def test_down_jumps_straight_to_severe(self, controller, sink):
        level = await controller.evaluate([down_trigger()])

        assert level == DegradationLevel.SEVERE
        assert [e.level for e in sink.events] == [DegradationLevel.SEVERE]

    @pytest.mark.asyncio
    async def test_worst_trigger_wins(self, controller):
        level = await controller.evaluate(
            [error_rate_trigger(0.06), error_rate_trigger(0.5)]
        )
        assert level == DegradationLevel.MODERATE

    @pytest.mark.asyncio
    async def test_milder_trigger_does_not_improve_level(self, controller, clock):
        await controller.evaluate([down_trigger()])
        clock.advance(500.0)

        level = await controller.evaluate([error_rate_trigger(0.06)])
        assert level == DegradationLevel.SEVERE

    @pytest.mark.asyncio
    async def test_level_change_recorded_in_metrics(self, controller, collector):
        await controller.evaluate([down_trigger()])

        assert collector.get_sample_value("fallback_degradation_level") == 3
        assert (
            collector.get_sample_value(
                "fallback_level_transitions_total",
                {"from_level": "full", "to_level": "severe"},
            )
            == 1
        )


class TestRecovery:
    """Test one-step recovery after the cooldown."""

    @pytest.mark.asyncio
    async def test_recovers_one_level_per_cooldown(self, controller, clock, sink):
        await controller.evaluate([down_trigger()])

        clock.advance(119.0)
        assert await controller.evaluate([]) == DegradationLevel.SEVERE

        clock.advance(1.0)
        assert await controller.evaluate([]) == DegradationLevel.MODERATE

        # cooldown restarts after each step
        clock.advance(60.0)
        assert await controller.evaluate([]) == DegradationLevel.MODERATE
        clock.advance(60.0)
        assert await controller.evaluate([]) == DegradationLevel.MINIMAL

        clock.advance(120.0)
        assert await controller.evaluate([]) == DegradationLevel.FULL

        assert [e.level for e in sink.events] == [
            DegradationLevel.SEVERE,
            DegradationLevel.MODERATE,
            DegradationLevel.MINIMAL,
            DegradationLevel.FULL,
        ]

    @pytest.mark.asyncio
    async def test_demanding_trigger_restarts_cooldown(self, controller, clock):
        await controller.evaluate([error_rate_trigger(0.06)])

        clock.advance(100.0)
        await controller.evaluate([error_rate_trigger(0.06)])
        clock.advance(100.0)
        assert await controller.evaluate([]) == DegradationLevel.MINIMAL

        clock.advance(20.0)
        assert await controller.evaluate([]) == DegradationLevel.FULL

    @pytest.mark.asyncio
    async def test_cooldown_remaining(self, controller, clock):
        await controller.evaluate([down_trigger()])
        clock.advance(20.0)

        assert controller.cooldown_remaining() == pytest.approx(100.0)

    @pytest.mark.asyncio
    async def test_full_stays_full(self, controller, clock):
        clock.advance(1000.0)
        assert await controller.evaluate([]) == DegradationLevel.FULL


class TestOverride:
    """Test operator overrides."""

    @pytest.mark.asyncio
    async def test_override_pins_level(self, controller, clock, sink):
        await controller.override(DegradationLevel.SEVERE)

        assert controller.is_overridden
        assert controller.current_level() == DegradationLevel.SEVERE
        assert sink.events[-1].event_type == DegradationEventType.OVERRIDE_SET

        clock.advance(1000.0)
        assert await controller.evaluate([]) == DegradationLevel.SEVERE

    @pytest.mark.asyncio
    async def test_override_ignores_triggers(self, controller):
        await controller.override(DegradationLevel.FULL)

        assert await controller.evaluate([down_trigger()]) == DegradationLevel.FULL

    @pytest.mark.asyncio
    async def test_override_to_same_level_still_publishes(self, controller, sink):
        await controller.override(DegradationLevel.FULL)

        assert len(sink.events) == 1
        assert sink.events[0].event_type == DegradationEventType.OVERRIDE_SET

    @pytest.mark.asyncio
    async def test_clear_override_resumes_evaluation(self, controller, clock, sink):
        await controller.override(DegradationLevel.SEVERE)
        clock.advance(500.0)
        await controller.clear_override()

        assert not controller.is_overridden
        assert sink.events[-1].event_type == DegradationEventType.OVERRIDE_CLEARED
        assert await controller.evaluate([]) == DegradationLevel.SEVERE

        clock.advance(120.0)
        assert await controller.evaluate([]) == DegradationLevel.MODERATE

    @pytest.mark.asyncio
    async def test_clear_without_override_is_noop(self, controller, sink):
        await controller.clear_override()

        assert sink.events == []


class TestNotifications:
    """Test sink behaviour."""

    @pytest.mark.asyncio
    async def test_sink_errors_do_not_block_transition(self, clock):
        controller = DegradationController(
            DegradationSettings(), sink=FailingSink(), clock=clock
        )

        level = await controller.evaluate([down_trigger()])

        assert level == DegradationLevel.SEVERE
        assert controller.current_level() == DegradationLevel.SEVERE

    @pytest.mark.asyncio
    async def test_state_info(self, controller):
        await controller.evaluate([])
        controller.record_healthy_tick()

        info = controller.get_state_info()
        assert info["level"] == "full"
        assert info["override"] is None
        assert info["evaluation_count"] == 1
        assert info["healthy_ticks"] == 1
