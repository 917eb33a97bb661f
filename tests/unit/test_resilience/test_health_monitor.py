"""Tests for provider health monitoring."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from chat_fallback.config.settings import HealthMonitorSettings
from chat_fallback.domain.models import (
    DegradationLevel,
    ProviderErrorKind,
    ProviderState,
    TriggerKind,
)
from chat_fallback.resilience.health.monitor import MAX_PENDING_TRIGGERS, HealthMonitor


@pytest.fixture
def monitor(collector):
    return HealthMonitor(HealthMonitorSettings(), collector=collector)


@pytest.fixture
def triggers(monitor):
    received = []
    monitor.add_listener(received.append)
    return received


class TestHealthStateDerivation:
    """Test how outcomes map onto provider state."""

    def test_unknown_provider_is_healthy(self, monitor):
        status = monitor.current_status("primary")
        assert status.state == ProviderState.HEALTHY
        assert status.consecutive_failures == 0

    def test_down_after_consecutive_failures(self, monitor):
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)

        status = monitor.current_status("primary")
        assert status.state == ProviderState.DOWN
        assert status.consecutive_failures == 3
        assert monitor.is_down("primary")

    def test_down_after_repeated_hard_errors(self, monitor):
        monitor.record_outcome("primary", False, 50.0, ProviderErrorKind.RATE_LIMIT)
        monitor.record_outcome("primary", False, 50.0, ProviderErrorKind.SERVER_ERROR)

        assert monitor.current_status("primary").state == ProviderState.DOWN

    def test_degraded_on_error_rate(self, monitor):
        for _ in range(9):
            monitor.record_outcome("primary", True, 100.0)
        monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)

        status = monitor.current_status("primary")
        assert status.state == ProviderState.DEGRADED
        assert status.error_rate == pytest.approx(0.1)

    def test_degraded_on_p95_latency(self, monitor):
        for _ in range(10):
            monitor.record_outcome("primary", True, 8000.0)

        status = monitor.current_status("primary")
        assert status.state == ProviderState.DEGRADED
        assert status.p95_latency_ms > 5000.0

    def test_no_degradation_below_min_samples(self, monitor):
        monitor.record_outcome("primary", True, 100.0)
        monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)

        assert monitor.current_status("primary").state == ProviderState.HEALTHY

    def test_window_is_bounded(self):
        monitor = HealthMonitor(HealthMonitorSettings(window_size=5, min_samples=5))
        monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)
        for _ in range(5):
            monitor.record_outcome("primary", True, 100.0)

        status = monitor.current_status("primary")
        assert status.error_rate == 0.0
        assert status.state == ProviderState.HEALTHY

    def test_success_clears_down_state(self, monitor):
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)
        monitor.record_outcome("primary", True, 100.0)

        assert monitor.current_status("primary").state != ProviderState.DOWN


class TestMalformedOutcomes:
    """Malformed outcomes are ignored, never raised."""

    @pytest.mark.parametrize(
        "provider_id,success,latency_ms",
        [
            ("", True, 10.0),
            ("primary", "yes", 10.0),
            ("primary", True, -1.0),
            ("primary", True, float("nan")),
            ("primary", True, "fast"),
            (None, True, 10.0),
        ],
    )
    def test_malformed_outcome_ignored(self, monitor, provider_id, success, latency_ms):
        monitor.record_outcome(provider_id, success, latency_ms)

        assert monitor.metrics == {}


class TestTriggerEmission:
    """Test trigger events on boundary crossings."""

    def test_trigger_on_down(self, monitor, triggers):
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)

        assert len(triggers) == 1
        assert triggers[0].indicated_state == ProviderState.DOWN
        assert triggers[0].target_level() == DegradationLevel.SEVERE

    def test_quota_errors_emit_quota_trigger(self, monitor, triggers):
        monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.QUOTA)
        monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.QUOTA)

        assert triggers[-1].kind == TriggerKind.QUOTA

    def test_network_errors_emit_network_trigger(self, monitor, triggers):
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.NETWORK)

        assert triggers[-1].kind == TriggerKind.NETWORK

    def test_latency_breach_emits_latency_trigger(self, monitor, triggers):
        for _ in range(10):
            monitor.record_outcome("primary", True, 9000.0)

        assert triggers[-1].kind == TriggerKind.LATENCY
        assert triggers[-1].threshold == 5000.0

    def test_trigger_on_recovery(self, monitor, triggers):
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)
        for _ in range(20):
            monitor.record_outcome("primary", True, 100.0)

        assert triggers[-1].indicated_state == ProviderState.HEALTHY
        assert triggers[-1].target_level() is None

    def test_no_trigger_without_crossing(self, monitor, triggers):
        for _ in range(10):
            monitor.record_outcome("primary", True, 100.0)

        assert triggers == []

    def test_listener_errors_are_swallowed(self, monitor):
        def broken_listener(trigger):
            raise RuntimeError("listener failed")

        monitor.add_listener(broken_listener)
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)

        assert monitor.is_down("primary")

    def test_active_triggers_repeat_unhealthy_state(self, monitor):
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)

        assert len(monitor.drain_pending()) == 1
        assert monitor.drain_pending() == []
        assert len(monitor.active_triggers()) == 1

    def test_pending_triggers_are_bounded_without_drain(self, monitor):
        for _ in range(MAX_PENDING_TRIGGERS + 50):
            for _ in range(3):
                monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)
            monitor.record_outcome("primary", True, 100.0)

        pending = monitor.drain_pending()

        assert len(pending) == MAX_PENDING_TRIGGERS
        assert pending[-1].indicated_state == monitor.current_status("primary").state

    def test_collect_triggers_filters_watched_providers(self):
        monitor = HealthMonitor(watched_providers=["primary"])
        for _ in range(3):
            monitor.record_outcome("backup-a", False, 100.0, ProviderErrorKind.TIMEOUT)

        assert monitor.collect_triggers() == []

    def test_metrics_record_provider_state(self, monitor, collector):
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)

        assert (
            collector.get_sample_value(
                "fallback_provider_state", {"provider_id": "primary"}
            )
            == 2
        )


class TestMonitoringLoop:
    """Test the background evaluation loop."""

    @pytest.mark.asyncio
    async def test_evaluate_once_feeds_controller(self, monitor):
        controller = AsyncMock()
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)

        await monitor.evaluate_once(controller)

        triggers = controller.evaluate.await_args.args[0]
        # pending boundary trigger plus the active one
        assert len(triggers) == 2
        assert all(t.target_level() == DegradationLevel.SEVERE for t in triggers)

    @pytest.mark.asyncio
    async def test_tick_without_triggers_skips_evaluation(self, monitor):
        controller = AsyncMock()
        monitor.record_outcome("primary", True, 100.0)

        await monitor.evaluate_once(controller)

        controller.evaluate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_and_stop_monitoring(self):
        monitor = HealthMonitor(HealthMonitorSettings(evaluation_interval=0.01))
        controller = AsyncMock()
        for _ in range(3):
            monitor.record_outcome("primary", False, 100.0, ProviderErrorKind.TIMEOUT)

        await monitor.start_monitoring(controller)
        assert monitor.is_monitoring
        await asyncio.sleep(0.05)
        await monitor.stop_monitoring()

        assert not monitor.is_monitoring
        assert controller.evaluate.await_count >= 1
