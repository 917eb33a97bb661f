"""Tests for observability metrics."""

from prometheus_client.core import CollectorRegistry

from chat_fallback.domain.models import DegradationLevel, ProviderState
from chat_fallback.observability.metrics import (
    MetricsCollector,
    get_metrics_collector,
    setup_metrics,
)


class TestMetricsCollector:
    """Test metrics collection functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.collector = MetricsCollector()

    def test_create_counter(self):
        """Test counter metric creation."""
        counter = self.collector.create_counter(
            name="test_counter",
            documentation="Test counter metric",
            labelnames=["label1", "label2"],
        )

        assert counter is not None
        assert counter._name == "test_counter"
        assert counter._documentation == "Test counter metric"

    def test_create_counter_is_idempotent(self):
        """Test repeated creation returns the registered metric."""
        first = self.collector.create_counter("test_counter", "Test counter metric")
        second = self.collector.create_counter("test_counter", "Test counter metric")

        assert first is second

    def test_create_gauge(self):
        """Test gauge metric creation."""
        gauge = self.collector.create_gauge(
            name="test_gauge",
            documentation="Test gauge metric",
            labelnames=["label1"],
        )

        assert gauge._name == "test_gauge"

    def test_record_resolution(self):
        """Test resolution counter and latency histogram."""
        self.collector.record_resolution("cache_adapted", 0.2)
        self.collector.record_resolution("cache_adapted", 0.3)

        assert (
            self.collector.get_sample_value(
                "fallback_resolutions_total", {"source_kind": "cache_adapted"}
            )
            == 2
        )
        assert self.collector.get_sample_value(
            "fallback_resolve_duration_seconds_sum", {"source_kind": "cache_adapted"}
        ) == 0.5

    def test_record_level_change(self):
        """Test level gauge and transition counter."""
        self.collector.record_level_change(DegradationLevel.FULL, DegradationLevel.MODERATE)

        assert self.collector.get_sample_value("fallback_degradation_level") == 2
        assert (
            self.collector.get_sample_value(
                "fallback_level_transitions_total",
                {"from_level": "full", "to_level": "moderate"},
            )
            == 1
        )

    def test_record_provider_call(self):
        self.collector.record_provider_call("primary", False)

        assert (
            self.collector.get_sample_value(
                "fallback_provider_calls_total",
                {"provider_id": "primary", "outcome": "failure"},
            )
            == 1
        )

    def test_record_provider_state(self):
        self.collector.record_provider_state("backup-a", ProviderState.DEGRADED)

        assert (
            self.collector.get_sample_value(
                "fallback_provider_state", {"provider_id": "backup-a"}
            )
            == 1
        )

    def test_record_traffic_ramp(self):
        self.collector.record_traffic_ramp(0.4)

        assert self.collector.get_sample_value("fallback_primary_traffic_ramp") == 0.4

    def test_unknown_sample_is_none(self):
        assert self.collector.get_sample_value("fallback_missing_metric") is None

    def test_export_latest(self):
        self.collector.record_stage("backup", "success")

        body, content_type = self.collector.export_latest()

        assert content_type.startswith("text/plain")
        assert (
            b'fallback_stage_attempts_total{stage="backup",outcome="success"} 1.0' in body
        )

    def test_collectors_do_not_share_registries(self):
        """Test two collectors can coexist in one process."""
        other = MetricsCollector()
        other.record_stage("cache", "failure")

        assert (
            self.collector.get_sample_value(
                "fallback_stage_attempts_total", {"stage": "cache", "outcome": "failure"}
            )
            is None
        )


class TestGlobalCollector:
    """Test the process-wide collector."""

    def test_setup_metrics_replaces_global(self):
        registry = CollectorRegistry()
        collector = setup_metrics(registry)

        assert get_metrics_collector() is collector
        assert collector.registry is registry
