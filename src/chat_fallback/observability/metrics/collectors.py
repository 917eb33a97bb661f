"""Prometheus metrics for fallback decisions."""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from prometheus_client.core import CollectorRegistry as PrometheusRegistry

from chat_fallback.domain.models import DegradationLevel, ProviderState


class MetricsCollector:
    """Metrics collector for the fallback orchestrator.

    Each collector owns its registry so several orchestrators (and test
    cases) can coexist in one process without duplicate registration.
    """

    def __init__(self, registry: PrometheusRegistry | None = None):
        self.registry = registry or PrometheusRegistry()
        self._counters: dict[str, Counter] = {}
        self._gauges: dict[str, Gauge] = {}
        self._histograms: dict[str, Histogram] = {}

        self._setup_default_metrics()

    def _setup_default_metrics(self) -> None:
        self.resolutions_total = self.create_counter(
            "fallback_resolutions_total",
            "Resolved requests by the path that produced the response",
            ["source_kind"],
        )
        self.stage_attempts_total = self.create_counter(
            "fallback_stage_attempts_total",
            "Fallback stage attempts by outcome",
            ["stage", "outcome"],
        )
        self.provider_calls_total = self.create_counter(
            "fallback_provider_calls_total",
            "Provider calls by outcome",
            ["provider_id", "outcome"],
        )
        self.resolve_duration_seconds = self.create_histogram(
            "fallback_resolve_duration_seconds",
            "End-to-end resolve duration in seconds",
            ["source_kind"],
        )
        self.degradation_level = self.create_gauge(
            "fallback_degradation_level",
            "Current degradation level (0=full, 3=severe)",
        )
        self.level_transitions_total = self.create_counter(
            "fallback_level_transitions_total",
            "Degradation level transitions",
            ["from_level", "to_level"],
        )
        self.provider_state = self.create_gauge(
            "fallback_provider_state",
            "Provider health state (0=healthy, 1=degraded, 2=down)",
            ["provider_id"],
        )
        self.traffic_ramp = self.create_gauge(
            "fallback_primary_traffic_ramp",
            "Fraction of new requests allowed to try the recovering primary",
        )

    def create_counter(
        self, name: str, documentation: str, labelnames: list[str] | None = None
    ) -> Counter:
        """Create a counter metric."""
        if name in self._counters:
            return self._counters[name]

        counter = Counter(
            name, documentation, labelnames=labelnames or [], registry=self.registry
        )
        self._counters[name] = counter
        return counter

    def create_gauge(
        self, name: str, documentation: str, labelnames: list[str] | None = None
    ) -> Gauge:
        """Create a gauge metric."""
        if name in self._gauges:
            return self._gauges[name]

        gauge = Gauge(
            name, documentation, labelnames=labelnames or [], registry=self.registry
        )
        self._gauges[name] = gauge
        return gauge

    def create_histogram(
        self,
        name: str,
        documentation: str,
        labelnames: list[str] | None = None,
        buckets: list[float] | None = None,
    ) -> Histogram:
        """Create a histogram metric."""
        if name in self._histograms:
            return self._histograms[name]

        default_buckets = [0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0]
        histogram = Histogram(
            name,
            documentation,
            labelnames=labelnames or [],
            buckets=buckets or default_buckets,
            registry=self.registry,
        )
        self._histograms[name] = histogram
        return histogram

    def record_resolution(self, source_kind: str, duration_seconds: float) -> None:
        self.resolutions_total.labels(source_kind=source_kind).inc()
        self.resolve_duration_seconds.labels(source_kind=source_kind).observe(
            duration_seconds
        )

    def record_stage(self, stage: str, outcome: str) -> None:
        self.stage_attempts_total.labels(stage=stage, outcome=outcome).inc()

    def record_provider_call(self, provider_id: str, success: bool) -> None:
        self.provider_calls_total.labels(
            provider_id=provider_id, outcome="success" if success else "failure"
        ).inc()

    def record_level_change(
        self, previous: DegradationLevel, current: DegradationLevel
    ) -> None:
        self.degradation_level.set(current.severity)
        self.level_transitions_total.labels(
            from_level=previous.value, to_level=current.value
        ).inc()

    def record_provider_state(self, provider_id: str, state: ProviderState) -> None:
        value = {ProviderState.HEALTHY: 0, ProviderState.DEGRADED: 1, ProviderState.DOWN: 2}
        self.provider_state.labels(provider_id=provider_id).set(value[state])

    def record_traffic_ramp(self, fraction: float) -> None:
        self.traffic_ramp.set(fraction)

    def get_sample_value(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Read back a single sample value."""
        return self.registry.get_sample_value(name, labels or {})

    def export_latest(self) -> tuple[bytes, str]:
        """Registry in Prometheus text exposition format, with its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


_metrics_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def setup_metrics(registry: PrometheusRegistry | None = None) -> MetricsCollector:
    """Setup global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(registry)
    return _metrics_collector
