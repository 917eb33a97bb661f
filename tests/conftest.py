"""Test configuration and fixtures."""

import os
import random

import pytest

# Set required environment variables for tests
os.environ["ENVIRONMENT"] = "testing"

from chat_fallback.config.settings import (  # noqa: E402
    CacheSettings,
    ChainSettings,
    DegradationSettings,
    HealthMonitorSettings,
    RecoverySettings,
    TestingSettings,
    reset_settings,
)
from chat_fallback.core.orchestrator import build_orchestrator  # noqa: E402
from chat_fallback.domain.models import RequestContext  # noqa: E402
from chat_fallback.infrastructure.cache.memory import InMemoryCacheStore  # noqa: E402
from chat_fallback.infrastructure.llm.mock_client import (  # noqa: E402
    HashingEmbedder,
    ScriptedProvider,
)
from chat_fallback.infrastructure.notifications import InMemoryNotificationSink  # noqa: E402
from chat_fallback.observability.metrics import MetricsCollector  # noqa: E402
from chat_fallback.resilience.fallback.chain import BackupProviderDescriptor  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def collector():
    """Metrics collector with a private registry."""
    return MetricsCollector()


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def store():
    return InMemoryCacheStore()


@pytest.fixture
def request_context():
    return RequestContext(query="Qual é o prazo de entrega?", session_id="session-1")


@pytest.fixture
def test_settings():
    """Settings tuned for fast, deterministic tests."""
    return TestingSettings(
        health=HealthMonitorSettings(window_size=20, min_samples=5),
        degradation=DegradationSettings(recovery_cooldown=120.0),
        cache=CacheSettings(similarity_threshold=0.85, lookup_timeout_ms=500.0),
        chain=ChainSettings(failure_threshold=3, cooldown=60.0, expected_language="pt"),
        recovery=RecoverySettings(
            probe_interval=10.0, probe_timeout=1.0, healthy_ticks_for_recovery=3
        ),
    )


@pytest.fixture
def call_log():
    """Shared record of which provider was called, in order."""
    return []


@pytest.fixture
def primary(call_log):
    return ScriptedProvider(
        "primary", "Resposta completa do modelo principal.", call_log=call_log
    )


@pytest.fixture
def backups(call_log):
    return [
        (
            BackupProviderDescriptor(provider_id="backup-a", quality_tier=2, timeout_ms=500),
            ScriptedProvider(
                "backup-a", "Resposta do modelo reserva A para você.", call_log=call_log
            ),
        ),
        (
            BackupProviderDescriptor(provider_id="backup-b", quality_tier=3, timeout_ms=500),
            ScriptedProvider(
                "backup-b", "Resposta do modelo reserva B para você.", call_log=call_log
            ),
        ),
    ]


@pytest.fixture
def make_orchestrator(embedder, store, sink, collector, clock, test_settings):
    """Factory building an orchestrator around the given providers."""

    def factory(primary, backups=None, settings=None, rng=None):
        return build_orchestrator(
            primary=primary,
            embedder=embedder,
            store=store,
            backups=backups or [],
            settings=settings or test_settings,
            sink=sink,
            collector=collector,
            rng=rng or random.Random(7),
            clock=clock,
        )

    return factory
