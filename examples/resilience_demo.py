"""Walk through the fallback paths with scripted providers.

Each demo builds a fresh orchestrator so the scenarios do not influence
each other: healthy primary, primary outage served from the cache, from a
backup model and from the rule-based responder, then a degradation and
recovery cycle driven by triggers and probes.
"""

import asyncio

from chat_fallback.config.settings import (
    DegradationSettings,
    LogLevel,
    RecoverySettings,
    TestingSettings,
)
from chat_fallback.core.orchestrator import FallbackOrchestrator, build_orchestrator
from chat_fallback.domain.models import (
    DegradationLevel,
    FallbackResult,
    ProviderErrorKind,
    RequestContext,
    TriggerEvent,
    TriggerKind,
)
from chat_fallback.infrastructure.cache.memory import InMemoryCacheStore
from chat_fallback.infrastructure.llm.mock_client import HashingEmbedder, ScriptedProvider
from chat_fallback.infrastructure.notifications import InMemoryNotificationSink
from chat_fallback.observability.logging import setup_logging
from chat_fallback.resilience.fallback.chain import BackupProviderDescriptor

QUERY = RequestContext(query="Qual é o prazo de entrega do meu pedido?", session_id="demo")


def make_orchestrator(
    primary_script,
    backup_scripts=("Resposta do modelo reserva para a sua pergunta.",),
    sink=None,
    settings=None,
) -> tuple[FallbackOrchestrator, InMemoryCacheStore]:
    store = InMemoryCacheStore()
    backups = [
        (
            BackupProviderDescriptor(provider_id=f"backup-{i + 1}", quality_tier=i + 2),
            ScriptedProvider(f"backup-{i + 1}", script),
        )
        for i, script in enumerate(backup_scripts)
    ]
    orchestrator = build_orchestrator(
        primary=ScriptedProvider("primary", primary_script),
        embedder=HashingEmbedder(),
        store=store,
        backups=backups,
        settings=settings or TestingSettings(),
        sink=sink,
    )
    return orchestrator, store


def show(title: str, result: FallbackResult) -> None:
    print(f"\n--- {title} ---")
    print(f"source: {result.source_kind.value}  model: {result.model}  "
          f"confidence: {result.confidence:.2f}  level: {result.degradation_level.value}")
    print(f"stages: {[(a.stage, a.outcome) for a in result.attempts]}")
    print(result.content)


async def demo_healthy_primary():
    orchestrator, _ = make_orchestrator("O prazo de entrega é de 5 dias úteis.")
    show("Healthy primary", await orchestrator.resolve(QUERY))


async def demo_cache_fallback():
    orchestrator, store = make_orchestrator(ProviderErrorKind.QUOTA)
    embedding = await HashingEmbedder().embed(QUERY.query)
    await store.put(
        QUERY.query,
        embedding,
        "Ótima pergunta! Como mencionei antes, o prazo de entrega é de 5 dias úteis.",
    )

    # two quota errors take the primary down
    for _ in range(2):
        await orchestrator.resolve(QUERY)
    show("Primary down, cache hit", await orchestrator.resolve(QUERY))


async def demo_backup_chain():
    orchestrator, _ = make_orchestrator(
        ProviderErrorKind.SERVER_ERROR,
        backup_scripts=(ProviderErrorKind.RATE_LIMIT, "Resposta do modelo reserva para você."),
    )
    show("Primary failing, backup chain", await orchestrator.resolve(QUERY))


async def demo_rule_based():
    orchestrator, _ = make_orchestrator(
        ProviderErrorKind.TIMEOUT,
        backup_scripts=(ProviderErrorKind.SERVER_ERROR, ProviderErrorKind.NETWORK),
    )
    show("Everything down, rule-based", await orchestrator.resolve(QUERY))


async def demo_degradation_cycle():
    print("\n--- Degradation and recovery ---")
    sink = InMemoryNotificationSink()
    settings = TestingSettings(
        degradation=DegradationSettings(recovery_cooldown=0.0),
        recovery=RecoverySettings(healthy_ticks_for_recovery=1, ramp_step=0.25),
    )
    orchestrator, _ = make_orchestrator("Resposta completa.", sink=sink, settings=settings)
    controller = orchestrator.controller

    level = await controller.evaluate(
        [TriggerEvent(kind=TriggerKind.ERROR_RATE, observed_value=0.06, threshold=0.05)]
    )
    print(f"6% error rate against 5%: {level.value}")

    level = await controller.evaluate(
        [TriggerEvent(kind=TriggerKind.QUOTA, observed_value=2, threshold=2)]
    )
    print(f"quota exhausted: {level.value}")

    while controller.current_level() is not DegradationLevel.FULL:
        await orchestrator.recovery.probe_once()
        print(
            f"healthy probe: level={controller.current_level().value} "
            f"ramp={orchestrator.recovery.traffic_ramp:.2f}"
        )

    print(f"events published: {[e.event_type.value for e in sink.events]}")


async def main():
    """Run all fallback demonstrations."""
    setup_logging(level=LogLevel.WARNING, format_type="console")
    print("🚀 chat-fallback demonstration")
    print("=" * 50)

    await demo_healthy_primary()
    await demo_cache_fallback()
    await demo_backup_chain()
    await demo_rule_based()
    await demo_degradation_cycle()

    print("\n✅ All demonstrations completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
