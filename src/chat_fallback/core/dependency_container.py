"""Dependency injection container for the orchestrator and its collaborators."""

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from chat_fallback.config.settings import get_settings
from chat_fallback.core.orchestrator import FallbackOrchestrator, build_orchestrator
from chat_fallback.infrastructure.cache.memory import InMemoryCacheStore
from chat_fallback.infrastructure.llm.mock_client import HashingEmbedder, ScriptedProvider
from chat_fallback.infrastructure.notifications import InMemoryNotificationSink
from chat_fallback.observability.metrics import get_metrics_collector
from chat_fallback.resilience.fallback.chain import BackupProviderDescriptor

logger = structlog.get_logger()

OrchestratorFactory = Callable[[], FallbackOrchestrator]


def build_demo_orchestrator() -> FallbackOrchestrator:
    """Orchestrator backed by scripted providers and an in-memory cache."""
    settings = get_settings()
    primary = ScriptedProvider(
        settings.orchestrator.primary_provider_id,
        "Esta é a resposta completa do modelo principal para a sua pergunta.",
    )
    backups = [
        (
            BackupProviderDescriptor(provider_id="backup-fast", quality_tier=2, timeout_ms=4000),
            ScriptedProvider(
                "backup-fast", "Esta é uma resposta resumida do modelo reserva."
            ),
        ),
        (
            BackupProviderDescriptor(provider_id="backup-lite", quality_tier=3, timeout_ms=3000),
            ScriptedProvider(
                "backup-lite", "Esta é uma resposta curta do modelo reserva leve."
            ),
        ),
    ]
    return build_orchestrator(
        primary=primary,
        embedder=HashingEmbedder(),
        store=InMemoryCacheStore(),
        backups=backups,
        settings=settings,
        sink=InMemoryNotificationSink(),
        collector=get_metrics_collector(),
    )


class DependencyContainer:
    """Owns the orchestrator instance and its background tasks."""

    def __init__(self, factory: OrchestratorFactory | None = None) -> None:
        self._factory = factory or build_demo_orchestrator
        self._services: dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self, start_background: bool = True) -> None:
        """Build the orchestrator and start its background tasks."""
        async with self._lock:
            if self._initialized:
                return

            try:
                orchestrator = self._factory()
                if start_background:
                    await orchestrator.start()
                self._services["orchestrator"] = orchestrator
                self._initialized = True
                logger.info("Dependency container initialized successfully")

            except Exception as e:
                logger.error("Failed to initialize dependency container", error=str(e))
                raise

    async def get_orchestrator(self) -> FallbackOrchestrator:
        if not self._initialized:
            await self.initialize()

        orchestrator = self._services.get("orchestrator")
        if orchestrator is None:
            raise RuntimeError("Orchestrator not available")

        return orchestrator

    async def shutdown(self) -> None:
        """Stop background tasks and drop services."""
        async with self._lock:
            orchestrator = self._services.get("orchestrator")
            if orchestrator is not None:
                await orchestrator.stop()
            self._services.clear()
            self._initialized = False
            logger.info("Dependency container shutdown")
