"""Operator HTTP surface: degradation state, overrides, resolve, health and metrics."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from pydantic import BaseModel, Field

from chat_fallback.core.dependency_container import (
    DependencyContainer,
    OrchestratorFactory,
)
from chat_fallback.core.orchestrator import FallbackOrchestrator
from chat_fallback.domain.models import (
    DegradationLevel,
    FallbackResult,
    ProviderState,
)
from chat_fallback.observability.logging.correlation import CorrelationIDMiddleware
from chat_fallback.observability.metrics import get_metrics_collector

from .error_handlers import register_error_handlers

logger = structlog.get_logger()

APP_VERSION = "0.1.0"

router = APIRouter(tags=["operator"])


class DegradationStateResponse(BaseModel):
    """Current degradation state."""

    level: DegradationLevel
    override: DegradationLevel | None = None
    traffic_ramp: float
    cooldown_remaining: float
    healthy_ticks: int
    backup_breakers: dict[str, dict[str, Any]] = Field(default_factory=dict)


class OverrideRequest(BaseModel):
    """Operator-pinned degradation level."""

    level: DegradationLevel


class ResolveRequest(BaseModel):
    """Query to resolve through the fallback stages."""

    query: str
    session_id: str
    user_id: str | None = None
    conversation_summary: str | None = None


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(description="Overall health status")
    timestamp: str = Field(description="Timestamp of the health check")
    degradation_level: DegradationLevel
    providers: dict[str, dict[str, Any]] = Field(description="Per-provider health")
    uptime_seconds: float = Field(description="Application uptime in seconds")
    version: str = Field(description="Application version")


async def get_orchestrator(request: Request) -> FallbackOrchestrator:
    """Orchestrator owned by the application's container."""
    container: DependencyContainer = request.app.state.container
    return await container.get_orchestrator()


OrchestratorDep = Annotated[FallbackOrchestrator, Depends(get_orchestrator)]


def _state_response(orchestrator: FallbackOrchestrator) -> DegradationStateResponse:
    controller = orchestrator.controller
    return DegradationStateResponse(
        level=controller.current_level(),
        override=controller.current_level() if controller.is_overridden else None,
        traffic_ramp=orchestrator.recovery.traffic_ramp,
        cooldown_remaining=controller.cooldown_remaining(),
        healthy_ticks=controller.healthy_ticks,
        backup_breakers=orchestrator.chain.breakers.get_breaker_stats(),
    )


@router.get("/degradation", response_model=DegradationStateResponse)
async def get_degradation(orchestrator: OrchestratorDep) -> DegradationStateResponse:
    """Current level, override and recovery ramp."""
    return _state_response(orchestrator)


@router.put("/degradation/override", response_model=DegradationStateResponse)
async def set_override(
    body: OverrideRequest, orchestrator: OrchestratorDep
) -> DegradationStateResponse:
    """Pin the degradation level until the override is cleared."""
    await orchestrator.override(body.level)
    logger.info("Operator override set", level=body.level.value)
    return _state_response(orchestrator)


@router.delete("/degradation/override", response_model=DegradationStateResponse)
async def clear_override(orchestrator: OrchestratorDep) -> DegradationStateResponse:
    """Resume automatic evaluation."""
    await orchestrator.clear_override()
    return _state_response(orchestrator)


@router.post("/resolve", response_model=FallbackResult)
async def resolve(body: ResolveRequest, orchestrator: OrchestratorDep) -> FallbackResult:
    """Resolve a query through the fallback stages."""
    return await orchestrator.resolve(body.model_dump())


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, orchestrator: OrchestratorDep) -> HealthResponse:
    """Overall service health derived from the degradation level."""
    level = orchestrator.current_degradation_level()
    primary = orchestrator.health_monitor.current_status(orchestrator.primary.provider_id)

    if level is DegradationLevel.FULL and primary.state is ProviderState.HEALTHY:
        overall = "healthy"
    elif level is DegradationLevel.SEVERE:
        overall = "unhealthy"
    else:
        overall = "degraded"

    uptime = (datetime.now(UTC) - request.app.state.start_time).total_seconds()
    return HealthResponse(
        status=overall,
        timestamp=datetime.now(UTC).isoformat(),
        degradation_level=level,
        providers=orchestrator.health_monitor.get_all_health(),
        uptime_seconds=uptime,
        version=APP_VERSION,
    )


@router.get("/metrics", include_in_schema=False)
async def metrics(orchestrator: OrchestratorDep) -> Response:
    """Prometheus scrape endpoint for the orchestrator's registry."""
    collector = orchestrator.collector or get_metrics_collector()
    body, content_type = collector.export_latest()
    return Response(content=body, media_type=content_type)


def create_app(
    factory: OrchestratorFactory | None = None,
    start_background: bool = True,
) -> FastAPI:
    """Build the operator application around one orchestrator."""
    container = DependencyContainer(factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await container.initialize(start_background=start_background)
        logger.info("Operator API started", version=APP_VERSION)
        yield
        await container.shutdown()
        logger.info("Operator API stopped")

    app = FastAPI(
        title="chat-fallback operator API",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.start_time = datetime.now(UTC)
    app.middleware("http")(CorrelationIDMiddleware())
    register_error_handlers(app)
    app.include_router(router)
    return app

