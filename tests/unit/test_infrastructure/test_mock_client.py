"""Tests for the scripted provider, hashing embedder and notification sinks."""

import numpy as np
import pytest

from chat_fallback.domain.exceptions import ProviderErrorException
from chat_fallback.domain.models import (
    DegradationEvent,
    DegradationEventType,
    DegradationLevel,
    ProviderErrorKind,
)
from chat_fallback.infrastructure.llm.base import build_context
from chat_fallback.infrastructure.llm.mock_client import HashingEmbedder, ScriptedProvider
from chat_fallback.infrastructure.notifications import (
    InMemoryNotificationSink,
    LoggingNotificationSink,
)


class TestScriptedProvider:
    """Test scripted outcomes."""

    @pytest.mark.asyncio
    async def test_script_replays_then_repeats_last_step(self):
        provider = ScriptedProvider("p", [ProviderErrorKind.RATE_LIMIT, "ok"])

        with pytest.raises(ProviderErrorException) as exc_info:
            await provider.generate("q", {}, 1000)
        assert exc_info.value.kind == ProviderErrorKind.RATE_LIMIT

        assert await provider.generate("q", {}, 1000) == "ok"
        assert await provider.generate("q", {}, 1000) == "ok"
        assert provider.call_count == 3

    @pytest.mark.asyncio
    async def test_exception_step_raised_verbatim(self):
        provider = ScriptedProvider("p", ConnectionError("refused"))

        with pytest.raises(ConnectionError):
            await provider.generate("q", {}, 1000)

    @pytest.mark.asyncio
    async def test_calls_are_logged(self, call_log):
        provider = ScriptedProvider("p", "ok", call_log=call_log)

        await provider.generate("q", {"session_id": "s1"}, 500)

        assert call_log == ["p"]
        assert provider.calls[0]["context"] == {"session_id": "s1"}
        assert provider.calls[0]["timeout_ms"] == 500

    @pytest.mark.asyncio
    async def test_health_check_callable(self):
        state = {"healthy": False}
        provider = ScriptedProvider("p", healthy=lambda: state["healthy"])

        assert await provider.health_check() is False
        state["healthy"] = True
        assert await provider.health_check() is True
        assert provider.health_checks == 2


class TestHashingEmbedder:
    """Test deterministic embeddings."""

    @pytest.mark.asyncio
    async def test_embeddings_are_normalised(self, embedder):
        vector = await embedder.embed("Qual é o prazo de entrega?")

        assert len(vector) == 256
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_deterministic_and_case_insensitive(self, embedder):
        assert await embedder.embed("Prazo de Entrega") == await embedder.embed(
            "prazo de entrega"
        )

    @pytest.mark.asyncio
    async def test_similar_text_is_closer(self):
        embedder = HashingEmbedder(dimensions=512)
        base = np.array(await embedder.embed("qual o prazo de entrega do pedido"))
        similar = np.array(await embedder.embed("qual o prazo de entrega"))
        different = np.array(await embedder.embed("minha senha não funciona"))

        assert base @ similar > base @ different

    @pytest.mark.asyncio
    async def test_empty_text(self, embedder):
        assert not any(await embedder.embed(""))


class TestBuildContext:
    def test_optional_fields_omitted(self):
        assert build_context("s1") == {"session_id": "s1"}

    def test_all_fields(self):
        context = build_context("s1", "u1", "resumo")

        assert context == {
            "session_id": "s1",
            "user_id": "u1",
            "conversation_summary": "resumo",
        }


class TestNotificationSinks:
    """Test notification sinks."""

    @pytest.mark.asyncio
    async def test_in_memory_sink_is_bounded(self):
        sink = InMemoryNotificationSink(max_events=2)
        for level in (DegradationLevel.MINIMAL, DegradationLevel.MODERATE, DegradationLevel.SEVERE):
            await sink.publish(
                DegradationEvent(event_type=DegradationEventType.LEVEL_CHANGED, level=level)
            )

        assert [e.level for e in sink.events] == [
            DegradationLevel.MODERATE,
            DegradationLevel.SEVERE,
        ]

    @pytest.mark.asyncio
    async def test_logging_sink_accepts_details(self):
        await LoggingNotificationSink().publish(
            DegradationEvent(
                event_type=DegradationEventType.RECOVERY_PROGRESS,
                level=DegradationLevel.MINIMAL,
                details={"traffic_ramp": 0.3},
            )
        )
