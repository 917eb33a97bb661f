"""Tests for the rule-based responder."""

import pytest

from chat_fallback.config.settings import RulesSettings
from chat_fallback.domain.models import DegradationLevel, RequestContext, SourceKind
from chat_fallback.resilience.fallback.rules import (
    ESCALATION,
    TEMPLATES,
    Intent,
    RuleBasedResponder,
    classify_intent,
)


def ask(query: str, session_id: str = "session-1") -> RequestContext:
    return RequestContext(query=query, session_id=session_id)


class TestClassifyIntent:
    """Test intent classification."""

    @pytest.mark.parametrize(
        "query,expected",
        [
            ("Isso é um absurdo, o sistema não funciona!", Intent.COMPLAINT),
            ("Estou com um erro no login", Intent.TECHNICAL_QUESTION),
            ("Preciso de ajuda com meu pedido", Intent.HELP_REQUEST),
            ("Oi, bom dia!", Intent.GREETING),
            ("Qual a cor do céu?", Intent.OTHER),
            ("Hello, I need help with the server", Intent.TECHNICAL_QUESTION),
            ("This is terrible, I want a refund", Intent.COMPLAINT),
        ],
    )
    def test_classify_intent(self, query, expected):
        assert classify_intent(query) == expected

    def test_complaint_outranks_greeting(self):
        assert classify_intent("Oi, estou muito insatisfeito") == Intent.COMPLAINT


class TestRuleBasedResponder:
    """Test template rendering and rotation."""

    @pytest.fixture
    def responder(self):
        return RuleBasedResponder(RulesSettings())

    def test_response_shape(self, responder):
        result = responder.respond(ask("Oi, bom dia!"), DegradationLevel.SEVERE)

        assert result.source_kind == SourceKind.RULE_BASED
        assert result.confidence == pytest.approx(0.6)
        assert result.degradation_level == DegradationLevel.SEVERE
        assert result.model is None
        assert result.content.strip()

    def test_complaint_includes_escalation_and_suggestions(self, responder):
        result = responder.respond(ask("Quero reclamar, o serviço é péssimo"))

        assert "Sugestões:\n- " in result.content
        assert ESCALATION[Intent.COMPLAINT] in result.content

    def test_greeting_has_no_escalation(self, responder):
        result = responder.respond(ask("Olá"))

        assert ESCALATION[Intent.HELP_REQUEST] not in result.content
        assert ESCALATION[Intent.COMPLAINT] not in result.content

    def test_suggestions_are_capped(self):
        responder = RuleBasedResponder(RulesSettings(max_suggestions=1))

        result = responder.respond(ask("Preciso de ajuda"))

        assert result.content.count("\n- ") == 1

    def test_templates_rotate_within_session(self, responder):
        first = responder.respond(ask("Olá")).content
        second = responder.respond(ask("Olá")).content

        assert first != second
        assert first.startswith(TEMPLATES[Intent.GREETING][0])
        assert second.startswith(TEMPLATES[Intent.GREETING][1])

    def test_rotation_wraps_around(self, responder):
        size = len(TEMPLATES[Intent.OTHER])
        contents = [responder.respond(ask("Qual a cor do céu?")).content for _ in range(size + 1)]

        assert contents[0] == contents[size]

    def test_sessions_rotate_independently(self, responder):
        responder.respond(ask("Olá", session_id="a"))

        other = responder.respond(ask("Olá", session_id="b")).content

        assert other.startswith(TEMPLATES[Intent.GREETING][0])

    def test_session_table_is_bounded(self):
        responder = RuleBasedResponder(RulesSettings(max_sessions=2))
        responder.respond(ask("Olá", session_id="s1"))
        responder.respond(ask("Olá", session_id="s2"))
        responder.respond(ask("Olá", session_id="s3"))

        assert responder.tracked_sessions == 2
        # s1 was evicted, so its rotation starts over
        again = responder.respond(ask("Olá", session_id="s1")).content
        assert again.startswith(TEMPLATES[Intent.GREETING][0])

    def test_every_intent_produces_content(self, responder):
        for query in ("Olá", "ajuda", "erro", "péssimo", "???"):
            assert responder.respond(ask(query)).content.strip()
