"""Deterministic rule-based responses, the terminal fallback."""

import re
from collections import OrderedDict
from enum import Enum

import structlog

from chat_fallback.config.settings import RulesSettings
from chat_fallback.domain.models import (
    DegradationLevel,
    FallbackResult,
    RequestContext,
    SourceKind,
)

logger = structlog.get_logger()


class Intent(str, Enum):
    """Coarse intents the responder can handle."""

    GREETING = "greeting"
    HELP_REQUEST = "help_request"
    TECHNICAL_QUESTION = "technical_question"
    COMPLAINT = "complaint"
    OTHER = "other"


# Evaluation order; the first intent with a matching pattern wins.
INTENT_PRIORITY: tuple[Intent, ...] = (
    Intent.COMPLAINT,
    Intent.TECHNICAL_QUESTION,
    Intent.HELP_REQUEST,
    Intent.GREETING,
)

INTENT_PATTERNS: dict[Intent, list[re.Pattern[str]]] = {
    Intent.COMPLAINT: [
        re.compile(p, re.IGNORECASE)
        for p in (
            r"\b(reclama(r|ção|cao|ções)|insatisfeit[oa]|p[ée]ssim[oa]|horr[ií]vel|absurdo)\b",
            r"\b(n[aã]o\s+funciona|parou\s+de\s+funcionar|n[aã]o\s+resolve)\b",
            r"\b(decepcionad[oa]|frustrad[oa]|cansad[oa]\s+de|quero\s+(o\s+)?reembolso)\b",
            r"\b(complain(t)?|terrible|awful|unacceptable|refund|disappointed|frustrated)\b",
            r"\b(doesn'?t\s+work|not\s+working|stopped\s+working)\b",
        )
    ],
    Intent.TECHNICAL_QUESTION: [
        re.compile(p, re.IGNORECASE)
        for p in (
            r"\b(erro|bug|falha|travando|trava|c[oó]digo|configura(r|ção|cao)|instala(r|ção|cao))\b",
            r"\b(api|senha|login|acesso|conex[aã]o|servidor|aplicativo|app|sistema)\b",
            r"\b(error|crash(es|ing)?|install(ation)?|configur(e|ation)|password|server|timeout)\b",
        )
    ],
    Intent.HELP_REQUEST: [
        re.compile(p, re.IGNORECASE)
        for p in (
            r"\b(ajuda|ajudar|aux[ií]lio|socorro|suporte|d[uú]vida)\b",
            r"\b(como\s+(eu\s+)?(fa[cç]o|posso|consigo)|preciso\s+de)\b",
            r"\b(help|support|assist(ance)?|how\s+(do|can)\s+i|i\s+need)\b",
        )
    ],
    Intent.GREETING: [
        re.compile(p, re.IGNORECASE)
        for p in (
            r"^\s*(oi|ol[aá]|e\s*a[ií]|opa|salve)\b",
            r"\b(bom\s+dia|boa\s+tarde|boa\s+noite|tudo\s+bem|tudo\s+bom)\b",
            r"^\s*(hi|hello|hey|good\s+(morning|afternoon|evening))\b",
        )
    ],
    Intent.OTHER: [],
}

TEMPLATES: dict[Intent, list[str]] = {
    Intent.GREETING: [
        "Olá! Estamos operando em modo simplificado no momento, mas posso ajudar com o básico.",
        "Oi! No momento estou com recursos limitados, mas estou aqui para ajudar.",
        "Olá, tudo bem? Nosso assistente está em modo reduzido agora, mas vamos lá.",
    ],
    Intent.HELP_REQUEST: [
        "Entendi que você precisa de ajuda. Estou em modo simplificado, então posso "
        "orientar com os primeiros passos.",
        "Posso ajudar! No momento minhas respostas estão limitadas, mas vou indicar o "
        "melhor caminho.",
        "Claro, vamos resolver isso. Enquanto opero em modo reduzido, veja as opções abaixo.",
    ],
    Intent.TECHNICAL_QUESTION: [
        "Sua dúvida técnica é importante. No momento não consigo analisar os detalhes, "
        "mas a documentação e o suporte técnico podem ajudar.",
        "Problemas técnicos merecem uma análise cuidadosa. Estou em modo simplificado; "
        "recomendo os recursos abaixo.",
        "Registrei sua questão técnica. Para uma resposta completa, tente novamente em "
        "alguns minutos ou fale com o suporte.",
    ],
    Intent.COMPLAINT: [
        "Sinto muito pela experiência. Sua reclamação é importante e queremos resolver "
        "isso o quanto antes.",
        "Peço desculpas pelo transtorno. Estou em modo simplificado, mas posso encaminhar "
        "você para um atendente.",
        "Lamento que isso tenha acontecido. Vamos garantir que sua reclamação chegue à "
        "equipe certa.",
    ],
    Intent.OTHER: [
        "Estou operando em modo simplificado no momento e não consigo responder com "
        "detalhes. Tente novamente em alguns minutos.",
        "No momento minhas respostas estão limitadas. Reformule sua pergunta ou tente "
        "novamente em instantes.",
    ],
}

SUGGESTIONS: dict[Intent, list[str]] = {
    Intent.GREETING: [
        "Pergunte sobre nossos produtos",
        "Consulte o status do seu pedido",
        "Veja as perguntas frequentes",
    ],
    Intent.HELP_REQUEST: [
        "Consulte a central de ajuda",
        "Veja as perguntas frequentes",
        "Descreva o problema em uma frase",
    ],
    Intent.TECHNICAL_QUESTION: [
        "Consulte a documentação técnica",
        "Verifique a página de status do sistema",
        "Tente reiniciar o aplicativo",
    ],
    Intent.COMPLAINT: [
        "Registre uma reclamação formal",
        "Acompanhe o andamento do seu protocolo",
    ],
    Intent.OTHER: [
        "Tente novamente em alguns minutos",
        "Reformule sua pergunta",
    ],
}

ESCALATION: dict[Intent, str | None] = {
    Intent.GREETING: None,
    Intent.HELP_REQUEST: "Se preferir, fale com um atendente pelo chat de suporte.",
    Intent.TECHNICAL_QUESTION: "Para casos urgentes, abra um chamado com o suporte técnico.",
    Intent.COMPLAINT: "Você pode falar agora com um atendente humano pelo chat de suporte.",
    Intent.OTHER: None,
}

LAST_RESORT_MESSAGE = (
    "Estamos com instabilidade no momento. Por favor, tente novamente em alguns minutos."
)


def _check_tables() -> None:
    for name, table in (
        ("INTENT_PATTERNS", INTENT_PATTERNS),
        ("TEMPLATES", TEMPLATES),
        ("SUGGESTIONS", SUGGESTIONS),
        ("ESCALATION", ESCALATION),
    ):
        missing = set(Intent) - set(table)
        if missing:
            raise RuntimeError(f"{name} missing intents: {sorted(i.value for i in missing)}")
    empty = [intent.value for intent in Intent if not TEMPLATES[intent]]
    if empty:
        raise RuntimeError(f"TEMPLATES has no templates for: {empty}")


_check_tables()


def classify_intent(query: str) -> Intent:
    """First intent in priority order whose patterns match ``query``."""
    for intent in INTENT_PRIORITY:
        if any(pattern.search(query) for pattern in INTENT_PATTERNS[intent]):
            return intent
    return Intent.OTHER


class RuleBasedResponder:
    """Terminal fallback that never fails to produce content.

    Templates rotate per (session, intent) so consecutive turns in a
    session do not repeat the same message. The rotation table keeps at
    most ``max_sessions`` sessions, evicting the least recently used.
    """

    def __init__(self, settings: RulesSettings | None = None):
        self.settings = settings or RulesSettings()
        self._rotation: OrderedDict[str, dict[Intent, int]] = OrderedDict()

    def respond(
        self,
        request: RequestContext,
        degradation_level: DegradationLevel | None = None,
    ) -> FallbackResult:
        try:
            intent = classify_intent(request.query)
            content = self._render(request.session_id, intent)
        except Exception as e:
            logger.error("Rule-based rendering failed", error=str(e))
            intent, content = Intent.OTHER, LAST_RESORT_MESSAGE

        if not content.strip():
            content = LAST_RESORT_MESSAGE

        logger.info(
            "Rule-based response selected",
            intent=intent.value,
            session_id=request.session_id,
        )
        return FallbackResult(
            content=content,
            source_kind=SourceKind.RULE_BASED,
            confidence=self.settings.confidence,
            degradation_level=degradation_level,
        )

    def _render(self, session_id: str, intent: Intent) -> str:
        templates = TEMPLATES[intent]
        index = self._next_index(session_id, intent, len(templates))
        parts = [templates[index]]

        suggestions = SUGGESTIONS[intent][: self.settings.max_suggestions]
        if suggestions:
            parts.append("Sugestões:\n" + "\n".join(f"- {s}" for s in suggestions))

        escalation = ESCALATION[intent]
        if escalation:
            parts.append(escalation)

        return "\n\n".join(parts)

    def _next_index(self, session_id: str, intent: Intent, size: int) -> int:
        counters = self._rotation.get(session_id)
        if counters is None:
            counters = {}
            self._rotation[session_id] = counters
            while len(self._rotation) > self.settings.max_sessions:
                self._rotation.popitem(last=False)
        else:
            self._rotation.move_to_end(session_id)

        index = counters.get(intent, 0)
        counters[intent] = (index + 1) % size
        return index

    @property
    def tracked_sessions(self) -> int:
        return len(self._rotation)
