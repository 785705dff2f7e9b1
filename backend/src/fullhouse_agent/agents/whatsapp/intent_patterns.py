"""Intent patterns — DETERMINISTIC only, no LLM calls.

Fast local detection of common Brazilian-Portuguese sales intents. Runs
before the LLM extractor and is the whole signal bundle when no provider
credential is configured.
"""

import re
from dataclasses import dataclass

from fullhouse_agent.domain.schemas import DetectedIntent, IntelligenceBundle

LOCAL_CONFIDENCE = 0.85


@dataclass(frozen=True)
class IntentPattern:
    intent: str
    patterns: tuple[re.Pattern, ...]
    follow_up_delay_minutes: int
    label: str
    score_delta: int


def _compile(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


INTENT_PATTERNS: tuple[IntentPattern, ...] = (
    IntentPattern(
        intent="check_with_spouse",
        patterns=_compile(
            r"vou (?:ver|falar|conversar|consultar) com (?:meu |minha |o |a )?(esposo|esposa|marido|mulher|namorad[oa]|companheiro|noiv[oa])",
            r"preciso (?:ver|falar|conversar|consultar) com (?:meu |minha |o |a )?(esposo|esposa|marido|mulher)",
            r"(?:meu|minha) (?:esposo|esposa|marido|mulher) (?:precisa|tem que|quer) ver",
        ),
        follow_up_delay_minutes=30,
        label="Aguardando",
        score_delta=5,
    ),
    IntentPattern(
        intent="think_about_it",
        patterns=_compile(
            r"(?:vou|preciso|deixa eu|deixa) (?:pensar|analisar|avaliar|refletir|ver com calma)",
            r"(?:me )?(?:dá|da) um tempo",
            r"(?:depois eu |eu )?(?:te )?(?:aviso|falo|respondo|digo)",
            r"vou (?:dar uma |)(?:pensada|analisada|olhada)",
        ),
        follow_up_delay_minutes=60,
        label="Aguardando",
        score_delta=0,
    ),
    IntentPattern(
        intent="budget_hold",
        patterns=_compile(
            r"(?:tô|estou|to) sem (?:grana|dinheiro|verba|condição)",
            r"(?:não|nao) (?:tenho|tô com) (?:grana|dinheiro|condição)",
            r"(?:tá|está|ta) (?:caro|puxado|salgado|acima)",
            r"(?:quando eu |no mês que vem |mês que vem eu |quando )(?:receber|tiver|pagar)",
            r"(?:só|so) (?:no|dia|depois do) (?:pagamento|quinto|5|salário|próximo mês)",
        ),
        follow_up_delay_minutes=1440,
        label="Objeção",
        score_delta=-10,
    ),
    IntentPattern(
        intent="callback_request",
        patterns=_compile(
            r"(?:me )?(?:liga|ligar|chama|chamar) (?:amanhã|depois|segunda|terça|quarta|quinta|sexta|sábado|domingo|na semana que vem|mais tarde)",
            r"(?:pode|podemos) (?:conversar|falar|tratar) (?:amanhã|depois|segunda|terça|quarta|quinta|sexta)",
            r"(?:só|so) (?:consigo|posso) (?:amanhã|depois|segunda|terça|quarta|quinta|sexta)",
        ),
        follow_up_delay_minutes=120,
        label="Aguardando",
        score_delta=5,
    ),
    IntentPattern(
        intent="price_inquiry",
        patterns=_compile(
            r"(?:quanto|qual (?:o |é o )?(?:preço|valor|custo|investimento))",
            r"(?:preço|valor|custo)(?:\?|$)",
            r"(?:tabela|condição|condições) (?:de pagamento|especial|especiais)",
            r"(?:tem |faz |fazem )(?:desconto|promoção|oferta)",
        ),
        follow_up_delay_minutes=0,
        label="Interessado",
        score_delta=15,
    ),
    IntentPattern(
        intent="availability_check",
        patterns=_compile(
            r"(?:tem |há |existe |ainda tem )(?:disponibilidade|vaga|disponível)",
            r"(?:quando|qual) (?:(?:é |seria )?a )?(?:data|horário|próxim)",
            r"(?:posso|consigo) (?:agendar|marcar|reservar)",
        ),
        follow_up_delay_minutes=0,
        label="Interessado",
        score_delta=20,
    ),
    IntentPattern(
        intent="ready_to_buy",
        patterns=_compile(
            r"(?:quero|vou|vamos) (?:fechar|comprar|contratar|assinar|reservar)",
            r"(?:como|onde) (?:faço|faz) (?:para|pra) (?:comprar|fechar|contratar|pagar)",
            r"(?:pode|podemos) (?:fechar|finalizar)",
            r"(?:me )?(?:manda|envia) (?:o |a )?(?:contrato|proposta|boleto|pix|link)",
            r"(?:fechado|fechou|bora|vamos lá|tô dentro|to dentro|partiu)",
        ),
        follow_up_delay_minutes=0,
        label="Quente",
        score_delta=30,
    ),
    IntentPattern(
        intent="not_interested",
        patterns=_compile(
            r"(?:não|nao) (?:tenho|tô com|estou com) (?:interesse|interesse mais)",
            r"(?:não|nao) (?:quero|preciso) (?:mais|não|nada)",
            r"(?:obrigad[oa]|vlw|valeu),? (?:mas )?(?:não|nao)",
            r"(?:já |)(?:comprei|fechei|contratei) (?:com )?(?:outro|outra|outr[oa]s|em outro lugar)",
        ),
        follow_up_delay_minutes=0,
        label="Perdido",
        score_delta=-30,
    ),
    IntentPattern(
        intent="wants_human",
        patterns=_compile(
            r"(?:quero|preciso|pode) (?:falar|conversar) com (?:um |uma )?(?:pessoa|humano|atendente|gerente|supervisor|responsável)",
            r"(?:isso|você) é (?:um )?(?:robô|bot|máquina|inteligência artificial|ia|robo)",
            r"(?:me )?(?:transfere|passa|encaminha) (?:para|pra) (?:um |uma )?(?:pessoa|atendente|humano)",
        ),
        follow_up_delay_minutes=0,
        label="",
        score_delta=0,
    ),
)

_BY_INTENT = {p.intent: p for p in INTENT_PATTERNS}


def detect_intents_local(message: str) -> list[DetectedIntent]:
    """Return one DetectedIntent per pattern group that matches ``message``."""
    intents = []
    for pattern in INTENT_PATTERNS:
        if any(regex.search(message) for regex in pattern.patterns):
            intents.append(DetectedIntent(
                intent=pattern.intent,
                confidence=LOCAL_CONFIDENCE,
                follow_up_delay_minutes=pattern.follow_up_delay_minutes,
                context={"matched_pattern": pattern.intent},
            ))
    return intents


def local_bundle(message: str) -> IntelligenceBundle:
    """Signal bundle built from local patterns alone."""
    intents = detect_intents_local(message)
    wants_human = any(i.intent == "wants_human" for i in intents)
    labels = []
    for intent in intents:
        label = _BY_INTENT[intent.intent].label
        if label and label not in labels:
            labels.append(label)

    return IntelligenceBundle(
        intents=intents,
        lead_score_delta=sum(_BY_INTENT[i.intent].score_delta for i in intents),
        suggested_labels=labels,
        should_pause=wants_human,
        pause_reason="customer_requested_human" if wants_human else None,
    )


def merge_bundles(local: IntelligenceBundle, model: IntelligenceBundle) -> IntelligenceBundle:
    """Merge model output over the local bundle.

    Per intent name the higher confidence wins; a nonzero model delta
    replaces the local one; labels are unioned; pause flags are OR-ed.
    """
    merged = {i.intent: i for i in local.intents}
    for intent in model.intents:
        existing = merged.get(intent.intent)
        if existing is None or intent.confidence > existing.confidence:
            merged[intent.intent] = intent

    labels = list(local.suggested_labels)
    for label in model.suggested_labels:
        if label and label not in labels:
            labels.append(label)

    return IntelligenceBundle(
        intents=list(merged.values()),
        memories=model.memories,
        sentiment=model.sentiment,
        lead_score_delta=model.lead_score_delta or local.lead_score_delta,
        buying_stage=model.buying_stage or local.buying_stage,
        suggested_labels=labels,
        should_pause=model.should_pause or local.should_pause,
        pause_reason=model.pause_reason or local.pause_reason,
        follow_up=model.follow_up,
        summary=model.summary,
    )
