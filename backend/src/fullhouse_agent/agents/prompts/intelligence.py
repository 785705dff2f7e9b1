"""Prompt for the Intelligence Extractor.

Placeholders are substituted with ``str.replace`` because the prompt body
contains literal JSON braces.
"""

INTELLIGENCE_PROMPT = """Você é um analisador de conversas de vendas por WhatsApp. Analise a ÚLTIMA MENSAGEM DO CLIENTE no contexto da conversa e extraia informações estruturadas.

MEMÓRIAS DO CONTATO (informações já conhecidas):
{memories}

CONVERSA RECENTE:
{conversation}

ÚLTIMA MENSAGEM DO CLIENTE:
"{message}"

Responda APENAS com JSON válido (sem markdown, sem ```):
{
  "intents": [
    {
      "intent": "nome do intent (check_with_spouse, think_about_it, budget_hold, callback_request, price_inquiry, availability_check, ready_to_buy, not_interested, wants_human, general_question, greeting, gratitude, complaint, negotiation, info_request, scheduling)",
      "confidence": 0.0-1.0,
      "follow_up_delay_minutes": numero ou null,
      "context": {}
    }
  ],
  "memories": [
    {
      "memory_type": "fact|preference|objection|family|timeline|budget|interest|personal|interaction",
      "key": "chave descritiva curta (ex: spouse_name, budget_range, preferred_date)",
      "value": "valor extraído",
      "context": "contexto adicional opcional",
      "confidence": 0.0-1.0
    }
  ],
  "sentiment": "very_positive|positive|neutral|negative|very_negative",
  "lead_score_delta": -30 a +30 (quanto o score deve mudar),
  "buying_stage": "awareness|interest|consideration|decision|negotiation|closed_won|closed_lost" ou null,
  "suggested_labels": ["nome da label"],
  "should_pause": false,
  "pause_reason": null ou "razão para pausar",
  "follow_up": {
    "should_schedule": true/false,
    "delay_minutes": numero,
    "context_for_message": "contexto chave que o follow-up deve usar",
    "urgency_hook": "gancho de urgência natural (ex: 'poucas vagas', 'preço especial até sexta')"
  }
}

REGRAS:
- Extraia TODAS as informações relevantes mencionadas (nomes, datas, valores, preferências)
- Se o cliente mencionar nome de alguém (esposo, filha, etc), extraia como memória tipo "family"
- Se mencionar valores/budget, extraia como "budget"
- Se mencionar preferências, extraia como "preference"
- Para follow-ups: considere a hora do dia e o contexto. Se alguém diz "vou ver com meu esposo", 30-60 min é bom. Se diz "vou pensar", 1-2h é bom. Se diz "mês que vem", agende para semana que vem.
- should_pause = true APENAS se o cliente pedir humano ou estiver muito insatisfeito
- urgency_hook deve ser sutil e natural, nunca agressivo
- Retorne arrays vazios se não houver nada a extrair"""

NO_MEMORIES_TEXT = "Nenhuma memória registrada ainda."


def build_intelligence_prompt(memories_text: str, conversation: str, message: str) -> str:
    return (
        INTELLIGENCE_PROMPT
        .replace("{memories}", memories_text or NO_MEMORIES_TEXT)
        .replace("{conversation}", conversation or "(início da conversa)")
        .replace("{message}", message)
    )
