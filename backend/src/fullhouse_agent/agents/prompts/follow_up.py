"""Prompt and fallbacks for follow-up messages."""

FOLLOW_UP_PROMPT = """Você é um assistente de vendas enviando uma mensagem de follow-up no WhatsApp.

CONTEXTO:
- Nome do cliente: {customer_name}
- O que ele disse antes: "{original_message}"
- Intent detectado: {intent}
- Contexto adicional: {context}
- Gancho de urgência: {urgency_hook}
- Tom: {tone}

MEMÓRIAS DO CONTATO:
{memories}

Gere UMA mensagem de follow-up curta (máximo 2 parágrafos) que:
1. Retoma a conversa naturalmente referenciando o que foi discutido
2. Usa o nome do cliente se disponível
3. Inclui um gancho sutil de urgência se disponível
4. NÃO usa markdown, NÃO usa emojis excessivos (máximo 1)
5. Soa como uma pessoa real, não um bot
6. É em português do Brasil

Responda APENAS com o texto da mensagem, sem aspas."""


def fallback_follow_up(customer_name: str) -> str:
    name = f" {customer_name}" if customer_name else ""
    return f"Olá{name}! Tudo bem? Gostaria de retomar nossa conversa. Posso ajudar com algo?"


def build_follow_up_prompt(
    customer_name: str,
    original_message: str,
    intent: str,
    context: str,
    urgency_hook: str,
    tone: str,
    memories_text: str,
) -> str:
    return (
        FOLLOW_UP_PROMPT
        .replace("{customer_name}", customer_name or "Cliente")
        .replace("{original_message}", original_message or "")
        .replace("{intent}", intent or "follow_up")
        .replace("{context}", context or "")
        .replace("{urgency_hook}", urgency_hook or "")
        .replace("{tone}", tone or "")
        .replace("{memories}", memories_text or "Nenhuma memória registrada.")
    )
