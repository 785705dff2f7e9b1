"""Prompt for the periodic conversation summary."""

SUMMARY_PROMPT = """Resuma esta conversa de WhatsApp em 2-3 frases. Identifique pontos-chave e próximas ações recomendadas.

MEMÓRIAS:
{memories}

CONVERSA:
{conversation}

Responda em JSON:
{"summary":"...","key_points":["..."],"next_actions":["..."],"sentiment":"positive|neutral|negative"}"""


def build_summary_prompt(memories_text: str, conversation: str) -> str:
    return SUMMARY_PROMPT.replace("{memories}", memories_text).replace("{conversation}", conversation)
