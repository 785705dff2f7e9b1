"""Response Generator — writes the WhatsApp reply via the org's LLM provider."""

import logging

from fullhouse_agent.agents.base import ERROR_CREDENTIAL, BaseAgent
from fullhouse_agent.agents.prompts.response import RESPONSE_MAX_OUTPUT_TOKENS, RESPONSE_RULES
from fullhouse_agent.domain.agent_config import DEFAULT_AGENT_ROLE, AgentConfig
from fullhouse_agent.domain.errors import ProviderCallError
from fullhouse_agent.infra.llm_providers import LLMMessage

from .contracts import GroundingContext, HistoryTurn

logger = logging.getLogger(__name__)


def build_system_prompt(config: AgentConfig, context: GroundingContext) -> str:
    """Persona + fixed rules + CRM and memory grounding."""
    parts = [
        config.system_prompt or "",
        "",
        f"Seu nome: {config.agent_name}",
        f"Seu papel: {config.agent_role or DEFAULT_AGENT_ROLE}",
        f"Tom: {config.agent_tone}",
        "",
        RESPONSE_RULES,
    ]
    if context.entity_snapshot:
        parts.append(f"\nCONTEXTO CRM:\n{context.entity_snapshot}")
    if context.memory_section:
        parts.append(context.memory_section)
    return "\n".join(parts).strip()


def alternate_turns(history: list[HistoryTurn], current_text: str) -> list[LLMMessage]:
    """History + current text as a strictly alternating user/assistant list.

    Consecutive turns from the same side are merged, and the list always
    starts and ends with a user turn.
    """
    merged: list[LLMMessage] = []
    for turn in [*history, HistoryTurn(role="user", content=current_text)]:
        if merged and merged[-1].role == turn.role:
            merged[-1] = LLMMessage(role=turn.role, content=f"{merged[-1].content}\n{turn.content}")
        else:
            merged.append(LLMMessage(role=turn.role, content=turn.content))

    while merged and merged[0].role != "user":
        merged.pop(0)
    return merged


class ResponseGenerator(BaseAgent):
    """Generate the agent's reply text."""

    def __init__(self, config: AgentConfig):
        super().__init__(agent_name="response_generator", config=config, temperature=0.7)

    async def generate_reply(self, context: GroundingContext, current_text: str) -> str:
        """Return the reply text.

        With no provider credential the configured transfer message is
        returned as-is. An empty model answer also falls back to it.

        Raises:
            ProviderCallError: when the provider call fails.
        """
        if not self.config.has_credential:
            return self.config.fallback_message

        messages = [LLMMessage(role="system", content=build_system_prompt(self.config, context))]
        messages.extend(alternate_turns(context.history, current_text))

        result = await self.generate(messages, max_output_tokens=RESPONSE_MAX_OUTPUT_TOKENS)
        if not result.ok:
            if result.error_kind == ERROR_CREDENTIAL:
                return self.config.fallback_message
            raise ProviderCallError(result.error or "provider call failed")

        text = (result.data or "").strip()
        if not text:
            logger.warning("[%s] Empty model reply, using transfer message", self.agent_name)
            return self.config.fallback_message
        return text
