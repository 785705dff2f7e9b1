"""Follow-up Writer — drafts the message sent when a follow-up fires."""

import json
import logging

from fullhouse_agent.agents.base import BaseAgent
from fullhouse_agent.agents.prompts.follow_up import build_follow_up_prompt, fallback_follow_up
from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.infra.llm_providers import LLMMessage

logger = logging.getLogger(__name__)

FOLLOW_UP_MAX_OUTPUT_TOKENS = 300


class FollowUpWriter(BaseAgent):

    def __init__(self, config: AgentConfig):
        super().__init__(agent_name="follow_up_writer", config=config, temperature=0.8)

    async def write(self, follow_up, customer_name: str, memories) -> str:
        """Always returns sendable text; falls back to a generic nudge."""
        if not self.config.has_credential:
            return fallback_follow_up(customer_name)

        context = follow_up.context or {}
        prompt = build_follow_up_prompt(
            customer_name=customer_name,
            original_message=follow_up.original_customer_message or "",
            intent=follow_up.detected_intent or "follow_up",
            context=context.get("context_for_message") or json.dumps(context, ensure_ascii=False),
            urgency_hook=context.get("urgency_hook") or "",
            tone=self.config.agent_tone,
            memories_text="\n".join(f"- [{m.memory_type}] {m.key}: {m.value}" for m in memories or []),
        )
        result = await self.generate(
            [LLMMessage(role="user", content=prompt)],
            max_output_tokens=FOLLOW_UP_MAX_OUTPUT_TOKENS,
        )
        text = (result.data or "").strip() if result.ok else ""
        if not text:
            logger.info("[%s] Using fallback follow-up text", self.agent_name)
            return fallback_follow_up(customer_name)
        return text
