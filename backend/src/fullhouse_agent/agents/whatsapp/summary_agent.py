"""Summary Agent — periodic conversation digest."""

from pydantic import ValidationError

from fullhouse_agent.agents.base import ERROR_PARSE, AgentResult, BaseAgent
from fullhouse_agent.agents.prompts.summary import build_summary_prompt
from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.schemas import SummaryDigest

SUMMARY_MAX_OUTPUT_TOKENS = 500


class SummaryAgent(BaseAgent):
    """Ask the model for a JSON digest of the conversation."""

    def __init__(self, config: AgentConfig):
        super().__init__(agent_name="summary_agent", config=config, temperature=0.3)

    async def summarize(self, transcript: str, memories_text: str = "") -> AgentResult:
        """Returns an AgentResult whose ``data`` is a ``SummaryDigest``."""
        result = await self.generate_json(
            prompt=build_summary_prompt(memories_text, transcript),
            max_output_tokens=SUMMARY_MAX_OUTPUT_TOKENS,
        )
        if not result.ok:
            return result

        try:
            digest = SummaryDigest.model_validate(result.data)
        except ValidationError as exc:
            return AgentResult.failure(str(exc), error_kind=ERROR_PARSE, raw_text=result.raw_text)
        return AgentResult.success(data=digest, latency_ms=result.latency_ms)
