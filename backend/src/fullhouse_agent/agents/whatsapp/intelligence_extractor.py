"""Intelligence Extractor — one LLM call per inbound message.

Produces the signal bundle (intents, memories, score delta, labels, pause
signal, summary) that every side-effect stage consumes. Never raises: a
bad model response degrades to an empty bundle, a missing credential or a
failed call degrades to the local regex patterns.
"""

import logging

from pydantic import ValidationError

from fullhouse_agent.agents.base import (
    ERROR_CREDENTIAL,
    ERROR_PARSE,
    BaseAgent,
)
from fullhouse_agent.agents.prompts.intelligence import build_intelligence_prompt
from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.errors import ExtractionParseError
from fullhouse_agent.domain.schemas import IntelligenceBundle

from .contracts import ExtractionOutcome
from .intent_patterns import local_bundle, merge_bundles

logger = logging.getLogger(__name__)

EXTRACTION_MAX_OUTPUT_TOKENS = 1500

INTELLIGENCE_SCHEMA = IntelligenceBundle.model_json_schema()


def format_memories(memories) -> str:
    """Render stored ChatMemory rows as prompt lines."""
    return "\n".join(f"- [{m.memory_type}] {m.key}: {m.value}" for m in memories)


def parse_bundle(data, raw_text: str = "") -> IntelligenceBundle:
    """Validate decoded model output into an IntelligenceBundle.

    Raises:
        ExtractionParseError: when the output does not fit the bundle schema.
    """
    try:
        return IntelligenceBundle.model_validate(data).with_summary_from_hint()
    except ValidationError as exc:
        raise ExtractionParseError(
            f"Schema validation error: {exc.error_count()} errors", raw_text=raw_text,
        ) from exc


class IntelligenceExtractor(BaseAgent):
    """Classify the customer's message and extract structured signals."""

    def __init__(self, config: AgentConfig):
        super().__init__(agent_name="intelligence_extractor", config=config, temperature=0.2)

    async def extract(
        self,
        message: str,
        history_text: str,
        memories: list | None = None,
    ) -> ExtractionOutcome:
        """Analyze ``message`` in the context of recent history and memory.

        Args:
            message: The current inbound text.
            history_text: Prior turns rendered as ``Cliente:``/``Assistente:`` lines.
            memories: Existing ChatMemory rows for the conversation.
        """
        local = local_bundle(message)

        if not self.config.intelligence_enabled:
            return ExtractionOutcome(bundle=local)

        prompt = build_intelligence_prompt(
            memories_text=format_memories(memories or []),
            conversation=history_text,
            message=message,
        )
        result = await self.generate_json(
            prompt=prompt,
            max_output_tokens=EXTRACTION_MAX_OUTPUT_TOKENS,
            response_schema=INTELLIGENCE_SCHEMA,
        )

        if not result.ok:
            if result.error_kind == ERROR_PARSE:
                logger.warning("[%s] Unparseable extraction, using empty bundle", self.agent_name)
                return ExtractionOutcome(
                    bundle=IntelligenceBundle.empty(),
                    error_kind=ERROR_PARSE,
                    error=result.error,
                )
            if result.error_kind != ERROR_CREDENTIAL:
                logger.warning("[%s] Extraction call failed, using local patterns: %s", self.agent_name, result.error)
            return ExtractionOutcome(bundle=local, error_kind=result.error_kind, error=result.error)

        try:
            model_bundle = parse_bundle(result.data, raw_text=result.raw_text)
        except ExtractionParseError as exc:
            logger.warning("[%s] Extraction failed schema validation: %s", self.agent_name, exc)
            return ExtractionOutcome(
                bundle=IntelligenceBundle.empty(),
                error_kind=ERROR_PARSE,
                error=str(exc),
            )

        return ExtractionOutcome(bundle=merge_bundles(local, model_bundle), used_model=True)
