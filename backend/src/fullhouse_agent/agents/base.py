"""Base agent class for the WhatsApp AI agents.

Every LLM-backed agent (IntelligenceExtractor, ResponseGenerator,
SummaryAgent, FollowUpWriter) inherits from BaseAgent, which provides:

- Provider access via the infra.llm_providers registry
- A standard AgentResult return type (Result pattern)
- A hard per-call timeout and latency measurement
- Lenient JSON parsing for structured output
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional

from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.errors import ProviderCredentialMissing
from fullhouse_agent.infra.llm_providers import LLMMessage, get_provider

logger = logging.getLogger(__name__)

ERROR_CREDENTIAL = "credential_missing"
ERROR_PROVIDER = "provider_error"
ERROR_PARSE = "parse_error"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class AgentResult:
    """Standard result type for all agent operations.

    Follows the Result pattern: every agent call returns an AgentResult
    instead of raising exceptions. Callers check ``result.ok`` to
    determine success or failure, and ``error_kind`` to tell a missing
    credential from a provider failure or unparseable output.

    Attributes:
        ok: True if the operation succeeded.
        data: The response payload (text, parsed JSON, etc.).
        error: Human-readable error description when ``ok`` is False.
        error_kind: One of ``credential_missing``, ``provider_error``,
            ``parse_error`` when ``ok`` is False.
        latency_ms: Wall-clock time for the operation in milliseconds.
        raw_text: Unparsed model output, kept for parse-error diagnostics.
    """

    ok: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    latency_ms: int = 0
    raw_text: str = ""

    @classmethod
    def success(cls, data: Any, latency_ms: int = 0, raw_text: str = "") -> "AgentResult":
        """Create a successful result."""
        return cls(ok=True, data=data, latency_ms=latency_ms, raw_text=raw_text)

    @classmethod
    def failure(
        cls,
        error: str,
        error_kind: str = ERROR_PROVIDER,
        latency_ms: int = 0,
        raw_text: str = "",
    ) -> "AgentResult":
        """Create a failure result."""
        return cls(
            ok=False,
            error=error,
            error_kind=error_kind,
            latency_ms=latency_ms,
            raw_text=raw_text,
        )


def extract_json_object(text: str) -> dict:
    """Parse the first ``{...}`` span in ``text``.

    Models occasionally wrap JSON in prose or markdown fences; the greedy
    brace scan recovers the object in those cases.

    Raises:
        ValueError: if no JSON object can be decoded.
    """
    text = (text or "").strip()
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except (json.JSONDecodeError, TypeError):
        pass

    match = _JSON_OBJECT.search(text)
    if not match:
        raise ValueError("no JSON object found in model output")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("model output is not a JSON object")
    return parsed


# ---------------------------------------------------------------------------
# Base agent
# ---------------------------------------------------------------------------

class BaseAgent:
    """Base class for the WhatsApp agents.

    The provider, model and key come from the ``AgentConfig`` passed in;
    nothing is read from global settings at call time.

    Example::

        class SummaryAgent(BaseAgent):
            def __init__(self, config):
                super().__init__(agent_name="summary_agent", config=config)

            async def summarize(self, transcript: str) -> AgentResult:
                return await self.generate_json(
                    prompt=f"Resuma: {transcript}",
                    max_output_tokens=500,
                )
    """

    def __init__(self, agent_name: str, config: AgentConfig, temperature: float = 0.7):
        """Initialise the agent.

        Args:
            agent_name: A short, unique name for this agent (used in logs).
            config: The execution's immutable agent configuration.
            temperature: Generation temperature.
        """
        self.agent_name = agent_name
        self.config = config
        self.temperature = temperature

    # ------------------------------------------------------------------
    # Core generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        messages: list[LLMMessage],
        max_output_tokens: int,
        response_schema: dict | None = None,
    ) -> AgentResult:
        """Send ``messages`` to the configured provider.

        Returns:
            An ``AgentResult`` with the response text in ``data``.
        """
        start_time = time.time()
        try:
            provider = get_provider(
                self.config.provider,
                self.config.api_key,
                model=self.config.model,
                temperature=self.temperature,
            )
        except ProviderCredentialMissing as exc:
            logger.info("[%s] %s", self.agent_name, exc)
            return AgentResult.failure(str(exc), error_kind=ERROR_CREDENTIAL)

        try:
            response_text = await asyncio.wait_for(
                provider.generate(messages, max_output_tokens, response_schema=response_schema),
                timeout=self.config.llm_timeout_seconds,
            )
            latency_ms = int((time.time() - start_time) * 1000)

            logger.info(
                "[%s] Generation succeeded: provider=%s, latency=%dms",
                self.agent_name,
                provider.name.value,
                latency_ms,
            )
            return AgentResult.success(data=response_text or "", latency_ms=latency_ms)

        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "[%s] Generation failed after %dms: %s",
                self.agent_name,
                latency_ms,
                exc,
            )
            return AgentResult.failure(
                str(exc) or exc.__class__.__name__,
                error_kind=ERROR_PROVIDER,
                latency_ms=latency_ms,
            )

    # ------------------------------------------------------------------
    # JSON generation convenience
    # ------------------------------------------------------------------

    async def generate_json(
        self,
        prompt: str,
        max_output_tokens: int,
        response_schema: dict | None = None,
        system_instruction: Optional[str] = None,
    ) -> AgentResult:
        """Generate a single-turn response and parse it as a JSON object.

        Returns:
            An ``AgentResult`` whose ``data`` is the parsed dict. Output
            that cannot be decoded yields ``error_kind="parse_error"``.
        """
        messages = []
        if system_instruction:
            messages.append(LLMMessage(role="system", content=system_instruction))
        messages.append(LLMMessage(role="user", content=prompt))

        result = await self.generate(
            messages,
            max_output_tokens=max_output_tokens,
            response_schema=response_schema,
        )
        if not result.ok:
            return result

        try:
            parsed = extract_json_object(result.data)
        except (ValueError, json.JSONDecodeError) as exc:
            logger.warning(
                "[%s] JSON parse failed: %s, raw text: %.200s",
                self.agent_name,
                exc,
                result.data,
            )
            return AgentResult.failure(
                error=f"JSON parse error: {exc}",
                error_kind=ERROR_PARSE,
                latency_ms=result.latency_ms,
                raw_text=result.data or "",
            )

        return AgentResult.success(
            data=parsed,
            latency_ms=result.latency_ms,
            raw_text=result.data,
        )
