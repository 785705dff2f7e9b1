"""Pluggable LLM backends behind one ``generate`` contract.

Each backend takes the same role-tagged message list (an optional leading
``system`` message followed by user/assistant turns) and returns plain text.
``get_provider`` picks the backend from the organization's provider enum.
"""

import logging
from dataclasses import dataclass

from fullhouse_agent.domain.enums import ProviderName
from fullhouse_agent.domain.errors import ProviderCredentialMissing

logger = logging.getLogger(__name__)


DEFAULT_MODELS: dict[ProviderName, str] = {
    ProviderName.GOOGLE: "gemini-3-flash-preview",
    ProviderName.OPENAI: "gpt-4o",
    ProviderName.ANTHROPIC: "claude-sonnet-4-5",
}


@dataclass(frozen=True)
class LLMMessage:
    """A single chat turn. ``role`` is system, user or assistant."""

    role: str
    content: str


def _split_system(messages: list[LLMMessage]) -> tuple[str | None, list[LLMMessage]]:
    system_parts = [m.content for m in messages if m.role == "system"]
    turns = [m for m in messages if m.role != "system"]
    return ("\n\n".join(system_parts) if system_parts else None), turns


class LLMProvider:
    """Base class for provider backends."""

    name: ProviderName

    def __init__(self, api_key: str, model: str | None = None, temperature: float = 0.7):
        self.api_key = api_key
        self.model = model or DEFAULT_MODELS[self.name]
        self.temperature = temperature

    async def generate(
        self,
        messages: list[LLMMessage],
        max_output_tokens: int,
        response_schema: dict | None = None,
    ) -> str:
        raise NotImplementedError


class GeminiProvider(LLMProvider):
    name = ProviderName.GOOGLE

    async def generate(self, messages, max_output_tokens, response_schema=None):
        from fullhouse_agent.infra.gemini_client import get_model

        system, turns = _split_system(messages)
        model = get_model(
            api_key=self.api_key,
            model_name=self.model,
            temperature=self.temperature,
            max_output_tokens=max_output_tokens,
            json_mode=response_schema is not None,
            response_schema=response_schema,
            system_instruction=system,
        )
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [m.content]}
            for m in turns
        ]
        response = await model.generate_content_async(contents)
        return response.text or ""


class OpenAIProvider(LLMProvider):
    name = ProviderName.OPENAI

    async def generate(self, messages, max_output_tokens, response_schema=None):
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=self.api_key)
        kwargs = {}
        if response_schema is not None:
            # Schema is validated with pydantic after parsing
            kwargs["response_format"] = {"type": "json_object"}

        response = await client.chat.completions.create(
            model=self.model,
            messages=[{"role": m.role, "content": m.content} for m in messages],
            max_tokens=max_output_tokens,
            temperature=self.temperature,
            **kwargs,
        )
        return response.choices[0].message.content or ""


class AnthropicProvider(LLMProvider):
    name = ProviderName.ANTHROPIC

    async def generate(self, messages, max_output_tokens, response_schema=None):
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic(api_key=self.api_key)
        system, turns = _split_system(messages)
        kwargs = {"system": system} if system else {}

        response = await client.messages.create(
            model=self.model,
            max_tokens=max_output_tokens,
            temperature=self.temperature,
            messages=[{"role": m.role, "content": m.content} for m in turns],
            **kwargs,
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )


_REGISTRY: dict[ProviderName, type[LLMProvider]] = {
    ProviderName.GOOGLE: GeminiProvider,
    ProviderName.OPENAI: OpenAIProvider,
    ProviderName.ANTHROPIC: AnthropicProvider,
}


def get_provider(
    name: ProviderName | str,
    api_key: str | None,
    model: str | None = None,
    temperature: float = 0.7,
) -> LLMProvider:
    """Build the backend registered for ``name``.

    Raises:
        ProviderCredentialMissing: when ``api_key`` is empty.
        ValueError: for an unknown provider name.
    """
    provider_name = ProviderName(name)
    if not api_key:
        raise ProviderCredentialMissing(provider_name.value)
    return _REGISTRY[provider_name](api_key=api_key, model=model, temperature=temperature)
