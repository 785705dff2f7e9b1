"""Typed dataclasses for WhatsApp agent I/O contracts."""

from dataclasses import dataclass, field

from fullhouse_agent.domain.schemas import IntelligenceBundle


@dataclass
class EligibilityDecision:
    """Output of the eligibility guard."""
    proceed: bool
    reason: str  # no_config, ai_inactive, outside_hours, ok
    outside_hours_sent: bool = False


@dataclass
class HistoryTurn:
    """One prior message, role-tagged for the LLM."""
    role: str  # user, assistant
    content: str


@dataclass
class GroundingContext:
    """Assembled context for reply generation.

    History becomes the chat turns; the entity snapshot and memory section
    go into the system prompt, in that order. Any of them may be empty.
    """
    history: list[HistoryTurn] = field(default_factory=list)
    entity_snapshot: str = ""
    memory_section: str = ""

    @property
    def history_text(self) -> str:
        return "\n".join(
            f"{'Assistente' if t.role == 'assistant' else 'Cliente'}: {t.content}"
            for t in self.history
        )


@dataclass
class ExtractionOutcome:
    """Output of the Intelligence Extractor.

    ``bundle`` is always usable; ``error_kind`` records why it may be
    degraded (``parse_error``, ``provider_error``, ``credential_missing``).
    """
    bundle: IntelligenceBundle
    error_kind: str | None = None
    error: str | None = None
    used_model: bool = False
