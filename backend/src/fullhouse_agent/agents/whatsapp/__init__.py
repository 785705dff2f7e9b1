"""WhatsApp agent pipeline package.

Agents:
1. intent_patterns (deterministic regex fast-path)
2. IntelligenceExtractor (LLM signal bundle)
3. ContextBuilder (history + CRM snapshot + memory)
4. ResponseGenerator (LLM reply)
5. SummaryAgent (LLM periodic digest)
6. FollowUpWriter (LLM follow-up text)
"""

from .contracts import (
    EligibilityDecision,
    ExtractionOutcome,
    GroundingContext,
    HistoryTurn,
)
from .intent_patterns import detect_intents_local, local_bundle, merge_bundles
from .intelligence_extractor import IntelligenceExtractor
from .context_builder import ContextBuilder
from .response_agent import ResponseGenerator
from .summary_agent import SummaryAgent
from .follow_up_writer import FollowUpWriter

__all__ = [
    "EligibilityDecision",
    "ExtractionOutcome",
    "GroundingContext",
    "HistoryTurn",
    "detect_intents_local",
    "local_bundle",
    "merge_bundles",
    "IntelligenceExtractor",
    "ContextBuilder",
    "ResponseGenerator",
    "SummaryAgent",
    "FollowUpWriter",
]
