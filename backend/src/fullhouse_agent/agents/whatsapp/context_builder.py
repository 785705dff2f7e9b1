"""Context Builder — assembles grounding context for the reply.

Three sections, each optional: recent history, CRM entity snapshot, and
memory facts grouped by category.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.models import WhatsAppConversation

from .contracts import GroundingContext, HistoryTurn

MEMORY_HEADERS = {
    "family": "Família",
    "preference": "Preferências",
    "budget": "Orçamento",
    "interest": "Interesses",
    "timeline": "Prazos/Datas",
    "objection": "Objeções levantadas",
    "personal": "Info pessoal",
    "fact": "Fatos",
    "interaction": "Estilo de comunicação",
}


def history_turns(messages, exclude_message_id: str | None = None) -> list[HistoryTurn]:
    """Role-tag stored messages, skipping the one being answered and empty bodies."""
    turns = []
    for message in messages:
        if exclude_message_id and message.id == exclude_message_id:
            continue
        if not message.text_body:
            continue
        turns.append(HistoryTurn(
            role="assistant" if message.from_me else "user",
            content=message.text_body,
        ))
    return turns


def format_memory_section(memories) -> str:
    """Group memory facts under human-readable headers."""
    if not memories:
        return ""

    grouped: dict[str, list] = {}
    for memory in memories:
        grouped.setdefault(memory.memory_type, []).append(memory)

    lines = ["MEMÓRIAS DO CONTATO:"]
    # Known categories first, in header order, then anything unexpected
    ordered = [t for t in MEMORY_HEADERS if t in grouped] + [t for t in grouped if t not in MEMORY_HEADERS]
    for memory_type in ordered:
        lines.append(f"{MEMORY_HEADERS.get(memory_type, memory_type.title())}:")
        for memory in grouped[memory_type]:
            lines.append(f"- {memory.key}: {memory.value}")
    return "\n".join(lines)


class ContextBuilder:
    """Load history, CRM data and memory for one conversation."""

    def __init__(self, db: AsyncSession):
        from fullhouse_agent.services.conversation_store import ConversationStore
        from fullhouse_agent.services.crm_service import CRMService

        self.db = db
        self.store = ConversationStore(db)
        self.crm = CRMService(db)

    async def build(
        self,
        config: AgentConfig,
        conversation: WhatsAppConversation,
        current_message_id: str | None = None,
        memories: list | None = None,
    ) -> GroundingContext:
        messages = await self.store.get_messages(conversation.id, limit=config.history_limit)
        snapshot = await self.crm.entity_snapshot(conversation.contact_id)
        return GroundingContext(
            history=history_turns(messages, exclude_message_id=current_message_id),
            entity_snapshot=snapshot,
            memory_section=format_memory_section(memories or []),
        )
