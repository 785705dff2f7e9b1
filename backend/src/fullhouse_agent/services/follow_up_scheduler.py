"""Follow-up scheduler — turns a detected intent into a timed follow-up."""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.enums import AIAction, FollowUpStatus
from fullhouse_agent.domain.models import WhatsAppConversation, WhatsAppFollowUp
from fullhouse_agent.domain.schemas import DetectedIntent, IntelligenceBundle
from fullhouse_agent.services.audit_log import AuditLog

logger = logging.getLogger(__name__)


def pick_follow_up_intent(intents: list[DetectedIntent]) -> DetectedIntent | None:
    """Highest-confidence intent that asks for a follow-up (delay > 0)."""
    candidates = [i for i in intents if (i.follow_up_delay_minutes or 0) > 0]
    if not candidates:
        return None
    return max(candidates, key=lambda i: i.confidence)


class FollowUpScheduler:
    """Create and count pending follow-ups for a conversation."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditLog(db)

    async def count_active_follow_ups(self, conversation_id: str) -> int:
        result = await self.db.execute(
            select(func.count(WhatsAppFollowUp.id)).where(
                WhatsAppFollowUp.conversation_id == conversation_id,
                WhatsAppFollowUp.status == FollowUpStatus.PENDING.value,
            )
        )
        return result.scalar_one()

    async def create_follow_up(self, **fields) -> WhatsAppFollowUp:
        follow_up = WhatsAppFollowUp(**fields)
        self.db.add(follow_up)
        await self.db.flush()
        return follow_up

    async def schedule_from_bundle(
        self,
        config: AgentConfig,
        conversation: WhatsAppConversation,
        bundle: IntelligenceBundle,
        message_text: str,
        message_id: str | None,
        now: datetime | None = None,
    ) -> WhatsAppFollowUp | None:
        """Schedule one follow-up for the best eligible intent.

        At the per-conversation cap this returns None without logging.
        """
        intent = pick_follow_up_intent(bundle.intents)
        if intent is None:
            return None

        active = await self.count_active_follow_ups(conversation.id)
        if active >= config.follow_up_max_per_conversation:
            return None

        delay = intent.follow_up_delay_minutes or config.follow_up_default_delay_minutes
        trigger_at = (now or datetime.now(timezone.utc)) + timedelta(minutes=delay)

        context = dict(intent.context or {})
        context["customer_name"] = conversation.contact_name or ""
        context["context_for_message"] = bundle.summary or ""
        if bundle.follow_up and bundle.follow_up.urgency_hook:
            context["urgency_hook"] = bundle.follow_up.urgency_hook

        follow_up = await self.create_follow_up(
            conversation_id=conversation.id,
            instance_id=conversation.instance_id,
            organization_id=conversation.organization_id,
            trigger_at=trigger_at,
            status=FollowUpStatus.PENDING.value,
            follow_up_type="smart",
            detected_intent=intent.intent,
            intent_confidence=intent.confidence,
            context=context,
            original_customer_message=message_text,
            original_message_id=message_id,
        )

        await self.audit.record(
            conversation.id,
            conversation.organization_id,
            AIAction.FOLLOW_UP_SCHEDULED,
            {
                "intent": intent.intent,
                "trigger_at": trigger_at.isoformat(),
                "delay_minutes": delay,
            },
            message_id=message_id,
        )
        return follow_up

    async def skip_pending_for_conversation(self, conversation_id: str) -> int:
        """The customer wrote back: pending follow-ups no longer apply."""
        result = await self.db.execute(
            update(WhatsAppFollowUp)
            .where(
                WhatsAppFollowUp.conversation_id == conversation_id,
                WhatsAppFollowUp.status == FollowUpStatus.PENDING.value,
            )
            .values(status=FollowUpStatus.SKIPPED.value, updated_at=datetime.now(timezone.utc))
        )
        return result.rowcount or 0
