"""Escalation guard — hands the conversation to a human (ACTIVE -> PAUSED).

Two triggers, both checked before any reply is generated:
- smart pause: the extractor flagged ``should_pause``
- message limit: the agent already sent ``max_messages_per_conversation``

Resuming a paused conversation is an operator action and lives elsewhere.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.domain.errors import PersistenceFailure
from fullhouse_agent.domain.models import WhatsAppConversation
from fullhouse_agent.domain.schemas import IntelligenceBundle
from fullhouse_agent.services.audit_log import AuditLog
from fullhouse_agent.services.conversation_store import ConversationStore
from fullhouse_agent.services.outbound_dispatcher import OutboundDispatcher

logger = logging.getLogger(__name__)

REASON_SMART_PAUSE = "smart_pause"
REASON_MESSAGE_LIMIT = "message_limit_reached"


@dataclass
class EscalationOutcome:
    """Whether the pipeline must stop, and why."""
    paused: bool = False
    reason: str | None = None
    action: str | None = None
    transfer_sent: bool = False


class EscalationService:
    """Apply smart-pause and message-limit escalation."""

    def __init__(self, db: AsyncSession, dispatcher: OutboundDispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.store = ConversationStore(db)
        self.audit = AuditLog(db)

    async def _pause(
        self,
        config: AgentConfig,
        conversation: WhatsAppConversation,
        reason: str,
        action: AIAction,
        details: dict,
        message_id: str | None,
    ) -> EscalationOutcome:
        await self.store.update_conversation(
            conversation,
            ai_active=False,
            ai_pause_reason=reason,
            ai_paused_at=datetime.now(timezone.utc),
        )

        transfer_sent = False
        if config.transfer_message:
            try:
                transfer_sent = await self.dispatcher.dispatch(conversation, config.transfer_message) is not None
            except PersistenceFailure as e:
                logger.error("Transfer message for %s delivered but not stored: %s", conversation.id, e)
                transfer_sent = True

        await self.audit.record(
            conversation.id,
            conversation.organization_id,
            action,
            {**details, "transfer_sent": transfer_sent},
            message_id=message_id,
        )
        logger.info("Conversation %s paused (%s)", conversation.id, reason)
        return EscalationOutcome(paused=True, reason=reason, action=action.value, transfer_sent=transfer_sent)

    async def check_smart_pause(
        self,
        config: AgentConfig,
        conversation: WhatsAppConversation,
        bundle: IntelligenceBundle,
        message_id: str | None = None,
    ) -> EscalationOutcome:
        if not (config.smart_pause_enabled and bundle.should_pause):
            return EscalationOutcome()
        reason = bundle.pause_reason or REASON_SMART_PAUSE
        return await self._pause(
            config, conversation, reason, AIAction.SMART_PAUSED, {"reason": reason}, message_id,
        )

    async def check_message_limit(
        self,
        config: AgentConfig,
        conversation: WhatsAppConversation,
        message_id: str | None = None,
    ) -> EscalationOutcome:
        limit = config.max_messages_per_conversation
        if not limit:
            return EscalationOutcome()
        count = await self.store.count_agent_sent(conversation.id)
        if count < limit:
            return EscalationOutcome()
        return await self._pause(
            config,
            conversation,
            REASON_MESSAGE_LIMIT,
            AIAction.ESCALATED,
            {"reason": REASON_MESSAGE_LIMIT, "count": count, "limit": limit},
            message_id,
        )
