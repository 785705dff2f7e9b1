"""Conversation store — conversations, messages and agent configuration."""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.app.config import get_settings
from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.enums import MessageStatus, SenderClass
from fullhouse_agent.domain.models import (
    OrganizationAISettings,
    WhatsAppAIConfig,
    WhatsAppConversation,
    WhatsAppInstance,
    WhatsAppMessage,
)

logger = logging.getLogger(__name__)

LAST_MESSAGE_PREVIEW_CHARS = 255


class ConversationStore:
    """Read/write access to WhatsApp conversations and their messages."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def get_conversation(self, conversation_id: str) -> WhatsAppConversation | None:
        return await self.db.get(WhatsAppConversation, conversation_id)

    async def get_or_create_conversation(
        self,
        instance: WhatsAppInstance,
        phone: str,
        contact_name: str | None = None,
    ) -> tuple[WhatsAppConversation, bool]:
        """Return ``(conversation, created)`` for this instance + phone."""
        result = await self.db.execute(
            select(WhatsAppConversation).where(
                WhatsAppConversation.instance_id == instance.id,
                WhatsAppConversation.phone == phone,
            ).limit(1)
        )
        conversation = result.scalar_one_or_none()
        if conversation:
            if contact_name and not conversation.contact_name:
                conversation.contact_name = contact_name
            return conversation, False

        conversation = WhatsAppConversation(
            instance_id=instance.id,
            organization_id=instance.organization_id,
            phone=phone,
            contact_name=contact_name,
            ai_active=True,
        )
        self.db.add(conversation)
        await self.db.flush()
        logger.info("Created WhatsApp conversation %s for %s", conversation.id, phone)
        return conversation, True

    async def update_conversation(self, conversation: WhatsAppConversation, **patch) -> WhatsAppConversation:
        for key, value in patch.items():
            setattr(conversation, key, value)
        await self.db.flush()
        return conversation

    async def touch_last_message(
        self,
        conversation: WhatsAppConversation,
        text: str,
        from_me: bool,
        at: datetime | None = None,
    ) -> None:
        """Update the denormalized last-message fields."""
        conversation.last_message_text = (text or "")[:LAST_MESSAGE_PREVIEW_CHARS]
        conversation.last_message_at = at or datetime.now(timezone.utc)
        conversation.last_message_from_me = from_me
        if not from_me:
            conversation.unread_count = (conversation.unread_count or 0) + 1
        await self.db.flush()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def get_messages(self, conversation_id: str, limit: int = 20) -> list[WhatsAppMessage]:
        """Return the latest ``limit`` messages, oldest first."""
        result = await self.db.execute(
            select(WhatsAppMessage)
            .where(WhatsAppMessage.conversation_id == conversation_id)
            .order_by(WhatsAppMessage.created_at.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def get_message(self, message_id: str) -> WhatsAppMessage | None:
        return await self.db.get(WhatsAppMessage, message_id)

    async def insert_message(self, **fields) -> WhatsAppMessage:
        message = WhatsAppMessage(**fields)
        self.db.add(message)
        await self.db.flush()
        return message

    async def insert_inbound(
        self,
        conversation: WhatsAppConversation,
        text: str,
        provider_message_id: str | None = None,
        message_type: str = "text",
        sent_at: datetime | None = None,
    ) -> WhatsAppMessage:
        return await self.insert_message(
            conversation_id=conversation.id,
            organization_id=conversation.organization_id,
            zapi_message_id=provider_message_id,
            from_me=False,
            message_type=message_type,
            text_body=text,
            status=MessageStatus.RECEIVED.value,
            sent_by=SenderClass.CUSTOMER.value,
            whatsapp_timestamp=sent_at or datetime.now(timezone.utc),
        )

    async def update_message_status(self, provider_message_id: str, status: str) -> int:
        """Set status on every message with this gateway id. Returns rows touched."""
        result = await self.db.execute(
            update(WhatsAppMessage)
            .where(WhatsAppMessage.zapi_message_id == provider_message_id)
            .values(status=status)
        )
        return result.rowcount or 0

    async def count_inbound(self, conversation_id: str) -> int:
        result = await self.db.execute(
            select(func.count(WhatsAppMessage.id)).where(
                WhatsAppMessage.conversation_id == conversation_id,
                WhatsAppMessage.from_me == False,  # noqa: E712
            )
        )
        return result.scalar_one()

    async def count_agent_sent(self, conversation_id: str) -> int:
        result = await self.db.execute(
            select(func.count(WhatsAppMessage.id)).where(
                WhatsAppMessage.conversation_id == conversation_id,
                WhatsAppMessage.sent_by == SenderClass.AI_AGENT.value,
            )
        )
        return result.scalar_one()

    async def sent_text_since(self, conversation_id: str, text: str, since: datetime) -> bool:
        """True if an outbound message with exactly ``text`` exists since ``since``."""
        result = await self.db.execute(
            select(func.count(WhatsAppMessage.id)).where(
                WhatsAppMessage.conversation_id == conversation_id,
                WhatsAppMessage.from_me == True,  # noqa: E712
                WhatsAppMessage.text_body == text,
                WhatsAppMessage.created_at >= since,
            )
        )
        return result.scalar_one() > 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def get_instance(self, instance_id: str) -> WhatsAppInstance | None:
        return await self.db.get(WhatsAppInstance, instance_id)

    async def get_ai_config(self, instance_id: str) -> WhatsAppAIConfig | None:
        result = await self.db.execute(
            select(WhatsAppAIConfig).where(WhatsAppAIConfig.instance_id == instance_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_org_settings(self, organization_id: str) -> OrganizationAISettings | None:
        result = await self.db.execute(
            select(OrganizationAISettings)
            .where(OrganizationAISettings.organization_id == organization_id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def load_agent_config(self, instance_id: str) -> AgentConfig | None:
        """Build the immutable AgentConfig, or None when the instance has no config."""
        ai_config = await self.get_ai_config(instance_id)
        if ai_config is None:
            return None
        org_settings = await self.get_org_settings(ai_config.organization_id)
        return AgentConfig.from_rows(ai_config, org_settings, get_settings())
