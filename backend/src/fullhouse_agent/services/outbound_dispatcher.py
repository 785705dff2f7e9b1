"""Outbound dispatcher — send through Z-API, persist only on success."""

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.enums import MessageStatus, SenderClass
from fullhouse_agent.domain.errors import GatewaySendFailure, PersistenceFailure
from fullhouse_agent.domain.models import WhatsAppConversation, WhatsAppMessage
from fullhouse_agent.infra.zapi_client import GatewayCredentials, ZAPIClient
from fullhouse_agent.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


class OutboundDispatcher:
    """Deliver agent messages to the customer.

    The outbound message row and the conversation's last-message fields are
    written only after the gateway confirms the send. A gateway failure is
    logged and ``None`` is returned.
    """

    def __init__(
        self,
        db: AsyncSession,
        credentials: GatewayCredentials,
        gateway: ZAPIClient | None = None,
    ):
        self.db = db
        self.credentials = credentials
        self.gateway = gateway or ZAPIClient()
        self.store = ConversationStore(db)

    async def dispatch(
        self,
        conversation: WhatsAppConversation,
        text: str,
        reply_delay_ms: int = 0,
        sent_by: str = SenderClass.AI_AGENT.value,
    ) -> WhatsAppMessage | None:
        """Send ``text`` to the conversation's phone.

        Args:
            conversation: Target conversation.
            text: Message body.
            reply_delay_ms: Simulated typing delay before sending.
            sent_by: Sender class recorded on the persisted message.

        Returns:
            The persisted outbound message, or None when nothing was sent.

        Raises:
            PersistenceFailure: the gateway accepted the message but it could
                not be stored. The session stays usable.
        """
        if not text:
            return None

        if reply_delay_ms and reply_delay_ms > 0:
            await asyncio.sleep(reply_delay_ms / 1000)

        try:
            response = await self.gateway.send_text(self.credentials, conversation.phone, text)
        except GatewaySendFailure as e:
            logger.error("Dispatch to %s failed, message not persisted: %s", conversation.phone, e)
            return None

        now = datetime.now(timezone.utc)
        phone = conversation.phone
        try:
            async with self.db.begin_nested():
                message = await self.store.insert_message(
                    conversation_id=conversation.id,
                    organization_id=conversation.organization_id,
                    zapi_message_id=response.get("provider_message_id"),
                    from_me=True,
                    message_type="text",
                    text_body=text,
                    status=MessageStatus.SENT.value,
                    sent_by=sent_by,
                    whatsapp_timestamp=now,
                )
                await self.store.touch_last_message(conversation, text, from_me=True, at=now)
        except Exception as e:
            logger.error("Message sent to %s but could not be persisted: %s", phone, e, exc_info=True)
            await self.db.refresh(conversation)
            raise PersistenceFailure(f"Message sent to {phone} but not persisted: {e}") from e

        return message
