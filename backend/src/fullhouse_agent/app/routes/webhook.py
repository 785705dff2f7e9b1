"""Z-API webhook — inbound WhatsApp messages, delivery status, connection events.

The ``instance_id`` in the URL is our internal WhatsAppInstance id. Payload
kinds are told apart in this order:
1. connection callbacks (``connected`` or Connected/DisconnectedCallback)
2. inbound messages (phone + text), checked before status because Z-API
   sends ``status="RECEIVED"`` on inbound messages too
3. delivery status callbacks (messageId/ids + status, no text)

Returns 200 right after the inbound message is stored. The agent pipeline
runs in a background task with its own DB session.
"""

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.enums import InstanceStatus, MessageStatus
from fullhouse_agent.domain.schemas import ZAPIWebhookPayload
from fullhouse_agent.infra.database import async_session, get_db
from fullhouse_agent.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/whatsapp/webhook", tags=["whatsapp-webhook"])

# Z-API status name -> our MessageStatus
STATUS_MAP = {
    "SENT": MessageStatus.SENT.value,
    "RECEIVED": MessageStatus.RECEIVED.value,
    "READ": MessageStatus.READ.value,
    "PLAYED": MessageStatus.READ.value,
    "DELETED": MessageStatus.DELETED.value,
}

# Hold references to background tasks so they don't get garbage collected
_background_tasks: set = set()


@router.get("/{instance_id}")
async def verify_webhook(instance_id: str):
    return {"ok": True, "service": "fullhouse-agent-whatsapp-webhook"}


@router.post("/{instance_id}")
async def zapi_webhook(
    instance_id: str,
    payload: ZAPIWebhookPayload,
    db: AsyncSession = Depends(get_db),
):
    store = ConversationStore(db)
    instance = await store.get_instance(instance_id)
    if instance is None:
        logger.error("Webhook for unknown instance %s", instance_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Instance not found")

    # ── 1. Connection events ──────────────────────────────────────────
    if payload.is_connection_event:
        connected = bool(payload.connected) or payload.type == "ConnectedCallback"
        instance.status = (InstanceStatus.CONNECTED if connected else InstanceStatus.DISCONNECTED).value
        if payload.phone:
            instance.phone = payload.phone
        await db.commit()
        logger.info("Instance %s is now %s", instance_id, instance.status)
        return {"ok": True, "action": "connection", "status": instance.status}

    # ── 2. Inbound messages ───────────────────────────────────────────
    text = payload.text_body
    if payload.phone and text:
        return await _handle_inbound(db, store, instance, payload, text)

    # ── 3. Delivery status ────────────────────────────────────────────
    if payload.is_status_event:
        new_status = STATUS_MAP.get((payload.status or "").upper())
        if new_status is None:
            return {"ok": True, "action": "ignored"}
        updated = 0
        for provider_message_id in payload.ids or [payload.message_id]:
            updated += await store.update_message_status(provider_message_id, new_status)
        await db.commit()
        return {"ok": True, "action": "status", "updated": updated}

    logger.warning("Unrecognized Z-API payload for %s: type=%s", instance_id, payload.type)
    return {"ok": True, "action": "ignored"}


async def _handle_inbound(db: AsyncSession, store: ConversationStore, instance, payload: ZAPIWebhookPayload, text: str):
    from fullhouse_agent.services.follow_up_scheduler import FollowUpScheduler

    if payload.from_me or payload.is_group or payload.is_status_reply:
        return {"ok": True, "action": "ignored"}

    conversation, _created = await store.get_or_create_conversation(
        instance, payload.phone, payload.chat_name or payload.sender_name,
    )
    sent_at = (
        datetime.fromtimestamp(payload.moment / 1000, tz=timezone.utc)
        if payload.moment else datetime.now(timezone.utc)
    )
    message = await store.insert_inbound(conversation, text, provider_message_id=payload.message_id, sent_at=sent_at)

    # The customer wrote back: pending follow-ups are moot
    skipped = await FollowUpScheduler(db).skip_pending_for_conversation(conversation.id)
    if skipped:
        logger.info("Skipped %d pending follow-ups for %s", skipped, conversation.id)

    await store.touch_last_message(conversation, text, from_me=False, at=sent_at)

    # Commit so the background task can read the message
    await db.commit()

    if not (instance.ai_enabled and conversation.ai_active):
        return {"ok": True, "action": "stored", "conversation_id": conversation.id}

    task = asyncio.create_task(_run_agent(conversation.id, message.id, text))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return {"ok": True, "action": "agent_scheduled", "conversation_id": conversation.id}


async def _run_agent(conversation_id: str, message_id: str, text: str) -> None:
    """Background task: run the agent pipeline in a fresh session."""
    from fullhouse_agent.services.whatsapp_agent_orchestrator import WhatsAppAgentOrchestrator

    try:
        async with async_session() as db:
            result = await WhatsAppAgentOrchestrator(db).process_message(conversation_id, message_id, text)
            logger.info(
                "Agent run for %s: action=%s stopped_at=%s",
                conversation_id, result.action, result.stopped_at,
            )
    except Exception as e:
        logger.error("Agent background task failed for %s: %s", conversation_id, e, exc_info=True)
