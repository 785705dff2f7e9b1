"""Follow-up processor — fires follow-ups whose trigger time has passed.

Called by the internal cron route and the lifespan loop. For each due
follow-up, under the conversation's lock:
1. Re-read it; drop it if it is no longer pending
2. Validate instance (connected), agent config and conversation
3. Cancel it if a human has taken over the conversation
4. Respect quiet hours (reschedule to 5 minutes after they end)
5. Write the message (stored text, LLM writer, or generic fallback)
6. Send through Z-API, persist, mark sent, audit ``follow_up_sent``

A follow-up that errors is retried on later runs until ``max_retries``.
One that was delivered but could not be stored is marked sent.
"""

import logging
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.app.config import get_settings
from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.enums import AIAction, FollowUpStatus, InstanceStatus
from fullhouse_agent.domain.errors import GatewaySendFailure, PersistenceFailure
from fullhouse_agent.domain.models import WhatsAppFollowUp
from fullhouse_agent.services.conversation_locks import ConversationLockRegistry, conversation_locks
from fullhouse_agent.services.eligibility_guard import local_now

logger = logging.getLogger(__name__)

QUIET_HOURS_GRACE = timedelta(minutes=5)
MESSAGE_PREVIEW_CHARS = 100


def is_quiet_time(config: AgentConfig, now: datetime | None = None) -> bool:
    """Inclusive HH:MM window in the config's timezone; may wrap past midnight."""
    start, end = config.follow_up_quiet_hours_start, config.follow_up_quiet_hours_end
    if not (start and end):
        return False
    current = local_now(config, now).strftime("%H:%M")
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def quiet_hours_resume_at(config: AgentConfig, now: datetime | None = None) -> datetime:
    """Quiet-hours end + 5 minutes, today or tomorrow, as an aware UTC datetime."""
    moment = local_now(config, now)
    hour, minute = (int(part) for part in config.follow_up_quiet_hours_end.split(":"))
    resume = datetime.combine(moment.date(), time(hour, minute), tzinfo=moment.tzinfo) + QUIET_HOURS_GRACE
    if resume <= moment:
        resume += timedelta(days=1)
    return resume.astimezone(timezone.utc)


async def get_due_follow_ups(db: AsyncSession, now: datetime, limit: int) -> list[WhatsAppFollowUp]:
    result = await db.execute(
        select(WhatsAppFollowUp)
        .where(
            WhatsAppFollowUp.status == FollowUpStatus.PENDING.value,
            WhatsAppFollowUp.trigger_at <= now,
        )
        .order_by(WhatsAppFollowUp.trigger_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def process_due(
    db: AsyncSession,
    now: datetime | None = None,
    gateway=None,
    limit: int | None = None,
    locks: ConversationLockRegistry | None = None,
) -> dict:
    """Process every due follow-up. Returns ``{processed, sent, failed, skipped}``.

    Each follow-up is handled under its conversation's lock, so it never
    interleaves with an agent run on the same conversation.
    """
    now = now or datetime.now(timezone.utc)
    limit = limit or get_settings().follow_up_batch_limit
    locks = locks or conversation_locks
    counts = {"processed": 0, "sent": 0, "failed": 0, "skipped": 0}

    due = [(f.id, f.conversation_id) for f in await get_due_follow_ups(db, now, limit)]
    for follow_up_id, conversation_id in due:
        counts["processed"] += 1
        async with locks.lock(conversation_id):
            try:
                follow_up = await db.get(WhatsAppFollowUp, follow_up_id)
                outcome = await _process_one(db, follow_up, now, gateway)
                await db.commit()
            except Exception as e:
                logger.error("Follow-up %s failed: %s", follow_up_id, e)
                await db.rollback()
                follow_up = await db.get(WhatsAppFollowUp, follow_up_id)
                if follow_up.retry_count < follow_up.max_retries:
                    follow_up.retry_count = follow_up.retry_count + 1
                else:
                    follow_up.status = FollowUpStatus.FAILED.value
                await db.commit()
                outcome = "failed"
        counts[outcome] += 1

    if counts["processed"]:
        logger.info("Follow-up run: %s", counts)
    return counts


def _mark(follow_up: WhatsAppFollowUp, status: FollowUpStatus) -> None:
    follow_up.status = status.value
    follow_up.updated_at = datetime.now(timezone.utc)


async def _process_one(db: AsyncSession, follow_up: WhatsAppFollowUp, now: datetime, gateway) -> str:
    """Handle one follow-up; returns the counter it lands in."""
    from fullhouse_agent.agents.whatsapp.follow_up_writer import FollowUpWriter
    from fullhouse_agent.infra.zapi_client import GatewayCredentials
    from fullhouse_agent.services.audit_log import AuditLog
    from fullhouse_agent.services.conversation_store import ConversationStore
    from fullhouse_agent.services.crm_service import CRMService
    from fullhouse_agent.services.memory_service import MemoryService
    from fullhouse_agent.services.outbound_dispatcher import OutboundDispatcher

    store = ConversationStore(db)

    # A customer reply may have skipped it since it was selected
    await db.refresh(follow_up)
    if follow_up.status != FollowUpStatus.PENDING.value:
        return "skipped"

    instance = await store.get_instance(follow_up.instance_id)
    if instance is None or instance.status != InstanceStatus.CONNECTED.value:
        _mark(follow_up, FollowUpStatus.FAILED)
        return "failed"

    config = await store.load_agent_config(instance.id)
    if config is None:
        _mark(follow_up, FollowUpStatus.FAILED)
        return "failed"

    conversation = await store.get_conversation(follow_up.conversation_id)
    if conversation is None:
        _mark(follow_up, FollowUpStatus.FAILED)
        return "failed"

    await db.refresh(conversation)
    if not conversation.ai_active:
        logger.info("Follow-up %s cancelled: conversation %s is paused", follow_up.id, conversation.id)
        _mark(follow_up, FollowUpStatus.CANCELLED)
        return "skipped"

    if is_quiet_time(config, now):
        follow_up.trigger_at = quiet_hours_resume_at(config, now)
        follow_up.updated_at = datetime.now(timezone.utc)
        return "skipped"

    message = follow_up.ai_generated_message
    if not message:
        contact = await CRMService(db).get_contact(conversation.contact_id)
        customer_name = conversation.contact_name or (contact.name if contact else "")
        memories = await MemoryService(db).get_memories(conversation.id)
        message = await FollowUpWriter(config).write(follow_up, customer_name, memories)
        follow_up.ai_generated_message = message

    dispatcher = OutboundDispatcher(db, GatewayCredentials.from_instance(instance), gateway=gateway)
    try:
        outbound = await dispatcher.dispatch(conversation, message)
    except PersistenceFailure as e:
        logger.error("Follow-up %s delivered but not stored: %s", follow_up.id, e)
        _mark(follow_up, FollowUpStatus.SENT)
        return "sent"
    if outbound is None:
        raise GatewaySendFailure(f"follow-up {follow_up.id} could not be delivered")

    _mark(follow_up, FollowUpStatus.SENT)
    follow_up.sent_message_id = outbound.id

    await AuditLog(db).record(
        conversation.id,
        conversation.organization_id,
        AIAction.FOLLOW_UP_SENT,
        {
            "follow_up_id": follow_up.id,
            "detected_intent": follow_up.detected_intent,
            "message_preview": message[:MESSAGE_PREVIEW_CHARS],
        },
        message_id=outbound.id,
    )
    return "sent"
