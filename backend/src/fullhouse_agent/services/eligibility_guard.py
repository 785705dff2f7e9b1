"""Eligibility guard — decides whether the agent handles an inbound message.

Decision order (first match wins):
1. no AI config for the instance      -> stop, nothing logged
2. conversation paused (ai_active off) -> stop
3. outside working hours              -> send the outside-hours message at
                                          most once per local calendar day,
                                          then stop
4. otherwise                          -> proceed
"""

import logging
from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.agents.whatsapp.contracts import EligibilityDecision
from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.domain.models import WhatsAppConversation
from fullhouse_agent.services.audit_log import AuditLog
from fullhouse_agent.services.conversation_store import ConversationStore
from fullhouse_agent.services.outbound_dispatcher import OutboundDispatcher

logger = logging.getLogger(__name__)

REASON_NO_CONFIG = "no_config"
REASON_AI_INACTIVE = "ai_inactive"
REASON_OUTSIDE_HOURS = "outside_hours"
REASON_OK = "ok"


def local_now(config: AgentConfig, now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(config.timezone))


def js_weekday(moment: datetime) -> int:
    """Day number with Sunday=0 ... Saturday=6."""
    return (moment.weekday() + 1) % 7


def is_within_working_hours(config: AgentConfig, now: datetime | None = None) -> bool:
    """Check working days and the inclusive HH:MM window in the config's timezone.

    With no window configured the agent works around the clock, every day.
    """
    if not (config.working_hours_start and config.working_hours_end):
        return True
    moment = local_now(config, now)
    if config.working_days and js_weekday(moment) not in config.working_days:
        return False
    current = moment.strftime("%H:%M")
    return config.working_hours_start <= current <= config.working_hours_end


def start_of_local_day_utc(config: AgentConfig, now: datetime | None = None) -> datetime:
    moment = local_now(config, now)
    midnight = datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)
    return midnight.astimezone(timezone.utc)


class EligibilityGuard:
    """Gate run before any other pipeline stage."""

    def __init__(self, db: AsyncSession, dispatcher: OutboundDispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.store = ConversationStore(db)
        self.audit = AuditLog(db)

    async def check(
        self,
        config: AgentConfig | None,
        conversation: WhatsAppConversation,
        now: datetime | None = None,
    ) -> EligibilityDecision:
        if config is None:
            return EligibilityDecision(proceed=False, reason=REASON_NO_CONFIG)

        if not conversation.ai_active:
            return EligibilityDecision(proceed=False, reason=REASON_AI_INACTIVE)

        if is_within_working_hours(config, now):
            return EligibilityDecision(proceed=True, reason=REASON_OK)

        sent = False
        message = config.outside_hours_message
        if message:
            since = start_of_local_day_utc(config, now)
            already_sent = await self.store.sent_text_since(conversation.id, message, since)
            if already_sent:
                logger.debug("Outside-hours message already sent today for %s", conversation.id)
            else:
                outbound = await self.dispatcher.dispatch(conversation, message)
                if outbound is not None:
                    sent = True
                    await self.audit.record(
                        conversation.id,
                        conversation.organization_id,
                        AIAction.OUTSIDE_HOURS,
                        {"message_length": len(message)},
                        message_id=outbound.id,
                    )

        return EligibilityDecision(proceed=False, reason=REASON_OUTSIDE_HOURS, outside_hours_sent=sent)
