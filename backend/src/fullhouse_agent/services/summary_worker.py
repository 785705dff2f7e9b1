"""Summary worker — periodic conversation digests, off the reply path.

The pipeline schedules the job and moves on; the job opens its own DB
session and any failure is logged and dropped.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.models import ConversationSummary
from fullhouse_agent.domain.schemas import SummaryDigest

logger = logging.getLogger(__name__)

TRIGGER_PERIODIC = "periodic"

# Hold references to background tasks so they don't get garbage collected
_background_tasks: set = set()


def should_run(config: AgentConfig, inbound_count: int) -> bool:
    """Every Nth inbound message, when summaries are enabled."""
    every = config.summary_every_n_messages
    return bool(config.summary_enabled and every and inbound_count and inbound_count % every == 0)


async def insert_summary(
    db: AsyncSession,
    conversation_id: str,
    organization_id: str,
    digest: SummaryDigest,
    trigger_reason: str = TRIGGER_PERIODIC,
) -> ConversationSummary:
    summary = ConversationSummary(
        conversation_id=conversation_id,
        organization_id=organization_id,
        summary=digest.summary or "Sem resumo disponível.",
        key_points=list(digest.key_points),
        next_actions=list(digest.next_actions),
        customer_sentiment=digest.sentiment or "neutral",
        trigger_reason=trigger_reason,
    )
    db.add(summary)
    await db.flush()
    return summary


async def run_summary(
    config: AgentConfig,
    conversation_id: str,
    organization_id: str,
    transcript: str,
    memories_text: str = "",
    session_factory=None,
) -> ConversationSummary | None:
    """Generate and store one digest. Never raises."""
    from fullhouse_agent.agents.whatsapp.summary_agent import SummaryAgent

    if not config.has_credential:
        return None

    try:
        result = await SummaryAgent(config).summarize(transcript, memories_text)
        if not result.ok:
            logger.warning("Summary for %s skipped: %s", conversation_id, result.error)
            return None

        if session_factory is None:
            from fullhouse_agent.infra.database import async_session
            session_factory = async_session

        async with session_factory() as db:
            summary = await insert_summary(db, conversation_id, organization_id, result.data)
            await db.commit()
            logger.info("Stored periodic summary for conversation %s", conversation_id)
            return summary
    except Exception as e:
        logger.warning("Summary generation failed for %s: %s", conversation_id, e)
        return None


def schedule(
    config: AgentConfig,
    conversation_id: str,
    organization_id: str,
    transcript: str,
    memories_text: str = "",
    session_factory=None,
) -> asyncio.Task:
    """Fire-and-forget ``run_summary``; the caller does not await it."""
    task = asyncio.create_task(
        run_summary(
            config,
            conversation_id,
            organization_id,
            transcript,
            memories_text=memories_text,
            session_factory=session_factory,
        )
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def drain() -> None:
    """Wait for every scheduled summary job to finish."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
