"""Lead score engine — bounded additive scoring with a temperature bucket."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.agent_config import ScorePolicy
from fullhouse_agent.domain.enums import AIAction, BuyingStage
from fullhouse_agent.domain.models import LeadScore
from fullhouse_agent.services.audit_log import AuditLog

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100


def clamp_score(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, int(value)))


class ScoreEngine:
    """Apply score deltas to a conversation's LeadScore row."""

    def __init__(self, db: AsyncSession, policy: ScorePolicy | None = None):
        self.db = db
        self.policy = policy or ScorePolicy()
        self.audit = AuditLog(db)

    async def get_lead_score(self, conversation_id: str) -> LeadScore | None:
        result = await self.db.execute(
            select(LeadScore).where(LeadScore.conversation_id == conversation_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def upsert_lead_score(
        self,
        conversation_id: str,
        organization_id: str,
        delta: int,
        buying_stage: str | None = None,
        factors: dict | None = None,
        message_id: str | None = None,
    ) -> LeadScore:
        """Add ``delta`` to the score, clamped to [0, 100].

        The temperature is recomputed from the new score; the buying stage
        comes from the extractor when given, else the stored one is kept.
        """
        lead = await self.get_lead_score(conversation_id)
        old_score = lead.score if lead and lead.score is not None else 0
        new_score = clamp_score(old_score + delta)
        now = datetime.now(timezone.utc)

        entry = {
            "score": new_score,
            "timestamp": now.isoformat(),
            "reason": f"Delta: {'+' if delta > 0 else ''}{delta}",
        }

        if lead is None:
            lead = LeadScore(
                conversation_id=conversation_id,
                organization_id=organization_id,
                score=new_score,
                temperature=self.policy.temperature(new_score),
                buying_stage=buying_stage or BuyingStage.AWARENESS.value,
                factors=dict(factors or {}),
                score_history=[entry],
            )
            self.db.add(lead)
        else:
            history = list(lead.score_history or []) + [entry]
            lead.score = new_score
            lead.temperature = self.policy.temperature(new_score)
            lead.buying_stage = buying_stage or lead.buying_stage or BuyingStage.AWARENESS.value
            # Reassign JSON columns so the change is tracked
            lead.factors = {**(lead.factors or {}), **(factors or {})}
            lead.score_history = history[-self.policy.history_limit:]
            lead.updated_at = now

        await self.db.flush()

        await self.audit.record(
            conversation_id,
            organization_id,
            AIAction.LEAD_SCORE_UPDATED,
            {"delta": delta, "new_score": new_score, "temperature": lead.temperature},
            message_id=message_id,
        )
        return lead
