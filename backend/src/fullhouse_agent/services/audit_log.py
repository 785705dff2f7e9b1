"""Audit sink for the agent's decision trail (whatsapp_ai_logs)."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.domain.models import AILog

logger = logging.getLogger(__name__)


class AuditLog:
    """Append-only writer for AILog rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        conversation_id: str,
        organization_id: str,
        action: AIAction | str,
        details: dict | None = None,
        message_id: str | None = None,
        triggered_by: str = "ai",
    ) -> AILog | None:
        """Insert one audit entry. A failing write is logged, never raised.

        The insert runs in a savepoint so a failed write leaves the caller's
        transaction usable.
        """
        action_value = action.value if isinstance(action, AIAction) else action
        try:
            async with self.db.begin_nested():
                entry = AILog(
                    conversation_id=conversation_id,
                    organization_id=organization_id,
                    action=action_value,
                    details=details or {},
                    message_id=message_id,
                    triggered_by=triggered_by,
                )
                self.db.add(entry)
            logger.info("AI log [%s] conversation=%s %s", action_value, conversation_id, details or {})
            return entry
        except Exception as e:
            logger.error("Failed to write AI log %s for %s: %s", action_value, conversation_id, e)
            return None

    async def list_for_conversation(self, conversation_id: str, action: str | None = None) -> list[AILog]:
        query = select(AILog).where(AILog.conversation_id == conversation_id)
        if action:
            query = query.where(AILog.action == action)
        result = await self.db.execute(query.order_by(AILog.created_at))
        return list(result.scalars().all())
