"""Memory store — durable facts about the contact, keyed per conversation."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.domain.models import ChatMemory
from fullhouse_agent.domain.schemas import ExtractedMemory
from fullhouse_agent.services.audit_log import AuditLog

logger = logging.getLogger(__name__)


class MemoryService:
    """Upsert and read ChatMemory rows.

    A fact is unique per (conversation_id, memory_type, key); writing the
    same triple again overwrites the value (last write wins).
    """

    def __init__(self, db: AsyncSession, max_per_type: int | None = None):
        self.db = db
        self.max_per_type = max_per_type
        self.audit = AuditLog(db)

    async def get_memories(self, conversation_id: str) -> list[ChatMemory]:
        result = await self.db.execute(
            select(ChatMemory)
            .where(ChatMemory.conversation_id == conversation_id)
            .order_by(ChatMemory.memory_type, ChatMemory.updated_at.desc())
        )
        return list(result.scalars().all())

    async def upsert(
        self,
        conversation_id: str,
        organization_id: str,
        memory_type: str,
        key: str,
        value: str,
        context: str | None = None,
        confidence: float = 0.7,
        source_message_id: str | None = None,
    ) -> ChatMemory:
        result = await self.db.execute(
            select(ChatMemory).where(
                ChatMemory.conversation_id == conversation_id,
                ChatMemory.memory_type == memory_type,
                ChatMemory.key == key,
            ).limit(1)
        )
        memory = result.scalar_one_or_none()

        if memory:
            memory.value = value
            memory.context = context
            memory.confidence = confidence
            memory.source_message_id = source_message_id
            memory.updated_at = datetime.now(timezone.utc)
        else:
            memory = ChatMemory(
                conversation_id=conversation_id,
                organization_id=organization_id,
                memory_type=memory_type,
                key=key,
                value=value,
                context=context,
                confidence=confidence,
                source_message_id=source_message_id,
            )
            self.db.add(memory)

        await self.db.flush()
        await self._evict_overflow(conversation_id, memory_type)
        return memory

    async def _evict_overflow(self, conversation_id: str, memory_type: str) -> None:
        """Keep only the newest ``max_per_type`` facts of one type."""
        if not self.max_per_type:
            return
        result = await self.db.execute(
            select(ChatMemory)
            .where(
                ChatMemory.conversation_id == conversation_id,
                ChatMemory.memory_type == memory_type,
            )
            .order_by(ChatMemory.updated_at.desc())
            .offset(self.max_per_type)
        )
        stale = result.scalars().all()
        for memory in stale:
            await self.db.delete(memory)
        if stale:
            await self.db.flush()
            logger.info(
                "Evicted %d old '%s' memories for conversation %s",
                len(stale), memory_type, conversation_id,
            )

    async def save_extracted_memories(
        self,
        conversation_id: str,
        organization_id: str,
        memories: list[ExtractedMemory],
        source_message_id: str | None = None,
    ) -> list[ChatMemory]:
        """Persist each extracted fact; a failing fact doesn't block the rest."""
        saved = []
        for extracted in memories:
            if not extracted.key or not extracted.value:
                continue
            try:
                async with self.db.begin_nested():
                    memory = await self.upsert(
                        conversation_id=conversation_id,
                        organization_id=organization_id,
                        memory_type=extracted.memory_type,
                        key=extracted.key,
                        value=extracted.value,
                        context=extracted.context,
                        confidence=extracted.confidence,
                        source_message_id=source_message_id,
                    )
                saved.append(memory)
            except Exception as e:
                logger.error("Failed to save memory %s for %s: %s", extracted.key, conversation_id, e)

        if saved:
            await self.audit.record(
                conversation_id,
                organization_id,
                AIAction.MEMORY_EXTRACTED,
                {"count": len(saved), "keys": [m.key for m in saved]},
                message_id=source_message_id,
            )
        return saved
