"""Tests for MemoryService — upsert semantics, eviction and audit."""

from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.domain.schemas import ExtractedMemory
from fullhouse_agent.services.audit_log import AuditLog
from fullhouse_agent.services.memory_service import MemoryService


class TestUpsert:

    async def test_same_key_overwrites(self, db_session, seeded_conversation):
        _, _, conversation = seeded_conversation
        service = MemoryService(db_session)

        await service.upsert(conversation.id, conversation.organization_id, "budget", "orcamento", "R$ 3 mil")
        await service.upsert(conversation.id, conversation.organization_id, "budget", "orcamento", "R$ 5 mil")

        memories = await service.get_memories(conversation.id)
        assert len(memories) == 1
        assert memories[0].value == "R$ 5 mil"

    async def test_same_key_different_type_is_separate(self, db_session, seeded_conversation):
        _, _, conversation = seeded_conversation
        service = MemoryService(db_session)

        await service.upsert(conversation.id, conversation.organization_id, "family", "nome", "Joana")
        await service.upsert(conversation.id, conversation.organization_id, "personal", "nome", "Maria")

        memories = await service.get_memories(conversation.id)
        assert sorted(m.memory_type for m in memories) == ["family", "personal"]

    async def test_evicts_oldest_beyond_cap(self, db_session, seeded_conversation):
        _, _, conversation = seeded_conversation
        service = MemoryService(db_session, max_per_type=2)

        for key in ("sofa", "mesa", "cadeira"):
            await service.upsert(conversation.id, conversation.organization_id, "interest", key, "sim")

        keys = {m.key for m in await service.get_memories(conversation.id)}
        assert keys == {"mesa", "cadeira"}

    async def test_cap_is_per_type(self, db_session, seeded_conversation):
        _, _, conversation = seeded_conversation
        service = MemoryService(db_session, max_per_type=1)

        await service.upsert(conversation.id, conversation.organization_id, "interest", "sofa", "sim")
        await service.upsert(conversation.id, conversation.organization_id, "budget", "orcamento", "5000")

        assert len(await service.get_memories(conversation.id)) == 2


class TestSaveExtractedMemories:

    async def test_saves_all_and_audits_once(self, db_session, seeded_conversation):
        _, _, conversation = seeded_conversation
        service = MemoryService(db_session)

        saved = await service.save_extracted_memories(
            conversation.id,
            conversation.organization_id,
            [
                ExtractedMemory(memory_type="family", key="esposa", value="Joana"),
                ExtractedMemory(memory_type="budget", key="orcamento", value="5000"),
            ],
            source_message_id="msg-1",
        )

        assert len(saved) == 2
        assert all(m.source_message_id == "msg-1" for m in saved)
        logs = await AuditLog(db_session).list_for_conversation(conversation.id, AIAction.MEMORY_EXTRACTED.value)
        assert len(logs) == 1
        assert logs[0].details == {"count": 2, "keys": ["esposa", "orcamento"]}
        assert logs[0].message_id == "msg-1"

    async def test_blank_values_are_skipped_without_audit(self, db_session, seeded_conversation):
        _, _, conversation = seeded_conversation
        service = MemoryService(db_session)

        saved = await service.save_extracted_memories(
            conversation.id,
            conversation.organization_id,
            [ExtractedMemory(memory_type="fact", key="cidade", value="")],
        )

        assert saved == []
        assert await AuditLog(db_session).list_for_conversation(conversation.id) == []

    async def test_failing_fact_does_not_block_the_rest(self, db_session, seeded_conversation):
        _, _, conversation = seeded_conversation
        conversation_id = conversation.id
        service = MemoryService(db_session)

        saved = await service.save_extracted_memories(
            conversation_id,
            conversation.organization_id,
            [
                # Skips validation, so the NOT NULL memory_type column rejects it
                ExtractedMemory.model_construct(
                    memory_type=None, key="cidade", value="Campinas", context=None, confidence=0.7,
                ),
                ExtractedMemory(memory_type="budget", key="orcamento", value="5000"),
            ],
            source_message_id="msg-1",
        )
        await db_session.commit()

        assert [m.key for m in saved] == ["orcamento"]
        memories = await service.get_memories(conversation_id)
        assert [(m.memory_type, m.key) for m in memories] == [("budget", "orcamento")]
        logs = await AuditLog(db_session).list_for_conversation(conversation_id, AIAction.MEMORY_EXTRACTED.value)
        assert logs[0].details == {"count": 1, "keys": ["orcamento"]}
