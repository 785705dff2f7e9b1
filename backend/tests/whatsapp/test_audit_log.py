"""Tests for the AuditLog sink."""

from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.services.audit_log import AuditLog


class TestAuditLog:

    async def test_record_and_filter(self, db_session, seeded_conversation):
        _, _, conversation = seeded_conversation
        audit = AuditLog(db_session)

        await audit.record(conversation.id, conversation.organization_id, AIAction.LABEL_ASSIGNED, {"label": "Lead"})
        await audit.record(conversation.id, conversation.organization_id, AIAction.REPLIED, message_id="m-1")

        replied = await audit.list_for_conversation(conversation.id, AIAction.REPLIED.value)
        assert [(log.action, log.message_id, log.triggered_by) for log in replied] == [("replied", "m-1", "ai")]
        assert len(await audit.list_for_conversation(conversation.id)) == 2

    async def test_failed_write_leaves_session_usable(self, db_session, seeded_conversation):
        _, _, conversation = seeded_conversation
        conversation_id = conversation.id
        organization_id = conversation.organization_id
        audit = AuditLog(db_session)

        # organization_id is NOT NULL
        assert await audit.record(conversation_id, None, AIAction.REPLIED) is None

        entry = await audit.record(conversation_id, organization_id, AIAction.REPLIED, {"response_length": 3})
        await db_session.commit()

        assert entry is not None
        logs = await audit.list_for_conversation(conversation_id)
        assert [log.details for log in logs] == [{"response_length": 3}]
