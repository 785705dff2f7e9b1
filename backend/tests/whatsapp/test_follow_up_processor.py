"""Tests for the follow-up processor and the follow-up writer."""

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fullhouse_agent.agents.whatsapp.follow_up_writer import FollowUpWriter
from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.domain.models import WhatsAppConversation, WhatsAppFollowUp
from fullhouse_agent.services.audit_log import AuditLog
from fullhouse_agent.services.conversation_locks import ConversationLockRegistry
from fullhouse_agent.services.follow_up_processor import (
    is_quiet_time,
    process_due,
    quiet_hours_resume_at,
)

# Monday 2026-10-19 in São Paulo (UTC-3)
LOCAL_23H = datetime(2026, 10, 20, 2, 0, tzinfo=timezone.utc)
LOCAL_07H = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)
LOCAL_12H = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


def _provider(**kwargs):
    provider = MagicMock()
    provider.name.value = "google"
    provider.generate = AsyncMock(**kwargs)
    return provider


@pytest.fixture
def make_follow_up(db_session):
    async def _factory(conversation, **overrides) -> WhatsAppFollowUp:
        fields = {
            "conversation_id": conversation.id,
            "instance_id": conversation.instance_id,
            "organization_id": conversation.organization_id,
            "trigger_at": datetime.now(timezone.utc) - timedelta(minutes=1),
            "status": "pending",
            "detected_intent": "check_with_spouse",
            "intent_confidence": 0.85,
            "context": {"context_for_message": "Vai falar com a esposa sobre o sofá"},
            "original_customer_message": "Vou falar com minha esposa",
        }
        fields.update(overrides)
        follow_up = WhatsAppFollowUp(**fields)
        db_session.add(follow_up)
        await db_session.commit()
        return follow_up

    return _factory


class TestQuietHours:

    def test_not_configured(self, make_agent_config):
        assert is_quiet_time(make_agent_config(), LOCAL_23H) is False

    @pytest.mark.parametrize("now,expected", [(LOCAL_23H, True), (LOCAL_07H, True), (LOCAL_12H, False)])
    def test_window_wraps_midnight(self, make_agent_config, now, expected):
        config = make_agent_config(follow_up_quiet_hours_start="22:00", follow_up_quiet_hours_end="08:00")
        assert is_quiet_time(config, now) is expected

    def test_same_day_window(self, make_agent_config):
        config = make_agent_config(follow_up_quiet_hours_start="12:00", follow_up_quiet_hours_end="14:00")
        assert is_quiet_time(config, LOCAL_12H) is True
        assert is_quiet_time(config, LOCAL_07H) is False

    def test_resume_later_today(self, make_agent_config):
        config = make_agent_config(follow_up_quiet_hours_start="22:00", follow_up_quiet_hours_end="08:00")
        assert quiet_hours_resume_at(config, LOCAL_07H) == datetime(2026, 10, 19, 11, 5, tzinfo=timezone.utc)

    def test_resume_next_day(self, make_agent_config):
        config = make_agent_config(follow_up_quiet_hours_start="22:00", follow_up_quiet_hours_end="08:00")
        # 23:00 local Monday -> 08:05 local Tuesday
        assert quiet_hours_resume_at(config, LOCAL_23H) == datetime(2026, 10, 20, 11, 5, tzinfo=timezone.utc)


class TestFollowUpWriter:

    async def test_uses_model_text(self, make_agent_config):
        provider = _provider(return_value="  Oi Maria! Conseguiu falar com a Joana?  ")
        follow_up = SimpleNamespace(
            context={"context_for_message": "Sofá retrátil", "urgency_hook": "promoção até sexta"},
            original_customer_message="Vou falar com minha esposa",
            detected_intent="check_with_spouse",
        )
        memories = [SimpleNamespace(memory_type="family", key="esposa", value="Joana")]

        with patch("fullhouse_agent.agents.base.get_provider", return_value=provider):
            text = await FollowUpWriter(make_agent_config(agent_tone="friendly")).write(follow_up, "Maria", memories)

        assert text == "Oi Maria! Conseguiu falar com a Joana?"
        prompt = provider.generate.call_args.args[0][0].content
        assert "Nome do cliente: Maria" in prompt
        assert "promoção até sexta" in prompt
        assert "Tom: friendly" in prompt
        assert "- [family] esposa: Joana" in prompt

    async def test_fallback_without_credential(self, make_agent_config):
        follow_up = SimpleNamespace(context={}, original_customer_message="", detected_intent=None)
        text = await FollowUpWriter(make_agent_config(api_key=None)).write(follow_up, "Maria", [])
        assert text == "Olá Maria! Tudo bem? Gostaria de retomar nossa conversa. Posso ajudar com algo?"

    async def test_fallback_on_provider_error(self, make_agent_config):
        follow_up = SimpleNamespace(context=None, original_customer_message=None, detected_intent=None)
        with patch("fullhouse_agent.agents.base.get_provider", return_value=_provider(side_effect=RuntimeError("x"))):
            text = await FollowUpWriter(make_agent_config()).write(follow_up, "", [])
        assert text == "Olá! Tudo bem? Gostaria de retomar nossa conversa. Posso ajudar com algo?"


class TestProcessDue:

    async def test_sends_stored_message(self, db_session, seeded_conversation, make_follow_up, fake_gateway):
        _, _, conversation = seeded_conversation
        conversation_id = conversation.id
        follow_up = await make_follow_up(conversation, ai_generated_message="Oi Maria, e aí, decidiram?")

        counts = await process_due(db_session, gateway=fake_gateway)

        assert counts == {"processed": 1, "sent": 1, "failed": 0, "skipped": 0}
        assert fake_gateway.texts == ["Oi Maria, e aí, decidiram?"]
        await db_session.refresh(follow_up)
        assert follow_up.status == "sent"
        assert follow_up.sent_message_id is not None

        logs = await AuditLog(db_session).list_for_conversation(conversation_id, AIAction.FOLLOW_UP_SENT.value)
        assert logs[0].details == {
            "follow_up_id": follow_up.id,
            "detected_intent": "check_with_spouse",
            "message_preview": "Oi Maria, e aí, decidiram?",
        }
        assert logs[0].message_id == follow_up.sent_message_id

    async def test_writes_message_when_missing(self, db_session, seeded_conversation, make_follow_up, fake_gateway):
        _, _, conversation = seeded_conversation
        follow_up = await make_follow_up(conversation)

        with patch("fullhouse_agent.agents.base.get_provider", return_value=_provider(return_value="Oi Maria!")):
            counts = await process_due(db_session, gateway=fake_gateway)

        assert counts["sent"] == 1
        assert fake_gateway.texts == ["Oi Maria!"]
        await db_session.refresh(follow_up)
        assert follow_up.ai_generated_message == "Oi Maria!"

    async def test_not_yet_due(self, db_session, seeded_conversation, make_follow_up, fake_gateway):
        _, _, conversation = seeded_conversation
        await make_follow_up(conversation, trigger_at=datetime.now(timezone.utc) + timedelta(hours=1))

        counts = await process_due(db_session, gateway=fake_gateway)

        assert counts["processed"] == 0
        assert fake_gateway.sent == []

    async def test_paused_conversation_cancels(self, db_session, seeded_conversation, make_follow_up, fake_gateway):
        _, _, conversation = seeded_conversation
        conversation.ai_active = False
        follow_up = await make_follow_up(conversation, ai_generated_message="Oi")

        counts = await process_due(db_session, gateway=fake_gateway)

        assert counts == {"processed": 1, "sent": 0, "failed": 0, "skipped": 1}
        await db_session.refresh(follow_up)
        assert follow_up.status == "cancelled"
        assert fake_gateway.sent == []

    async def test_disconnected_instance_fails(self, db_session, seeded_conversation, make_follow_up, fake_gateway):
        instance, _, conversation = seeded_conversation
        instance.status = "disconnected"
        follow_up = await make_follow_up(conversation, ai_generated_message="Oi")

        counts = await process_due(db_session, gateway=fake_gateway)

        assert counts["failed"] == 1
        await db_session.refresh(follow_up)
        assert follow_up.status == "failed"

    async def test_quiet_hours_reschedule(self, db_session, seeded_conversation, make_follow_up, fake_gateway, as_utc):
        _, ai_config, conversation = seeded_conversation
        ai_config.follow_up_quiet_hours_start = "00:00"
        ai_config.follow_up_quiet_hours_end = "23:59"
        follow_up = await make_follow_up(conversation, ai_generated_message="Oi")
        now = datetime.now(timezone.utc)

        counts = await process_due(db_session, now=now, gateway=fake_gateway)

        assert counts["skipped"] == 1
        assert fake_gateway.sent == []
        await db_session.refresh(follow_up)
        assert follow_up.status == "pending"
        assert as_utc(follow_up.trigger_at) > now

    async def test_gateway_failure_retries_then_fails(
        self, db_session, seeded_conversation, make_follow_up, failing_gateway,
    ):
        _, _, conversation = seeded_conversation
        follow_up = await make_follow_up(conversation, ai_generated_message="Oi", max_retries=2)
        follow_up_id = follow_up.id

        outcomes = []
        for _ in range(3):
            counts = await process_due(db_session, gateway=failing_gateway)
            row = await db_session.get(WhatsAppFollowUp, follow_up_id)
            await db_session.refresh(row)
            outcomes.append((counts["failed"], row.status, row.retry_count))

        assert outcomes == [(1, "pending", 1), (1, "pending", 2), (1, "failed", 2)]


class TestConversationLock:

    async def _run_while_locked(self, db_session, session_factory, conversation_id, gateway, change):
        """Start process_due while the conversation is locked, apply ``change`` from another session, release."""
        locks = ConversationLockRegistry()
        async with locks.lock(conversation_id):
            task = asyncio.create_task(process_due(db_session, gateway=gateway, locks=locks))
            await asyncio.sleep(0.05)
            assert not task.done()
            async with session_factory() as other:
                await change(other)
                await other.commit()
        return await task

    async def test_pause_during_agent_run_cancels(
        self, db_session, session_factory, seeded_conversation, make_follow_up, fake_gateway,
    ):
        _, _, conversation = seeded_conversation
        conversation_id = conversation.id
        follow_up = await make_follow_up(conversation, ai_generated_message="Oi")

        async def pause(other):
            row = await other.get(WhatsAppConversation, conversation_id)
            row.ai_active = False

        counts = await self._run_while_locked(db_session, session_factory, conversation_id, fake_gateway, pause)

        assert counts == {"processed": 1, "sent": 0, "failed": 0, "skipped": 1}
        assert fake_gateway.sent == []
        await db_session.refresh(follow_up)
        assert follow_up.status == "cancelled"

    async def test_follow_up_skipped_meanwhile_is_not_sent(
        self, db_session, session_factory, seeded_conversation, make_follow_up, fake_gateway,
    ):
        _, _, conversation = seeded_conversation
        follow_up = await make_follow_up(conversation, ai_generated_message="Oi")
        follow_up_id = follow_up.id

        async def skip(other):
            row = await other.get(WhatsAppFollowUp, follow_up_id)
            row.status = "skipped"

        counts = await self._run_while_locked(db_session, session_factory, conversation.id, fake_gateway, skip)

        assert counts["skipped"] == 1
        assert fake_gateway.sent == []
        await db_session.refresh(follow_up)
        assert follow_up.status == "skipped"

    async def test_unstored_delivery_is_not_retried(
        self, db_session, seeded_conversation, make_follow_up, fake_gateway,
    ):
        _, _, conversation = seeded_conversation
        follow_up = await make_follow_up(conversation, ai_generated_message="Oi")

        with patch(
            "fullhouse_agent.services.conversation_store.ConversationStore.insert_message",
            new=AsyncMock(side_effect=RuntimeError("disk full")),
        ):
            counts = await process_due(db_session, gateway=fake_gateway)

        assert counts["sent"] == 1
        assert fake_gateway.texts == ["Oi"]
        await db_session.refresh(follow_up)
        assert follow_up.status == "sent"
        assert follow_up.retry_count == 0
