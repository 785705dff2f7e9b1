"""Tests for SummaryAgent and the detached summary worker."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from fullhouse_agent.agents.base import ERROR_PARSE
from fullhouse_agent.agents.whatsapp.summary_agent import SummaryAgent
from fullhouse_agent.domain.models import ConversationSummary
from fullhouse_agent.domain.schemas import SummaryDigest
from fullhouse_agent.services import summary_worker

DIGEST_JSON = json.dumps({
    "summary": "Cliente quer um sofá retrátil e vai consultar a esposa.",
    "key_points": ["sofá retrátil", "orçamento R$ 5 mil"],
    "next_actions": ["enviar catálogo"],
    "sentiment": "positive",
})


def _provider(**kwargs):
    provider = MagicMock()
    provider.name.value = "google"
    provider.generate = AsyncMock(**kwargs)
    return provider


async def _summaries(session_factory):
    async with session_factory() as db:
        result = await db.execute(select(ConversationSummary))
        return list(result.scalars().all())


class TestSummaryAgent:

    async def test_returns_digest(self, make_agent_config):
        provider = _provider(return_value=DIGEST_JSON)
        with patch("fullhouse_agent.agents.base.get_provider", return_value=provider):
            result = await SummaryAgent(make_agent_config()).summarize("Cliente: Oi", "- [family] esposa: Joana")

        assert result.ok is True
        assert isinstance(result.data, SummaryDigest)
        assert result.data.next_actions == ["enviar catálogo"]
        prompt = provider.generate.call_args.args[0][-1].content
        assert "- [family] esposa: Joana" in prompt
        assert "Cliente: Oi" in prompt

    async def test_wrong_shape_is_parse_error(self, make_agent_config):
        provider = _provider(return_value=json.dumps({"key_points": "não é lista"}))
        with patch("fullhouse_agent.agents.base.get_provider", return_value=provider):
            result = await SummaryAgent(make_agent_config()).summarize("Cliente: Oi")
        assert result.ok is False
        assert result.error_kind == ERROR_PARSE


class TestShouldRun:

    @pytest.mark.parametrize("count,expected", [(0, False), (1, False), (9, False), (10, True), (20, True)])
    def test_every_tenth_inbound(self, make_agent_config, count, expected):
        assert summary_worker.should_run(make_agent_config(), count) is expected

    def test_disabled(self, make_agent_config):
        assert summary_worker.should_run(make_agent_config(summary_enabled=False), 10) is False


class TestRunSummary:

    async def test_stores_digest(self, session_factory, make_agent_config):
        with patch("fullhouse_agent.agents.base.get_provider", return_value=_provider(return_value=DIGEST_JSON)):
            summary = await summary_worker.run_summary(
                make_agent_config(), "conv-1", "org-1", "Cliente: Oi", session_factory=session_factory,
            )

        assert summary is not None
        stored = await _summaries(session_factory)
        assert len(stored) == 1
        assert stored[0].trigger_reason == "periodic"
        assert stored[0].customer_sentiment == "positive"
        assert stored[0].key_points == ["sofá retrátil", "orçamento R$ 5 mil"]

    async def test_no_credential_stores_nothing(self, session_factory, make_agent_config):
        summary = await summary_worker.run_summary(
            make_agent_config(api_key=None), "conv-1", "org-1", "Cliente: Oi", session_factory=session_factory,
        )
        assert summary is None
        assert await _summaries(session_factory) == []

    async def test_provider_failure_is_swallowed(self, session_factory, make_agent_config):
        provider = _provider(side_effect=RuntimeError("503"))
        with patch("fullhouse_agent.agents.base.get_provider", return_value=provider):
            summary = await summary_worker.run_summary(
                make_agent_config(), "conv-1", "org-1", "Cliente: Oi", session_factory=session_factory,
            )
        assert summary is None
        assert await _summaries(session_factory) == []

    async def test_storage_failure_is_swallowed(self, make_agent_config):
        def broken_factory():
            raise RuntimeError("database is locked")

        with patch("fullhouse_agent.agents.base.get_provider", return_value=_provider(return_value=DIGEST_JSON)):
            summary = await summary_worker.run_summary(
                make_agent_config(), "conv-1", "org-1", "Cliente: Oi", session_factory=broken_factory,
            )
        assert summary is None


class TestSchedule:

    async def test_schedule_then_drain(self, session_factory, make_agent_config):
        with patch("fullhouse_agent.agents.base.get_provider", return_value=_provider(return_value=DIGEST_JSON)):
            task = summary_worker.schedule(
                make_agent_config(), "conv-1", "org-1", "Cliente: Oi", session_factory=session_factory,
            )
            assert task in summary_worker._background_tasks
            await summary_worker.drain()

        assert task.done()
        assert not summary_worker._background_tasks
        assert len(await _summaries(session_factory)) == 1
