"""Tests for OutboundDispatcher and the Z-API client."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import select

from fullhouse_agent.domain.errors import GatewaySendFailure, PersistenceFailure
from fullhouse_agent.domain.models import WhatsAppMessage
from fullhouse_agent.infra.zapi_client import GatewayCredentials, ZAPIClient
from fullhouse_agent.services.outbound_dispatcher import OutboundDispatcher

CREDENTIALS = GatewayCredentials(instance_id="ZAPI-INSTANCE", token="ZAPI-TOKEN", client_token="CLIENT-TOKEN")


async def _messages(db):
    result = await db.execute(select(WhatsAppMessage))
    return list(result.scalars().all())


class TestOutboundDispatcher:

    async def test_success_persists_message_and_touches_conversation(
        self, db_session, seeded_conversation, fake_gateway,
    ):
        _, _, conversation = seeded_conversation
        dispatcher = OutboundDispatcher(db_session, CREDENTIALS, gateway=fake_gateway)

        message = await dispatcher.dispatch(conversation, "Olá Maria!")

        assert message is not None
        assert message.from_me is True
        assert message.sent_by == "ai_agent"
        assert message.status == "sent"
        assert message.zapi_message_id == "zapi-1"
        assert fake_gateway.sent == [("5511999990000", "Olá Maria!")]
        assert conversation.last_message_text == "Olá Maria!"
        assert conversation.last_message_from_me is True

    async def test_failure_persists_nothing(self, db_session, seeded_conversation, failing_gateway):
        _, _, conversation = seeded_conversation
        dispatcher = OutboundDispatcher(db_session, CREDENTIALS, gateway=failing_gateway)

        assert await dispatcher.dispatch(conversation, "Olá!") is None
        assert await _messages(db_session) == []
        assert conversation.last_message_text is None

    async def test_unstored_send_raises_and_keeps_session_usable(
        self, db_session, seeded_conversation, fake_gateway,
    ):
        _, _, conversation = seeded_conversation
        dispatcher = OutboundDispatcher(db_session, CREDENTIALS, gateway=fake_gateway)

        with patch.object(dispatcher.store, "insert_message", new=AsyncMock(side_effect=RuntimeError("disk full"))):
            with pytest.raises(PersistenceFailure, match="disk full"):
                await dispatcher.dispatch(conversation, "Olá!")

        assert fake_gateway.texts == ["Olá!"]
        assert await _messages(db_session) == []
        assert conversation.last_message_text is None

        assert await dispatcher.dispatch(conversation, "De novo") is not None
        assert conversation.last_message_text == "De novo"

    async def test_empty_text_is_not_sent(self, db_session, seeded_conversation, fake_gateway):
        _, _, conversation = seeded_conversation
        dispatcher = OutboundDispatcher(db_session, CREDENTIALS, gateway=fake_gateway)
        assert await dispatcher.dispatch(conversation, "") is None
        assert fake_gateway.sent == []

    async def test_sent_by_override(self, db_session, seeded_conversation, fake_gateway):
        _, _, conversation = seeded_conversation
        dispatcher = OutboundDispatcher(db_session, CREDENTIALS, gateway=fake_gateway)
        message = await dispatcher.dispatch(conversation, "Oi", sent_by="human")
        assert message.sent_by == "human"


class TestZAPIClient:

    async def test_send_text_posts_payload_with_client_token(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"zapiMessageId": "Z1", "messageId": "M1"})

        client = ZAPIClient(base_url="https://zapi.test/", transport=httpx.MockTransport(handler))
        result = await client.send_text(CREDENTIALS, "5511999990000", "Oi")

        assert result["provider_message_id"] == "Z1"
        assert captured["url"] == "https://zapi.test/instances/ZAPI-INSTANCE/token/ZAPI-TOKEN/send-text"
        assert captured["headers"]["Client-Token"] == "CLIENT-TOKEN"
        assert captured["body"] == {"phone": "5511999990000", "message": "Oi"}

    async def test_no_client_token_header_when_absent(self):
        seen = {}

        def handler(request):
            seen["has_token"] = "Client-Token" in request.headers
            return httpx.Response(200, json={"messageId": "M1"})

        client = ZAPIClient(base_url="https://zapi.test", transport=httpx.MockTransport(handler))
        result = await client.send_text(
            GatewayCredentials(instance_id="I", token="T"), "5511", "Oi",
        )
        assert seen["has_token"] is False
        assert result["provider_message_id"] == "M1"

    async def test_error_status_raises(self):
        client = ZAPIClient(
            base_url="https://zapi.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(400, text="bad phone")),
        )
        with pytest.raises(GatewaySendFailure) as exc_info:
            await client.send_text(CREDENTIALS, "000", "Oi")
        assert exc_info.value.status_code == 400

    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = ZAPIClient(base_url="https://zapi.test", transport=httpx.MockTransport(handler))
        with pytest.raises(GatewaySendFailure):
            await client.send_text(CREDENTIALS, "5511", "Oi")

    async def test_non_json_body_yields_no_id(self):
        client = ZAPIClient(
            base_url="https://zapi.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="ok")),
        )
        result = await client.send_text(CREDENTIALS, "5511", "Oi")
        assert result == {"provider_message_id": None, "raw": {}}
