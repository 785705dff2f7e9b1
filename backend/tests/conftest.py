"""Shared test infrastructure for the WhatsApp agent test suite.

Provides:
- session_factory / db_session: async SQLite in-memory database with all tables
- fake_gateway: stand-in for ZAPIClient capturing outbound messages
- make_agent_config: AgentConfig builder for unit tests (no DB)
- make_instance, make_ai_config, make_org_settings, make_conversation,
  make_message: row factories
- seeded_conversation: instance + AI config + org key + conversation
"""

import itertools
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import Base first, then models to register all tables
from fullhouse_agent.infra.database import Base

import fullhouse_agent.domain.models  # noqa: F401

from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.errors import GatewaySendFailure
from fullhouse_agent.domain.models import (
    OrganizationAISettings,
    WhatsAppAIConfig,
    WhatsAppConversation,
    WhatsAppInstance,
    WhatsAppMessage,
)
from fullhouse_agent.infra.zapi_client import GatewayCredentials

ORG_ID = "org-test-0001"
ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def session_factory():
    """Fresh in-memory database per test; every session shares one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    """Async SQLite in-memory session with all tables created."""
    async with session_factory() as session:
        yield session
        await session.rollback()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@pytest.fixture
def as_utc():
    """SQLite hands back naive datetimes; this normalizes them to aware UTC."""
    return _as_utc


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class FakeGateway:
    """ZAPIClient stand-in. Appends (phone, message) to ``sent``."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str]] = []
        self._ids = itertools.count(1)

    async def send_text(self, credentials: GatewayCredentials, phone: str, message: str) -> dict:
        if self.fail:
            raise GatewaySendFailure("Z-API returned 500", status_code=500)
        self.sent.append((phone, message))
        provider_id = f"zapi-{next(self._ids)}"
        return {"provider_message_id": provider_id, "raw": {"zapiMessageId": provider_id}}

    @property
    def texts(self) -> list[str]:
        return [message for _, message in self.sent]


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def failing_gateway():
    return FakeGateway(fail=True)


# ---------------------------------------------------------------------------
# AgentConfig (no DB)
# ---------------------------------------------------------------------------

@pytest.fixture
def make_agent_config():
    """Usage: ``config = make_agent_config(api_key=None, transfer_message="...")``"""
    def _factory(**overrides) -> AgentConfig:
        fields = {
            "instance_id": "instance-1",
            "organization_id": ORG_ID,
            "agent_name": "Ana",
            "working_days": tuple(ALL_DAYS),
            "api_key": "test-key",
        }
        fields.update(overrides)
        return AgentConfig(**fields)

    return _factory


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_instance(db_session):
    async def _factory(**overrides) -> WhatsAppInstance:
        fields = {
            "id": str(uuid.uuid4()),
            "organization_id": ORG_ID,
            "name": "Loja Centro",
            "instance_id": "ZAPI-INSTANCE",
            "instance_token": "ZAPI-TOKEN",
            "client_token": "CLIENT-TOKEN",
            "status": "connected",
            "ai_enabled": True,
        }
        fields.update(overrides)
        instance = WhatsAppInstance(**fields)
        db_session.add(instance)
        await db_session.flush()
        return instance

    return _factory


@pytest.fixture
def make_ai_config(db_session):
    async def _factory(instance: WhatsAppInstance, **overrides) -> WhatsAppAIConfig:
        fields = {
            "instance_id": instance.id,
            "organization_id": instance.organization_id,
            "agent_name": "Ana",
            "agent_tone": "friendly",
            "system_prompt": "Você atende clientes de uma loja de móveis.",
            "working_days": ALL_DAYS,
        }
        fields.update(overrides)
        config = WhatsAppAIConfig(**fields)
        db_session.add(config)
        await db_session.flush()
        return config

    return _factory


@pytest.fixture
def make_org_settings(db_session):
    async def _factory(**overrides) -> OrganizationAISettings:
        fields = {
            "organization_id": ORG_ID,
            "ai_provider": "google",
            "ai_google_key": "test-google-key",
        }
        fields.update(overrides)
        settings = OrganizationAISettings(**fields)
        db_session.add(settings)
        await db_session.flush()
        return settings

    return _factory


@pytest.fixture
def make_conversation(db_session):
    async def _factory(instance: WhatsAppInstance, **overrides) -> WhatsAppConversation:
        fields = {
            "instance_id": instance.id,
            "organization_id": instance.organization_id,
            "phone": "5511999990000",
            "contact_name": "Maria",
            "ai_active": True,
        }
        fields.update(overrides)
        conversation = WhatsAppConversation(**fields)
        db_session.add(conversation)
        await db_session.flush()
        return conversation

    return _factory


@pytest.fixture
def make_message(db_session):
    """Messages get increasing ``created_at`` so history order is deterministic."""
    clock = itertools.count()
    base = datetime.now(timezone.utc) - timedelta(hours=1)

    async def _factory(conversation: WhatsAppConversation, text: str, from_me: bool = False, **overrides):
        fields = {
            "conversation_id": conversation.id,
            "organization_id": conversation.organization_id,
            "from_me": from_me,
            "text_body": text,
            "status": "sent" if from_me else "received",
            "sent_by": "ai_agent" if from_me else "customer",
            "created_at": base + timedelta(seconds=next(clock)),
        }
        fields.update(overrides)
        message = WhatsAppMessage(**fields)
        db_session.add(message)
        await db_session.flush()
        return message

    return _factory


@pytest.fixture
async def seeded_conversation(db_session, make_instance, make_ai_config, make_org_settings, make_conversation):
    """Connected, AI-enabled instance with config, provider key and one conversation.

    Returns ``(instance, ai_config, conversation)``.
    """
    instance = await make_instance()
    ai_config = await make_ai_config(instance)
    await make_org_settings()
    conversation = await make_conversation(instance)
    await db_session.commit()
    return instance, ai_config, conversation
