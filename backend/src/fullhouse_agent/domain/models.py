"""WhatsApp agent domain models.

Tables are grouped the way the pipeline touches them: channel + conversation
rows written by the webhook, per-instance agent configuration, the read-only
CRM collaborator, and the intelligence tables (memory, score, labels,
follow-ups, summaries, audit log) mutated by the agent pipeline.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from fullhouse_agent.infra.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Channel + conversation
# ---------------------------------------------------------------------------

class WhatsAppInstance(Base):
    __tablename__ = "whatsapp_instances"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    instance_id = Column(String(100), nullable=False)  # Z-API instance id
    instance_token = Column(String(200), nullable=False)
    client_token = Column(String(200), nullable=True)
    phone = Column(String(30), nullable=True)
    status = Column(String(20), default="disconnected")
    ai_enabled = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class WhatsAppConversation(Base):
    __tablename__ = "whatsapp_conversations"

    id = Column(String(36), primary_key=True, default=_uuid)
    instance_id = Column(String(36), ForeignKey("whatsapp_instances.id"), nullable=False, index=True)
    organization_id = Column(String(36), nullable=False, index=True)
    phone = Column(String(30), nullable=False, index=True)
    contact_name = Column(String(200), nullable=True)
    contact_id = Column(String(36), ForeignKey("contacts.id"), nullable=True)
    ai_active = Column(Boolean, default=True)
    ai_pause_reason = Column(String(200), nullable=True)
    ai_paused_at = Column(DateTime, nullable=True)
    unread_count = Column(Integer, default=0)
    last_message_text = Column(String(255), nullable=True)
    last_message_at = Column(DateTime, nullable=True)
    last_message_from_me = Column(Boolean, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class WhatsAppMessage(Base):
    __tablename__ = "whatsapp_messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("whatsapp_conversations.id"), nullable=False, index=True)
    organization_id = Column(String(36), nullable=False)
    zapi_message_id = Column(String(100), nullable=True, index=True)
    from_me = Column(Boolean, default=False)
    message_type = Column(String(20), default="text")
    text_body = Column(Text, nullable=True)
    status = Column(String(20), default="received")
    sent_by = Column(String(20), default="customer")  # customer, human, ai_agent
    whatsapp_timestamp = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)


# ---------------------------------------------------------------------------
# Agent configuration
# ---------------------------------------------------------------------------

class WhatsAppAIConfig(Base):
    __tablename__ = "whatsapp_ai_configs"

    id = Column(String(36), primary_key=True, default=_uuid)
    instance_id = Column(String(36), ForeignKey("whatsapp_instances.id"), nullable=False, unique=True)
    organization_id = Column(String(36), nullable=False)

    # Persona
    agent_name = Column(String(100), default="Assistente")
    agent_role = Column(String(200), nullable=True)
    agent_tone = Column(String(50), default="professional")
    system_prompt = Column(Text, default="")

    # Behaviour
    reply_delay_ms = Column(Integer, default=0)
    max_messages_per_conversation = Column(Integer, nullable=True)
    auto_pause_on_human_reply = Column(Boolean, default=True)
    greeting_message = Column(Text, nullable=True)
    transfer_message = Column(Text, nullable=True)
    working_hours_start = Column(String(5), nullable=True)  # "HH:MM"
    working_hours_end = Column(String(5), nullable=True)
    working_days = Column(JSON, default=lambda: [1, 2, 3, 4, 5])  # 0=Sunday
    outside_hours_message = Column(Text, nullable=True)

    # CRM linking
    auto_create_contact = Column(Boolean, default=False)
    auto_create_deal = Column(Boolean, default=False)
    default_board_id = Column(String(36), nullable=True)
    default_stage_id = Column(String(36), nullable=True)
    default_tags = Column(JSON, default=list)

    # Intelligence features
    memory_enabled = Column(Boolean, default=True)
    lead_scoring_enabled = Column(Boolean, default=True)
    auto_label_enabled = Column(Boolean, default=True)
    follow_up_enabled = Column(Boolean, default=True)
    smart_pause_enabled = Column(Boolean, default=True)
    summary_enabled = Column(Boolean, default=True)
    follow_up_default_delay_minutes = Column(Integer, default=30)
    follow_up_max_per_conversation = Column(Integer, default=3)
    follow_up_quiet_hours_start = Column(String(5), nullable=True)
    follow_up_quiet_hours_end = Column(String(5), nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class OrganizationAISettings(Base):
    __tablename__ = "organization_ai_settings"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), nullable=False, unique=True)
    ai_provider = Column(String(20), default="google")
    ai_model = Column(String(100), nullable=True)
    ai_google_key = Column(String(200), nullable=True)
    ai_openai_key = Column(String(200), nullable=True)
    ai_anthropic_key = Column(String(200), nullable=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# CRM collaborator
# ---------------------------------------------------------------------------

class Contact(Base):
    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(30), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    status = Column(String(30), default="ACTIVE")
    stage = Column(String(30), default="LEAD")
    source = Column(String(30), nullable=True)
    total_value = Column(Float, default=0.0)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, default=list)
    created_at = Column(DateTime, default=func.now())


class BoardStage(Base):
    __tablename__ = "board_stages"

    id = Column(String(36), primary_key=True, default=_uuid)
    board_id = Column(String(36), nullable=False, index=True)
    label = Column(String(100), nullable=False)
    order = Column(Integer, default=0)


class Deal(Base):
    __tablename__ = "deals"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), nullable=False, index=True)
    contact_id = Column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    board_id = Column(String(36), nullable=True)
    stage_id = Column(String(36), ForeignKey("board_stages.id"), nullable=True)
    title = Column(String(200), nullable=False)
    value = Column(Float, default=0.0)
    priority = Column(String(20), default="medium")
    status = Column(String(20), default="open")  # open, won, lost
    tags = Column(JSON, default=list)
    created_at = Column(DateTime, default=utcnow)


# ---------------------------------------------------------------------------
# Intelligence
# ---------------------------------------------------------------------------

class ChatMemory(Base):
    __tablename__ = "chat_memories"
    __table_args__ = (
        UniqueConstraint("conversation_id", "memory_type", "key", name="uq_chat_memory_key"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("whatsapp_conversations.id"), nullable=False, index=True)
    organization_id = Column(String(36), nullable=False)
    memory_type = Column(String(20), nullable=False)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=False)
    context = Column(Text, nullable=True)
    confidence = Column(Float, default=0.7)
    source_message_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class LeadScore(Base):
    __tablename__ = "lead_scores"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("whatsapp_conversations.id"), nullable=False, unique=True)
    organization_id = Column(String(36), nullable=False)
    score = Column(Integer, default=0)
    temperature = Column(String(20), default="cold")
    buying_stage = Column(String(30), default="awareness")
    factors = Column(JSON, default=dict)
    score_history = Column(JSON, default=list)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class WhatsAppLabel(Base):
    __tablename__ = "whatsapp_labels"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_label_org_name"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    color = Column(String(10), default="#6b7280")
    icon = Column(String(30), nullable=True)
    description = Column(String(200), nullable=True)
    is_system = Column(Boolean, default=False)
    sort_order = Column(Integer, default=0)
    auto_assign = Column(Boolean, default=True)


class ConversationLabel(Base):
    __tablename__ = "whatsapp_conversation_labels"
    __table_args__ = (
        UniqueConstraint("conversation_id", "label_id", name="uq_conversation_label"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("whatsapp_conversations.id"), nullable=False, index=True)
    label_id = Column(String(36), ForeignKey("whatsapp_labels.id"), nullable=False)
    assigned_by = Column(String(20), default="ai")
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class WhatsAppFollowUp(Base):
    __tablename__ = "whatsapp_follow_ups"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("whatsapp_conversations.id"), nullable=False, index=True)
    instance_id = Column(String(36), ForeignKey("whatsapp_instances.id"), nullable=False)
    organization_id = Column(String(36), nullable=False)
    trigger_at = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), default="pending", index=True)
    follow_up_type = Column(String(20), default="smart")
    detected_intent = Column(String(50), nullable=True)
    intent_confidence = Column(Float, nullable=True)
    context = Column(JSON, default=dict)
    original_customer_message = Column(Text, nullable=True)
    original_message_id = Column(String(36), nullable=True)
    ai_generated_message = Column(Text, nullable=True)
    sent_message_id = Column(String(36), nullable=True)
    retry_count = Column(Integer, default=0)
    max_retries = Column(Integer, default=2)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ConversationSummary(Base):
    __tablename__ = "whatsapp_conversation_summaries"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("whatsapp_conversations.id"), nullable=False, index=True)
    organization_id = Column(String(36), nullable=False)
    summary = Column(Text, nullable=False)
    key_points = Column(JSON, default=list)
    next_actions = Column(JSON, default=list)
    customer_sentiment = Column(String(20), default="neutral")
    trigger_reason = Column(String(30), default="periodic")
    created_at = Column(DateTime, default=utcnow)


class AILog(Base):
    __tablename__ = "whatsapp_ai_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), nullable=False, index=True)
    organization_id = Column(String(36), nullable=False)
    action = Column(String(40), nullable=False, index=True)
    details = Column(JSON, default=dict)
    message_id = Column(String(36), nullable=True)
    triggered_by = Column(String(20), default="ai")
    created_at = Column(DateTime, default=utcnow)
