"""Domain enumerations for the WhatsApp agent pipeline.

All enums use the (str, Enum) pattern so they compare equal to the raw
strings stored in the database and serialize cleanly to JSON.
"""

from enum import Enum


class ProviderName(str, Enum):
    """LLM backends an organization can pick for its agent."""

    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class SenderClass(str, Enum):
    """Who produced a message."""

    CUSTOMER = "customer"
    HUMAN = "human"
    AI_AGENT = "ai_agent"


class MessageStatus(str, Enum):
    """Delivery status of a WhatsApp message."""

    PENDING = "pending"
    SENT = "sent"
    RECEIVED = "received"
    READ = "read"
    PLAYED = "played"
    DELETED = "deleted"
    FAILED = "failed"


class InstanceStatus(str, Enum):
    """Connection status of a Z-API channel instance."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class FollowUpStatus(str, Enum):
    """Lifecycle of a scheduled follow-up."""

    PENDING = "pending"
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"
    SKIPPED = "skipped"


class MemoryType(str, Enum):
    """Category of a remembered fact about the contact."""

    FACT = "fact"
    PREFERENCE = "preference"
    OBJECTION = "objection"
    FAMILY = "family"
    TIMELINE = "timeline"
    BUDGET = "budget"
    INTEREST = "interest"
    PERSONAL = "personal"
    INTERACTION = "interaction"


class Temperature(str, Enum):
    """Lead temperature bucket derived from the score."""

    COLD = "cold"
    WARM = "warm"
    HOT = "hot"
    ON_FIRE = "on_fire"


class BuyingStage(str, Enum):
    """Where the lead sits in the purchase journey."""

    AWARENESS = "awareness"
    INTEREST = "interest"
    CONSIDERATION = "consideration"
    DECISION = "decision"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"


class AIAction(str, Enum):
    """Audit trail actions written to ai_logs."""

    REPLIED = "replied"
    GREETING_SENT = "greeting_sent"
    OUTSIDE_HOURS = "outside_hours"
    SMART_PAUSED = "smart_paused"
    ESCALATED = "escalated"
    MEMORY_EXTRACTED = "memory_extracted"
    LEAD_SCORE_UPDATED = "lead_score_updated"
    LABEL_ASSIGNED = "label_assigned"
    FOLLOW_UP_SCHEDULED = "follow_up_scheduled"
    FOLLOW_UP_SENT = "follow_up_sent"
    CONTACT_CREATED = "contact_created"
    DEAL_CREATED = "deal_created"
    PARSE_ERROR = "parse_error"
    ERROR = "error"
