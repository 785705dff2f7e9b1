"""Pydantic v2 schemas: LLM structured output and the Z-API webhook payload."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fullhouse_agent.domain.enums import MemoryType


# ---------------------------------------------------------------------------
# Intelligence extraction (LLM structured output)
# ---------------------------------------------------------------------------


class DetectedIntent(BaseModel):
    """One classified purpose behind the customer's message."""

    intent: str
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    follow_up_delay_minutes: int | None = Field(
        default=None, description="Minutes until a follow-up should fire, null for none",
    )
    context: dict = Field(default_factory=dict)

    @field_validator("confidence", mode="before")
    @classmethod
    def _default_confidence(cls, value):
        # Models sometimes emit 0 or null for "unsure"
        if value in (None, 0, ""):
            return 0.7
        return max(0.0, min(1.0, float(value)))


class ExtractedMemory(BaseModel):
    """A durable fact about the contact worth remembering across turns."""

    memory_type: str = Field(default=MemoryType.FACT.value)
    key: str
    value: str
    context: str | None = None
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)

    @field_validator("memory_type", mode="before")
    @classmethod
    def _known_type(cls, value):
        allowed = {m.value for m in MemoryType}
        return value if value in allowed else MemoryType.FACT.value

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value):
        return value if isinstance(value, str) else str(value)


class FollowUpHint(BaseModel):
    """Optional follow-up guidance returned alongside the intents."""

    should_schedule: bool = False
    delay_minutes: int | None = None
    context_for_message: str | None = None
    urgency_hook: str | None = None


class IntelligenceBundle(BaseModel):
    """Everything extracted from one inbound message in a single LLM call."""

    intents: list[DetectedIntent] = Field(default_factory=list)
    memories: list[ExtractedMemory] = Field(default_factory=list)
    sentiment: str = "neutral"
    lead_score_delta: int = Field(default=0, description="-30 to +30")
    buying_stage: str | None = None
    suggested_labels: list[str] = Field(default_factory=list)
    should_pause: bool = False
    pause_reason: str | None = None
    follow_up: FollowUpHint | None = None
    summary: str | None = None

    @field_validator("lead_score_delta", mode="before")
    @classmethod
    def _int_delta(cls, value):
        if value in (None, ""):
            return 0
        return int(round(float(value)))

    @classmethod
    def empty(cls) -> "IntelligenceBundle":
        return cls()

    def with_summary_from_hint(self) -> "IntelligenceBundle":
        """Fill ``summary`` from the follow-up hint when the model put it there."""
        if self.summary or not self.follow_up or not self.follow_up.context_for_message:
            return self
        return self.model_copy(update={"summary": self.follow_up.context_for_message})


class SummaryDigest(BaseModel):
    """Periodic conversation digest."""

    summary: str = "Sem resumo disponível."
    key_points: list[str] = Field(default_factory=list)
    next_actions: list[str] = Field(default_factory=list)
    sentiment: str = "neutral"


# ---------------------------------------------------------------------------
# Z-API webhook
# ---------------------------------------------------------------------------


class ZAPIText(BaseModel):
    message: str | None = None


class ZAPIWebhookPayload(BaseModel):
    """Union of the Z-API callback shapes (message, status, connection).

    Z-API posts camelCase keys; unknown keys are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str | None = None
    phone: str | None = None
    from_me: bool = Field(default=False, alias="fromMe")
    is_group: bool = Field(default=False, alias="isGroup")
    is_status_reply: bool = Field(default=False, alias="isStatusReply")
    message_id: str | None = Field(default=None, alias="messageId")
    ids: list[str] | None = None
    chat_name: str | None = Field(default=None, alias="chatName")
    sender_name: str | None = Field(default=None, alias="senderName")
    moment: int | None = Field(default=None, alias="momment")
    text: ZAPIText | None = None
    status: str | None = None
    connected: bool | None = None

    @property
    def text_body(self) -> str:
        if self.text and self.text.message:
            return self.text.message.strip()
        return ""

    @property
    def is_connection_event(self) -> bool:
        return self.connected is not None or self.type in ("ConnectedCallback", "DisconnectedCallback")

    @property
    def is_status_event(self) -> bool:
        return bool((self.message_id or self.ids) and self.status and not self.text_body)
