"""Immutable per-execution agent configuration."""

from dataclasses import dataclass, field

from fullhouse_agent.domain.enums import ProviderName, Temperature

DEFAULT_TRANSFER_MESSAGE = "Um atendente humano irá continuar o atendimento."
DEFAULT_AGENT_ROLE = "Atendente virtual"


@dataclass(frozen=True)
class ScorePolicy:
    """Temperature thresholds and history retention for lead scoring."""
    on_fire: int = 80
    hot: int = 60
    warm: int = 30
    history_limit: int = 50

    def temperature(self, score: int) -> str:
        if score >= self.on_fire:
            return Temperature.ON_FIRE.value
        if score >= self.hot:
            return Temperature.HOT.value
        if score >= self.warm:
            return Temperature.WARM.value
        return Temperature.COLD.value

    @classmethod
    def from_settings(cls, settings) -> "ScorePolicy":
        return cls(
            on_fire=settings.score_on_fire_threshold,
            hot=settings.score_hot_threshold,
            warm=settings.score_warm_threshold,
            history_limit=settings.score_history_limit,
        )


@dataclass(frozen=True)
class AgentConfig:
    """Immutable per-execution agent configuration.

    Built once from the instance's ``WhatsAppAIConfig`` row, the
    organization's AI settings and process ``Settings``, then passed to
    every stage explicitly.
    """
    instance_id: str
    organization_id: str

    # Persona
    agent_name: str = "Assistente"
    agent_role: str | None = None
    agent_tone: str = "professional"
    system_prompt: str = ""

    # Behaviour
    reply_delay_ms: int = 0
    max_messages_per_conversation: int | None = None
    greeting_message: str | None = None
    transfer_message: str | None = None
    working_hours_start: str | None = None
    working_hours_end: str | None = None
    working_days: tuple[int, ...] = (1, 2, 3, 4, 5)
    outside_hours_message: str | None = None

    # CRM linking
    auto_create_contact: bool = False
    auto_create_deal: bool = False
    default_board_id: str | None = None
    default_stage_id: str | None = None
    default_tags: tuple[str, ...] = ()

    # Intelligence
    memory_enabled: bool = True
    lead_scoring_enabled: bool = True
    auto_label_enabled: bool = True
    follow_up_enabled: bool = True
    smart_pause_enabled: bool = True
    summary_enabled: bool = True
    follow_up_default_delay_minutes: int = 30
    follow_up_max_per_conversation: int = 3
    follow_up_quiet_hours_start: str | None = None
    follow_up_quiet_hours_end: str | None = None

    # Provider
    provider: ProviderName = ProviderName.GOOGLE
    model: str | None = None
    api_key: str | None = None

    # Process-level knobs
    timezone: str = "America/Sao_Paulo"
    history_limit: int = 20
    summary_every_n_messages: int = 10
    memory_max_per_type: int = 25
    llm_timeout_seconds: float = 120.0
    score_policy: ScorePolicy = field(default_factory=ScorePolicy)

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    @property
    def fallback_message(self) -> str:
        return self.transfer_message or DEFAULT_TRANSFER_MESSAGE

    @property
    def intelligence_enabled(self) -> bool:
        return self.memory_enabled or self.follow_up_enabled or self.auto_label_enabled

    @classmethod
    def from_rows(cls, ai_config, org_settings, settings) -> "AgentConfig":
        """Assemble the config from ORM rows + Settings.

        ``org_settings`` may be None (no provider configured yet).
        """
        provider = ProviderName.GOOGLE
        model = None
        api_key = None
        if org_settings is not None:
            try:
                provider = ProviderName(org_settings.ai_provider or ProviderName.GOOGLE.value)
            except ValueError:
                provider = ProviderName.GOOGLE
            model = org_settings.ai_model or None
            api_key = {
                ProviderName.GOOGLE: org_settings.ai_google_key,
                ProviderName.OPENAI: org_settings.ai_openai_key,
                ProviderName.ANTHROPIC: org_settings.ai_anthropic_key,
            }[provider] or None

        return cls(
            instance_id=ai_config.instance_id,
            organization_id=ai_config.organization_id,
            agent_name=ai_config.agent_name or "Assistente",
            agent_role=ai_config.agent_role,
            agent_tone=ai_config.agent_tone or "professional",
            system_prompt=ai_config.system_prompt or "",
            reply_delay_ms=ai_config.reply_delay_ms or 0,
            max_messages_per_conversation=ai_config.max_messages_per_conversation,
            greeting_message=ai_config.greeting_message,
            transfer_message=ai_config.transfer_message,
            working_hours_start=ai_config.working_hours_start,
            working_hours_end=ai_config.working_hours_end,
            working_days=tuple(ai_config.working_days if ai_config.working_days is not None else (1, 2, 3, 4, 5)),
            outside_hours_message=ai_config.outside_hours_message,
            auto_create_contact=bool(ai_config.auto_create_contact),
            auto_create_deal=bool(ai_config.auto_create_deal),
            default_board_id=ai_config.default_board_id,
            default_stage_id=ai_config.default_stage_id,
            default_tags=tuple(ai_config.default_tags or ()),
            memory_enabled=bool(ai_config.memory_enabled),
            lead_scoring_enabled=bool(ai_config.lead_scoring_enabled),
            auto_label_enabled=bool(ai_config.auto_label_enabled),
            follow_up_enabled=bool(ai_config.follow_up_enabled),
            smart_pause_enabled=bool(ai_config.smart_pause_enabled),
            summary_enabled=bool(ai_config.summary_enabled),
            follow_up_default_delay_minutes=ai_config.follow_up_default_delay_minutes or 30,
            follow_up_max_per_conversation=(
                ai_config.follow_up_max_per_conversation
                if ai_config.follow_up_max_per_conversation is not None else 3
            ),
            follow_up_quiet_hours_start=ai_config.follow_up_quiet_hours_start,
            follow_up_quiet_hours_end=ai_config.follow_up_quiet_hours_end,
            provider=provider,
            model=model,
            api_key=api_key,
            timezone=settings.timezone,
            history_limit=settings.history_limit,
            summary_every_n_messages=settings.summary_every_n_messages,
            memory_max_per_type=settings.memory_max_per_type,
            llm_timeout_seconds=settings.llm_timeout_seconds,
            score_policy=ScorePolicy.from_settings(settings),
        )
