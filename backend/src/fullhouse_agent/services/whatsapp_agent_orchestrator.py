"""WhatsApp Agent Orchestrator — coordinates the per-message pipeline.

1. Load conversation, instance and AgentConfig
2. Eligibility Guard (config, pause, working hours)
3. CRM linking (auto contact / auto deal)
4. Intelligence Extractor (LLM + local patterns)
5. Side effects: memory, lead score, labels, follow-up
6. Escalation: smart pause, then message limit
7. Context Builder (history + CRM snapshot + memory)
8. Greeting fast-path on the first inbound message
9. Response Generator (LLM)
10. Outbound Dispatcher
11. Periodic summary (detached)

The whole run holds the conversation's lock. Every stage commits its own
writes. A failing stage is rolled back and audited, then the run
continues without its result.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.services.conversation_locks import ConversationLockRegistry, conversation_locks

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorResult:
    """Result from the orchestrator pipeline."""
    action: str | None = None
    response: str = ""
    stopped_at: str | None = None
    reason: str | None = None
    error: str | None = None


class WhatsAppAgentOrchestrator:
    """Runs the agent pipeline for one inbound WhatsApp message."""

    def __init__(
        self,
        db: AsyncSession,
        gateway=None,
        session_factory=None,
        locks: ConversationLockRegistry | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.session_factory = session_factory
        self.locks = locks or conversation_locks

    async def process_message(self, conversation_id: str, message_id: str | None, text: str) -> OrchestratorResult:
        """Run the full pipeline on an inbound customer message. Never raises."""
        async with self.locks.lock(conversation_id):
            return await self._run(conversation_id, message_id, text or "")

    async def _stage(self, name: str, conversation, message_id, func, default=None):
        """Run one stage and commit; on failure roll back, audit and return ``default``."""
        from fullhouse_agent.services.audit_log import AuditLog

        try:
            value = await func()
            await self.db.commit()
            return value
        except Exception as e:
            logger.error("[orchestrator] Stage %s failed for %s: %s", name, conversation.id, e, exc_info=True)
            await self.db.rollback()
            await self.db.refresh(conversation)
            await AuditLog(self.db).record(
                conversation.id,
                conversation.organization_id,
                AIAction.ERROR,
                {"stage": name, "error": str(e)},
                message_id=message_id,
            )
            await self.db.commit()
            return default

    async def _unpersisted_send(
        self, conversation, message_id, error, response: str, stopped_at: str,
    ) -> OrchestratorResult:
        """The customer got the message but it was not stored; audit and stop."""
        from fullhouse_agent.services.audit_log import AuditLog

        await AuditLog(self.db).record(
            conversation.id,
            conversation.organization_id,
            AIAction.ERROR,
            {"stage": "dispatch", "error": str(error)},
            message_id=message_id,
        )
        await self.db.commit()
        return OrchestratorResult(
            action=AIAction.ERROR.value, response=response, stopped_at=stopped_at, error=str(error),
        )

    async def _run(self, conversation_id: str, message_id: str | None, text: str) -> OrchestratorResult:
        from fullhouse_agent.services.audit_log import AuditLog
        from fullhouse_agent.services.conversation_store import ConversationStore

        store = ConversationStore(self.db)
        conversation = await store.get_conversation(conversation_id)
        if conversation is None:
            logger.warning("[orchestrator] Conversation %s not found", conversation_id)
            return OrchestratorResult(stopped_at="load", error="conversation not found")

        organization_id = conversation.organization_id
        try:
            return await self._pipeline(store, conversation, message_id, text)
        except Exception as e:
            logger.error("[orchestrator] Pipeline failed for %s: %s", conversation_id, e, exc_info=True)
            await self.db.rollback()
            await AuditLog(self.db).record(
                conversation_id,
                organization_id,
                AIAction.ERROR,
                {"error": str(e)},
                message_id=message_id,
            )
            await self.db.commit()
            return OrchestratorResult(action=AIAction.ERROR.value, error=str(e))

    async def _pipeline(self, store, conversation, message_id: str | None, text: str) -> OrchestratorResult:
        from fullhouse_agent.agents.whatsapp.context_builder import ContextBuilder, history_turns
        from fullhouse_agent.agents.whatsapp.contracts import GroundingContext, ExtractionOutcome
        from fullhouse_agent.agents.whatsapp.intelligence_extractor import IntelligenceExtractor, format_memories
        from fullhouse_agent.agents.whatsapp.response_agent import ResponseGenerator
        from fullhouse_agent.agents.base import ERROR_PARSE
        from fullhouse_agent.domain.errors import PersistenceFailure, ProviderCallError
        from fullhouse_agent.domain.schemas import IntelligenceBundle
        from fullhouse_agent.infra.zapi_client import GatewayCredentials
        from fullhouse_agent.services import summary_worker
        from fullhouse_agent.services.audit_log import AuditLog
        from fullhouse_agent.services.crm_service import CRMService
        from fullhouse_agent.services.eligibility_guard import EligibilityGuard
        from fullhouse_agent.services.escalation_service import EscalationService
        from fullhouse_agent.services.follow_up_scheduler import FollowUpScheduler
        from fullhouse_agent.services.label_service import LabelService
        from fullhouse_agent.services.memory_service import MemoryService
        from fullhouse_agent.services.outbound_dispatcher import OutboundDispatcher
        from fullhouse_agent.services.score_engine import ScoreEngine

        audit = AuditLog(self.db)

        # == 1. Load instance + config ==
        instance = await store.get_instance(conversation.instance_id)
        config = await store.load_agent_config(conversation.instance_id) if instance else None
        if instance is None or config is None:
            return OrchestratorResult(stopped_at="eligibility", reason="no_config")

        dispatcher = OutboundDispatcher(self.db, GatewayCredentials.from_instance(instance), gateway=self.gateway)

        # == 2. Eligibility Guard ==
        decision = await EligibilityGuard(self.db, dispatcher).check(config, conversation)
        await self.db.commit()
        if not decision.proceed:
            logger.info("[orchestrator] %s not eligible: %s", conversation.id, decision.reason)
            return OrchestratorResult(
                action=AIAction.OUTSIDE_HOURS.value if decision.outside_hours_sent else None,
                stopped_at="eligibility",
                reason=decision.reason,
            )

        # == 3. CRM linking ==
        if config.auto_create_contact:
            crm = CRMService(self.db)

            async def link_crm():
                contact = await crm.ensure_contact(config, conversation)
                if contact is not None and config.auto_create_deal:
                    await crm.ensure_deal(config, conversation, contact)

            await self._stage("crm", conversation, message_id, link_crm)

        # == 4. Intelligence Extractor ==
        bundle = IntelligenceBundle.empty()
        if text.strip():
            async def extract():
                messages = await store.get_messages(conversation.id, limit=config.history_limit)
                history = GroundingContext(history=history_turns(messages, exclude_message_id=message_id))
                memories = await MemoryService(self.db).get_memories(conversation.id)
                outcome = await IntelligenceExtractor(config).extract(
                    text, history.history_text, memories,
                )
                if outcome.error_kind == ERROR_PARSE:
                    await audit.record(
                        conversation.id,
                        conversation.organization_id,
                        AIAction.PARSE_ERROR,
                        {"error": outcome.error},
                        message_id=message_id,
                    )
                return outcome

            outcome = await self._stage(
                "extraction", conversation, message_id, extract,
                default=ExtractionOutcome(bundle=IntelligenceBundle.empty()),
            )
            bundle = outcome.bundle

        # == 5. Side effects ==
        if config.memory_enabled and bundle.memories:
            await self._stage(
                "memory", conversation, message_id,
                lambda: MemoryService(self.db, max_per_type=config.memory_max_per_type).save_extracted_memories(
                    conversation.id, conversation.organization_id, bundle.memories, source_message_id=message_id,
                ),
            )

        if config.lead_scoring_enabled and bundle.lead_score_delta != 0:
            await self._stage(
                "score", conversation, message_id,
                lambda: ScoreEngine(self.db, config.score_policy).upsert_lead_score(
                    conversation.id,
                    conversation.organization_id,
                    bundle.lead_score_delta,
                    buying_stage=bundle.buying_stage,
                    factors={"sentiment": bundle.sentiment},
                    message_id=message_id,
                ),
            )

        if config.auto_label_enabled and bundle.suggested_labels:
            labels = LabelService(self.db)
            reason = f"Intent: {', '.join(i.intent for i in bundle.intents)}"
            for label_name in bundle.suggested_labels:
                await self._stage(
                    "labels", conversation, message_id,
                    lambda name=label_name: labels.assign_label_by_name(
                        conversation.id, conversation.organization_id, name, triggered_by="ai", reason=reason,
                    ),
                )

        if config.follow_up_enabled and bundle.intents:
            await self._stage(
                "follow_up", conversation, message_id,
                lambda: FollowUpScheduler(self.db).schedule_from_bundle(
                    config, conversation, bundle, text, message_id,
                ),
            )

        # == 6. Escalation ==
        escalation = EscalationService(self.db, dispatcher)
        for check in (
            lambda: escalation.check_smart_pause(config, conversation, bundle, message_id),
            lambda: escalation.check_message_limit(config, conversation, message_id),
        ):
            outcome = await self._stage("escalation", conversation, message_id, check)
            if outcome is not None and outcome.paused:
                return OrchestratorResult(action=outcome.action, stopped_at="escalation", reason=outcome.reason)

        # == 7. Context Builder ==
        async def build_context():
            memories = await MemoryService(self.db).get_memories(conversation.id)
            context = await ContextBuilder(self.db).build(
                config, conversation, current_message_id=message_id, memories=memories,
            )
            return context, format_memories(memories)

        context, memories_text = await self._stage(
            "context", conversation, message_id, build_context, default=(GroundingContext(), ""),
        )

        # == 8. Greeting fast-path ==
        inbound_count = await store.count_inbound(conversation.id)
        if inbound_count == 1 and config.greeting_message:
            try:
                outbound = await dispatcher.dispatch(
                    conversation, config.greeting_message, reply_delay_ms=config.reply_delay_ms,
                )
            except PersistenceFailure as e:
                return await self._unpersisted_send(conversation, message_id, e, config.greeting_message, "greeting")
            if outbound is None:
                await self.db.rollback()
            else:
                await audit.record(
                    conversation.id, conversation.organization_id, AIAction.GREETING_SENT,
                    {"message_length": len(config.greeting_message)}, message_id=outbound.id,
                )
                await self.db.commit()
            return OrchestratorResult(
                action=AIAction.GREETING_SENT.value if outbound is not None else None,
                response=config.greeting_message,
                stopped_at="greeting",
                error=None if outbound is not None else "gateway send failed",
            )

        # == 9. Response Generator ==
        try:
            reply = await ResponseGenerator(config).generate_reply(context, text)
        except ProviderCallError as e:
            logger.error("[orchestrator] Reply generation failed for %s: %s", conversation.id, e)
            await audit.record(
                conversation.id, conversation.organization_id, AIAction.ERROR,
                {"stage": "response", "error": str(e)}, message_id=message_id,
            )
            await self.db.commit()
            return OrchestratorResult(action=AIAction.ERROR.value, stopped_at="response", error=str(e))

        # == 10. Outbound Dispatcher ==
        try:
            outbound = await dispatcher.dispatch(conversation, reply, reply_delay_ms=config.reply_delay_ms)
        except PersistenceFailure as e:
            return await self._unpersisted_send(conversation, message_id, e, reply, "dispatch")
        if outbound is None:
            await self.db.rollback()
            return OrchestratorResult(response=reply, stopped_at="dispatch", error="gateway send failed")

        await audit.record(
            conversation.id, conversation.organization_id, AIAction.REPLIED,
            {"response_length": len(reply)}, message_id=outbound.id,
        )
        await self.db.commit()

        # == 11. Periodic summary (detached) ==
        if summary_worker.should_run(config, inbound_count):
            transcript = "\n".join(filter(None, [context.history_text, f"Cliente: {text}", f"Assistente: {reply}"]))
            summary_worker.schedule(
                config,
                conversation.id,
                conversation.organization_id,
                transcript,
                memories_text=memories_text,
                session_factory=self.session_factory,
            )

        return OrchestratorResult(action=AIAction.REPLIED.value, response=reply)
