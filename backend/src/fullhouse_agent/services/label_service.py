"""Label assigner — org-scoped label taxonomy and idempotent assignment."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.domain.models import ConversationLabel, WhatsAppLabel
from fullhouse_agent.services.audit_log import AuditLog

logger = logging.getLogger(__name__)

# (name, color, icon, auto_assign, description)
DEFAULT_LABELS = (
    ("Quente", "#ef4444", "flame", True, "Lead muito interessado, alta probabilidade de conversão"),
    ("Morno", "#f59e0b", "thermometer", True, "Lead com interesse moderado"),
    ("Frio", "#3b82f6", "snowflake", True, "Lead com pouco interesse ou contato inicial"),
    ("Interessado", "#10b981", "star", True, "Demonstrou interesse ativo em produto/serviço"),
    ("Objeção", "#f97316", "shield", True, "Levantou objeções ou preocupações"),
    ("Aguardando", "#8b5cf6", "clock", True, "Aguardando resposta ou decisão do cliente"),
    ("Negociando", "#06b6d4", "handshake", True, "Em fase de negociação ativa"),
    ("Fechado", "#22c55e", "check-circle", False, "Negócio fechado/convertido"),
    ("Perdido", "#6b7280", "x-circle", False, "Lead perdido ou desistiu"),
)


class LabelService:
    """Resolve-or-create labels and assign them to conversations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditLog(db)

    async def _find_label(self, organization_id: str, name: str) -> WhatsAppLabel | None:
        result = await self.db.execute(
            select(WhatsAppLabel).where(
                WhatsAppLabel.organization_id == organization_id,
                WhatsAppLabel.name == name,
            ).limit(1)
        )
        return result.scalar_one_or_none()

    async def ensure_default_labels(self, organization_id: str) -> int:
        """Create any missing system labels. Returns how many were created."""
        result = await self.db.execute(
            select(WhatsAppLabel.name).where(WhatsAppLabel.organization_id == organization_id)
        )
        existing = set(result.scalars().all())

        created = 0
        for order, (name, color, icon, auto_assign, description) in enumerate(DEFAULT_LABELS, start=1):
            if name in existing:
                continue
            self.db.add(WhatsAppLabel(
                organization_id=organization_id,
                name=name,
                color=color,
                icon=icon,
                description=description,
                is_system=True,
                sort_order=order,
                auto_assign=auto_assign,
            ))
            created += 1

        if created:
            await self.db.flush()
            logger.info("Created %d default labels for org %s", created, organization_id)
        return created

    async def get_or_create_label(self, organization_id: str, name: str) -> WhatsAppLabel:
        label = await self._find_label(organization_id, name)
        if label:
            return label
        label = WhatsAppLabel(organization_id=organization_id, name=name, is_system=False)
        self.db.add(label)
        await self.db.flush()
        return label

    async def assign_label_by_name(
        self,
        conversation_id: str,
        organization_id: str,
        label_name: str,
        triggered_by: str = "ai",
        reason: str | None = None,
    ) -> tuple[ConversationLabel, bool]:
        """Assign ``label_name`` to the conversation if not already assigned.

        Returns ``(assignment, created)``. The ``label_assigned`` audit entry
        is written only when a new assignment row is created.
        """
        await self.ensure_default_labels(organization_id)
        label = await self.get_or_create_label(organization_id, label_name)

        result = await self.db.execute(
            select(ConversationLabel).where(
                ConversationLabel.conversation_id == conversation_id,
                ConversationLabel.label_id == label.id,
            ).limit(1)
        )
        assignment = result.scalar_one_or_none()
        if assignment:
            return assignment, False

        assignment = ConversationLabel(
            conversation_id=conversation_id,
            label_id=label.id,
            assigned_by=triggered_by,
            reason=(reason or "")[:255] or None,
        )
        self.db.add(assignment)
        await self.db.flush()

        await self.audit.record(
            conversation_id,
            organization_id,
            AIAction.LABEL_ASSIGNED,
            {"label": label.name},
            triggered_by=triggered_by,
        )
        return assignment, True

    async def labels_for_conversation(self, conversation_id: str) -> list[str]:
        result = await self.db.execute(
            select(WhatsAppLabel.name)
            .join(ConversationLabel, ConversationLabel.label_id == WhatsAppLabel.id)
            .where(ConversationLabel.conversation_id == conversation_id)
            .order_by(WhatsAppLabel.sort_order)
        )
        return list(result.scalars().all())
