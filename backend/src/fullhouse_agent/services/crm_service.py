"""CRM collaborator — contact/deal lookup and the auto-create features."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.domain.agent_config import AgentConfig
from fullhouse_agent.domain.enums import AIAction
from fullhouse_agent.domain.models import BoardStage, Contact, Deal, WhatsAppConversation
from fullhouse_agent.services.audit_log import AuditLog

logger = logging.getLogger(__name__)

MAX_SNAPSHOT_DEALS = 5


class CRMService:
    """Read contacts/deals for grounding and link new conversations to the CRM."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditLog(db)

    # ------------------------------------------------------------------
    # Read-only
    # ------------------------------------------------------------------

    async def get_contact(self, contact_id: str | None) -> Contact | None:
        if not contact_id:
            return None
        return await self.db.get(Contact, contact_id)

    async def find_contact_by_phone(self, organization_id: str, phone: str) -> Contact | None:
        result = await self.db.execute(
            select(Contact).where(
                Contact.organization_id == organization_id,
                Contact.phone == phone,
            ).limit(1)
        )
        return result.scalar_one_or_none()

    async def open_deals(self, contact_id: str, limit: int = MAX_SNAPSHOT_DEALS) -> list[tuple[Deal, str | None]]:
        """Open deals for the contact with their stage label, newest first."""
        result = await self.db.execute(
            select(Deal, BoardStage.label)
            .outerjoin(BoardStage, BoardStage.id == Deal.stage_id)
            .where(Deal.contact_id == contact_id, Deal.status == "open")
            .order_by(Deal.created_at.desc())
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def entity_snapshot(self, contact_id: str | None) -> str:
        """Summarize the linked contact and up to 5 open deals.

        Returns an empty string when no contact is linked.
        """
        contact = await self.get_contact(contact_id)
        if contact is None:
            return ""

        lines = [f"Contato: {contact.name}"]
        if contact.email:
            lines.append(f"Email: {contact.email}")
        if contact.status:
            lines.append(f"Status: {contact.status}")
        if contact.total_value:
            lines.append(f"Valor total: R$ {contact.total_value:,.2f}")
        if contact.notes:
            lines.append(f"Notas: {contact.notes}")

        deals = await self.open_deals(contact.id)
        if deals:
            lines.append("Negócios em aberto:")
            for deal, stage_label in deals:
                lines.append(
                    f"- {deal.title} | R$ {deal.value or 0:,.2f} | "
                    f"etapa: {stage_label or 'n/d'} | prioridade: {deal.priority or 'n/d'}"
                )
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Auto-create
    # ------------------------------------------------------------------

    async def ensure_contact(
        self,
        config: AgentConfig,
        conversation: WhatsAppConversation,
    ) -> Contact | None:
        """Link the conversation to a contact, creating one if needed."""
        if conversation.contact_id:
            return await self.get_contact(conversation.contact_id)

        contact = await self.find_contact_by_phone(conversation.organization_id, conversation.phone)
        created = False
        if contact is None:
            contact = Contact(
                organization_id=conversation.organization_id,
                name=conversation.contact_name or conversation.phone,
                phone=conversation.phone,
                status="ACTIVE",
                stage="LEAD",
                source="WHATSAPP",
                tags=list(config.default_tags),
            )
            self.db.add(contact)
            await self.db.flush()
            created = True

        conversation.contact_id = contact.id
        await self.db.flush()

        if created:
            await self.audit.record(
                conversation.id,
                conversation.organization_id,
                AIAction.CONTACT_CREATED,
                {"contact_id": contact.id, "name": contact.name},
            )
        return contact

    async def ensure_deal(
        self,
        config: AgentConfig,
        conversation: WhatsAppConversation,
        contact: Contact,
    ) -> Deal | None:
        """Open a deal on the default board unless the contact already has one there."""
        if not config.default_board_id:
            return None

        result = await self.db.execute(
            select(Deal).where(
                Deal.contact_id == contact.id,
                Deal.board_id == config.default_board_id,
                Deal.status == "open",
            ).limit(1)
        )
        if result.scalar_one_or_none():
            return None

        stage_id = config.default_stage_id
        if not stage_id:
            result = await self.db.execute(
                select(BoardStage.id)
                .where(BoardStage.board_id == config.default_board_id)
                .order_by(BoardStage.order)
                .limit(1)
            )
            stage_id = result.scalar_one_or_none()

        deal = Deal(
            organization_id=conversation.organization_id,
            contact_id=contact.id,
            board_id=config.default_board_id,
            stage_id=stage_id,
            title=f"WhatsApp - {contact.name}",
            value=0.0,
            status="open",
            tags=list(config.default_tags),
        )
        self.db.add(deal)
        await self.db.flush()

        await self.audit.record(
            conversation.id,
            conversation.organization_id,
            AIAction.DEAL_CREATED,
            {"deal_id": deal.id, "title": deal.title},
        )
        return deal
