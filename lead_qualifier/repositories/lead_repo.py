"""
Lead repository with qualification updates and enrichment lookups.
"""
import uuid
from typing import Optional, List
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.models.lead import Lead, LeadEnrichment, QualificationStatus
from lead_qualifier.repositories.base import BaseRepository


class LeadRepository(BaseRepository[Lead]):
    """Repository for Lead operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Lead, session)

    async def get_many(self, org_id: uuid.UUID, lead_ids: List[uuid.UUID]) -> List[Lead]:
        """Leads of an organization by id; ids of other organizations are ignored."""
        if not lead_ids:
            return []
        query = select(Lead).where(
            Lead.org_id == org_id,
            Lead.id.in_(lead_ids)
        ).order_by(Lead.created_at)
        result = await self.session.exec(query)
        return result.all()

    async def list_for_org(self, org_id: uuid.UUID, limit: int = 1000) -> List[Lead]:
        query = select(Lead).where(Lead.org_id == org_id).order_by(Lead.created_at).limit(limit)
        result = await self.session.exec(query)
        return result.all()

    async def get_enrichments(self, lead_id: uuid.UUID) -> List[LeadEnrichment]:
        """Enrichment rows for a lead, newest first."""
        query = select(LeadEnrichment).where(
            LeadEnrichment.lead_id == lead_id
        ).order_by(LeadEnrichment.created_at.desc())
        result = await self.session.exec(query)
        return result.all()

    async def apply_qualification(self, lead: Lead, result, qualified_at: datetime, commit: bool = True) -> Lead:
        """Write a QualificationResult onto the lead's current-qualification columns."""
        lead.score = result.score
        lead.label = result.label
        lead.reasoning = result.reasoning
        lead.breakdown = result.breakdown
        lead.recommended_action = result.recommended_action
        lead.qualification_status = QualificationStatus.COMPLETED
        lead.qualification_degraded = result.degraded
        lead.model_version = result.model_version
        lead.qualified_at = qualified_at
        lead.updated_at = qualified_at
        return await self.add(lead, commit=commit)

    async def mark_unscored(self, lead: Lead, reason: str, commit: bool = True) -> Lead:
        """No criteria configured: clear the label, keep the lead."""
        lead.score = None
        lead.label = None
        lead.breakdown = {}
        lead.reasoning = reason
        lead.recommended_action = None
        lead.qualification_status = QualificationStatus.UNSCORED
        lead.qualification_degraded = False
        lead.model_version = None
        lead.updated_at = datetime.utcnow()
        return await self.add(lead, commit=commit)

    async def update_status(self, lead: Lead, status: str, commit: bool = True) -> Lead:
        """Update lead pipeline status."""
        lead.status = status
        lead.updated_at = datetime.utcnow()
        return await self.add(lead, commit=commit)

    async def set_qualification_status(self, lead: Lead, status: str, commit: bool = True) -> Lead:
        """Move a lead through processing/failed without touching its last result."""
        lead.qualification_status = status
        lead.updated_at = datetime.utcnow()
        return await self.add(lead, commit=commit)
