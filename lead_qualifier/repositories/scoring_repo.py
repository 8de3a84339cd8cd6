"""
Scoring repositories - model versions, outcomes, scoring history and settings.
"""
import uuid
from typing import Optional, List, Dict
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import func

from lead_qualifier.models.scoring import ScoringModel, Outcome, ScoringHistory, ScoringSettings
from lead_qualifier.repositories.base import BaseRepository


class ScoringModelRepository(BaseRepository[ScoringModel]):
    """Repository for ScoringModel versions."""

    def __init__(self, session: AsyncSession):
        super().__init__(ScoringModel, session)

    async def get_active(self, org_id: uuid.UUID, for_update: bool = False) -> Optional[ScoringModel]:
        """The organization's active model, if any."""
        query = select(ScoringModel).where(
            ScoringModel.org_id == org_id,
            ScoringModel.is_active == True
        ).order_by(ScoringModel.model_version.desc())
        if for_update:
            query = query.with_for_update()
        result = await self.session.exec(query)
        return result.first()

    async def get_by_version(
        self, org_id: uuid.UUID, model_version: int, for_update: bool = False
    ) -> Optional[ScoringModel]:
        query = select(ScoringModel).where(
            ScoringModel.org_id == org_id,
            ScoringModel.model_version == model_version
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.exec(query)
        return result.first()

    async def next_version(self, org_id: uuid.UUID) -> int:
        """Monotonic per organization; versions are never reused."""
        query = select(func.max(ScoringModel.model_version)).where(ScoringModel.org_id == org_id)
        result = await self.session.exec(query)
        return (result.one() or 0) + 1

    async def list_versions(self, org_id: uuid.UUID) -> List[ScoringModel]:
        """All versions, newest first."""
        query = select(ScoringModel).where(
            ScoringModel.org_id == org_id
        ).order_by(ScoringModel.model_version.desc())
        result = await self.session.exec(query)
        return result.all()


class OutcomeRepository(BaseRepository[Outcome]):
    """
    Repository for lead outcomes. Rows are never updated or deleted;
    the effective outcome of a lead is the one no other row supersedes.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(Outcome, session)

    def _effective_query(self, org_id: uuid.UUID):
        superseded = select(Outcome.supersedes_id).where(
            Outcome.org_id == org_id,
            Outcome.supersedes_id.is_not(None)
        )
        return select(Outcome).where(
            Outcome.org_id == org_id,
            Outcome.id.not_in(superseded)
        )

    async def get_effective_for_lead(self, org_id: uuid.UUID, lead_id: uuid.UUID) -> Optional[Outcome]:
        query = self._effective_query(org_id).where(
            Outcome.lead_id == lead_id
        ).order_by(Outcome.created_at.desc())
        result = await self.session.exec(query)
        return result.first()

    async def list_effective(self, org_id: uuid.UUID) -> List[Outcome]:
        """One outcome per lead (the latest correction), oldest first."""
        query = self._effective_query(org_id).order_by(Outcome.created_at, Outcome.id)
        result = await self.session.exec(query)
        return result.all()

    async def count_effective(self, org_id: uuid.UUID) -> int:
        query = select(func.count()).select_from(self._effective_query(org_id).subquery())
        result = await self.session.exec(query)
        return result.one()

    async def count_effective_by_label(self, org_id: uuid.UUID) -> Dict[str, int]:
        effective = self._effective_query(org_id).subquery()
        query = select(effective.c.label, func.count()).group_by(effective.c.label)
        result = await self.session.exec(query)
        return {label: count for label, count in result.all()}

    async def list_for_lead(self, org_id: uuid.UUID, lead_id: uuid.UUID) -> List[Outcome]:
        """Full correction chain for a lead, oldest first."""
        query = select(Outcome).where(
            Outcome.org_id == org_id,
            Outcome.lead_id == lead_id
        ).order_by(Outcome.created_at, Outcome.id)
        result = await self.session.exec(query)
        return result.all()


class ScoringHistoryRepository(BaseRepository[ScoringHistory]):
    """Repository for the per-invocation scoring audit trail."""

    def __init__(self, session: AsyncSession):
        super().__init__(ScoringHistory, session)

    async def latest_for_leads(
        self, org_id: uuid.UUID, lead_ids: List[uuid.UUID]
    ) -> Dict[uuid.UUID, ScoringHistory]:
        """Most recent scoring row per lead."""
        if not lead_ids:
            return {}
        query = select(ScoringHistory).where(
            ScoringHistory.org_id == org_id,
            ScoringHistory.lead_id.in_(lead_ids)
        ).order_by(ScoringHistory.created_at.desc())
        result = await self.session.exec(query)
        latest = {}
        for row in result.all():
            latest.setdefault(row.lead_id, row)
        return latest

    async def list_for_lead(self, org_id: uuid.UUID, lead_id: uuid.UUID, limit: int = 50) -> List[ScoringHistory]:
        query = select(ScoringHistory).where(
            ScoringHistory.org_id == org_id,
            ScoringHistory.lead_id == lead_id
        ).order_by(ScoringHistory.created_at.desc()).limit(limit)
        result = await self.session.exec(query)
        return result.all()


class ScoringSettingsRepository(BaseRepository[ScoringSettings]):
    """Repository for per-organization thresholds and blend configuration."""

    def __init__(self, session: AsyncSession):
        super().__init__(ScoringSettings, session)

    async def get(self, org_id: uuid.UUID) -> Optional[ScoringSettings]:
        return await self.session.get(ScoringSettings, org_id)

    async def upsert(self, org_id: uuid.UUID, values: dict) -> ScoringSettings:
        row = await self.get(org_id)
        if row is None:
            row = ScoringSettings(org_id=org_id, **values)
        else:
            for field, value in values.items():
                setattr(row, field, value)
            row.updated_at = datetime.utcnow()
        return await self.add(row)
