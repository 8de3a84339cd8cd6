"""
ICP criterion repository (read-only for the scoring engine).
"""
import uuid
from typing import List

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.models.criterion import ICPCriterion
from lead_qualifier.repositories.base import BaseRepository


class CriterionRepository(BaseRepository[ICPCriterion]):
    """Repository for ICPCriterion operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(ICPCriterion, session)

    async def list_for_org(self, org_id: uuid.UUID) -> List[ICPCriterion]:
        """Criteria in their listed (scoring) order."""
        query = select(ICPCriterion).where(
            ICPCriterion.org_id == org_id
        ).order_by(ICPCriterion.sort_order, ICPCriterion.created_at, ICPCriterion.id)
        result = await self.session.exec(query)
        return result.all()
