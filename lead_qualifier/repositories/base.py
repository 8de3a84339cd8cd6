"""
Base repository with generic CRUD operations.
"""
import uuid
from typing import TypeVar, Generic, Type, Optional

from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import func

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository with CRUD operations.
    Inherit and specify the model class.

    Write methods take `commit`; pass commit=False to group several writes
    into one transaction and commit from the service.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    def _filtered(self, query, org_id: Optional[uuid.UUID] = None, filters: Optional[dict] = None):
        # Filter by organization if model has org_id
        if org_id and hasattr(self.model, "org_id"):
            query = query.where(self.model.org_id == org_id)

        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field) and value is not None:
                    query = query.where(getattr(self.model, field) == value)
        return query

    async def add(self, db_obj: ModelType, commit: bool = True) -> ModelType:
        """Persist an already-built model instance."""
        self.session.add(db_obj)
        if commit:
            await self.session.commit()
            await self.session.refresh(db_obj)
        else:
            await self.session.flush()
        return db_obj

    async def get(self, id: uuid.UUID) -> Optional[ModelType]:
        """Get a record by ID."""
        return await self.session.get(self.model, id)

    async def get_for_org(self, org_id: uuid.UUID, id: uuid.UUID) -> Optional[ModelType]:
        """Get a record by ID, scoped to an organization."""
        db_obj = await self.get(id)
        if db_obj is None or getattr(db_obj, "org_id", org_id) != org_id:
            return None
        return db_obj

    async def count(self, org_id: Optional[uuid.UUID] = None, filters: Optional[dict] = None) -> int:
        """Count records."""
        query = self._filtered(select(func.count()).select_from(self.model), org_id, filters)
        result = await self.session.exec(query)
        return result.one()
