"""
Notification and organization member repositories.
"""
import uuid
from typing import Optional, List, Sequence
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.models.notification import Notification, OrganizationMember
from lead_qualifier.repositories.base import BaseRepository


class OrganizationMemberRepository(BaseRepository[OrganizationMember]):
    """Repository for OrganizationMember rows (read-only here)."""

    def __init__(self, session: AsyncSession):
        super().__init__(OrganizationMember, session)

    async def list_by_roles(self, org_id: uuid.UUID, roles: Sequence[str]) -> List[OrganizationMember]:
        """Active members of an organization holding one of the roles."""
        query = select(OrganizationMember).where(
            OrganizationMember.org_id == org_id,
            OrganizationMember.role.in_(list(roles)),
            OrganizationMember.is_active == True
        ).order_by(OrganizationMember.joined_at)
        result = await self.session.exec(query)
        return result.all()


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Notification, session)

    async def list_for_user(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        """A user's notifications, newest first."""
        query = select(Notification).where(
            Notification.org_id == org_id,
            Notification.user_id == user_id
        )
        if unread_only:
            query = query.where(Notification.read_at.is_(None))
        query = query.order_by(Notification.created_at.desc()).limit(limit)
        result = await self.session.exec(query)
        return result.all()

    async def get_for_user(self, org_id: uuid.UUID, user_id: uuid.UUID, id: uuid.UUID) -> Optional[Notification]:
        notification = await self.get_for_org(org_id, id)
        if notification is None or notification.user_id != user_id:
            return None
        return notification

    async def mark_read(self, notification: Notification, commit: bool = True) -> Notification:
        if notification.read_at is None:
            notification.read_at = datetime.utcnow()
        return await self.add(notification, commit=commit)
