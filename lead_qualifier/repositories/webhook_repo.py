"""
Webhook subscription and delivery repositories.
"""
import uuid
from typing import Optional, List
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.core.pagination import paginate_query
from lead_qualifier.models.webhook import Webhook, WebhookDelivery, DeliveryStatus
from lead_qualifier.repositories.base import BaseRepository


class WebhookRepository(BaseRepository[Webhook]):
    """Repository for Webhook subscriptions (read-only here)."""

    def __init__(self, session: AsyncSession):
        super().__init__(Webhook, session)

    async def get_subscribed(self, org_id: uuid.UUID, event: str) -> List[Webhook]:
        """Active subscriptions of an organization listening to an event."""
        query = select(Webhook).where(
            Webhook.org_id == org_id,
            Webhook.is_active == True
        ).order_by(Webhook.created_at)
        result = await self.session.exec(query)
        # events is a JSON list; filter here to stay portable across JSON and JSONB
        return [webhook for webhook in result.all() if event in (webhook.events or [])]


class WebhookDeliveryRepository(BaseRepository[WebhookDelivery]):
    """Repository for WebhookDelivery records."""

    def __init__(self, session: AsyncSession):
        super().__init__(WebhookDelivery, session)

    async def get_for_attempt(self, delivery_id: uuid.UUID, skip_locked: bool = False) -> Optional[WebhookDelivery]:
        """
        Load a delivery for an attempt, row-locked until the transaction ends.
        With skip_locked, a row locked by another worker is reported as None.
        """
        query = select(WebhookDelivery).where(WebhookDelivery.id == delivery_id)
        query = query.with_for_update(skip_locked=skip_locked)
        result = await self.session.exec(query)
        return result.first()

    async def get_due(self, now: datetime, limit: int = 100) -> List[WebhookDelivery]:
        """Pending deliveries whose retry time has passed, oldest due first."""
        query = select(WebhookDelivery).where(
            WebhookDelivery.status == DeliveryStatus.PENDING,
            WebhookDelivery.next_retry_at.is_not(None),
            WebhookDelivery.next_retry_at <= now
        ).order_by(WebhookDelivery.next_retry_at).limit(limit)
        result = await self.session.exec(query)
        return result.all()

    async def get_pending_schedule(self, limit: int = 1000) -> List[WebhookDelivery]:
        """Pending deliveries with a retry time, for rebuilding the scheduler after a restart."""
        query = select(WebhookDelivery).where(
            WebhookDelivery.status == DeliveryStatus.PENDING,
            WebhookDelivery.next_retry_at.is_not(None)
        ).order_by(WebhookDelivery.next_retry_at).limit(limit)
        result = await self.session.exec(query)
        return result.all()

    async def search(
        self,
        org_id: uuid.UUID,
        status: Optional[str] = None,
        event: Optional[str] = None,
        webhook_id: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 20
    ) -> dict:
        """Paginated delivery audit for an organization."""
        query = select(WebhookDelivery).where(WebhookDelivery.org_id == org_id)
        if status:
            query = query.where(WebhookDelivery.status == status)
        if event:
            query = query.where(WebhookDelivery.event == event)
        if webhook_id:
            query = query.where(WebhookDelivery.webhook_id == webhook_id)
        query = query.order_by(WebhookDelivery.created_at.desc())
        return await paginate_query(self.session, query, page, limit)
