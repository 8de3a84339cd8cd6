"""
Webhook delivery audit routes.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.database import get_session
from lead_qualifier.repositories.webhook_repo import WebhookDeliveryRepository
from lead_qualifier.schemas.common import PaginatedResponse
from lead_qualifier.schemas.webhook import WebhookDeliveryResponse
from lead_qualifier.api.deps import get_current_org_id

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.get("/deliveries", response_model=PaginatedResponse[WebhookDeliveryResponse])
async def list_deliveries(
    status: Optional[str] = None,
    event: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    org_id=Depends(get_current_org_id),
    session: AsyncSession = Depends(get_session)
):
    """Delivery attempts for the organization, newest first."""
    delivery_repo = WebhookDeliveryRepository(session)
    return await delivery_repo.search(org_id, status=status, event=event, page=page, limit=limit)
