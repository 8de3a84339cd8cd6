"""
Notification inbox routes for the calling user.
"""
import uuid
from typing import List
from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.database import get_session
from lead_qualifier.services.notification_service import NotificationService
from lead_qualifier.schemas.notification import NotificationResponse
from lead_qualifier.api.deps import Principal, get_current_user_principal

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    principal: Principal = Depends(get_current_user_principal),
    session: AsyncSession = Depends(get_session)
):
    """The caller's notifications, newest first."""
    notification_service = NotificationService(session)
    return await notification_service.list_for_user(principal.org_id, principal.user_id, unread_only=unread_only)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: uuid.UUID,
    principal: Principal = Depends(get_current_user_principal),
    session: AsyncSession = Depends(get_session)
):
    """Mark one of the caller's notifications as read."""
    notification_service = NotificationService(session)
    return await notification_service.mark_read(principal.org_id, principal.user_id, notification_id)
