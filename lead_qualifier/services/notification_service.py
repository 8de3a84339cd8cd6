"""
Notification service - hot lead alerts for admins and managers.

Alert rows are written inside the qualification transaction, so a lead
is never alerted about without the result being stored. Emails go out
after the commit and never fail the qualification.
"""
import logging
import uuid
from html import escape
from typing import Optional, List

from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.config import settings
from lead_qualifier.core.exceptions import raise_not_found
from lead_qualifier.models.lead import Lead
from lead_qualifier.models.notification import MemberRole, Notification, NotificationType, OrganizationMember
from lead_qualifier.repositories.notification_repo import NotificationRepository, OrganizationMemberRepository
from lead_qualifier.scoring.blend import QualificationResult
from lead_qualifier.services.integrations.base import EmailProvider
from lead_qualifier.services.integrations.email import get_email_provider

logger = logging.getLogger(__name__)


def lead_display_name(lead: Lead) -> str:
    name = f"{lead.first_name or ''} {lead.last_name or ''}".strip()
    return name or lead.email or "Unknown"


class NotificationService:
    """Service for in-app notifications and alert emails."""

    def __init__(self, session: AsyncSession, email_provider: Optional[EmailProvider] = None):
        self.session = session
        self.email_provider = email_provider
        self.member_repo = OrganizationMemberRepository(session)
        self.notification_repo = NotificationRepository(session)

    async def add_hot_lead_notifications(
        self,
        lead: Lead,
        result: QualificationResult,
        commit: bool = True
    ) -> List[OrganizationMember]:
        """One notification per active admin or manager. Returns the recipients."""
        members = await self.member_repo.list_by_roles(lead.org_id, MemberRole.LEAD_ALERTS)
        for member in members:
            await self.notification_repo.add(
                Notification(
                    org_id=lead.org_id,
                    user_id=member.user_id,
                    type=NotificationType.HOT_LEAD,
                    title=f"New hot lead: {lead_display_name(lead)}",
                    message=f"{lead.company_name or lead.email} - Score: {result.score:g}",
                    data={"lead_id": str(lead.id), "score": result.score},
                ),
                commit=False,
            )
        if commit:
            await self.session.commit()
        return list(members)

    def build_hot_lead_email(self, lead: Lead, result: QualificationResult) -> dict:
        name = lead_display_name(lead)
        company = lead.company_name or "Unknown Company"
        link = f"{settings.APP_BASE_URL.rstrip('/')}/leads/{lead.id}"
        subject = f"Hot lead alert: {name} from {company} (Score: {result.score:g})"
        body = (
            f"{name} ({lead.email or 'no email'}) from {company} scored {result.score:g}/100.\n\n"
            f"Why: {result.reasoning}\n"
            f"Next step: {result.recommended_action}\n\n"
            f"View lead: {link}\n"
        )
        html = (
            f"<h2>Hot lead: {escape(name)}</h2>"
            f"<p><strong>{escape(company)}</strong> scored <strong>{result.score:g}/100</strong>.</p>"
            f"<p>{escape(result.reasoning or '')}</p>"
            f"<p><em>Next step:</em> {escape(result.recommended_action or '')}</p>"
            f'<p><a href="{escape(link)}">View lead</a></p>'
        )
        return {"subject": subject, "body": body, "html": html}

    async def send_hot_lead_emails(
        self,
        lead: Lead,
        result: QualificationResult,
        recipients: List[OrganizationMember]
    ) -> int:
        """Email each recipient that has an address. Returns the number handed off."""
        addresses = sorted({member.email for member in recipients if member.email})
        if not addresses:
            return 0

        provider = self.email_provider or get_email_provider()
        email = self.build_hot_lead_email(lead, result)
        sent = 0
        for address in addresses:
            try:
                if await provider.send(address, email["subject"], email["body"], html=email["html"]):
                    sent += 1
            except Exception:
                logger.exception(f"Hot lead email for lead {lead.id} to {address} failed")
        logger.info(f"Hot lead alert for lead {lead.id} emailed to {sent}/{len(addresses)} recipients")
        return sent

    # --- Inbox ---

    async def list_for_user(self, org_id: uuid.UUID, user_id: uuid.UUID, unread_only: bool = False) -> List[Notification]:
        return await self.notification_repo.list_for_user(org_id, user_id, unread_only=unread_only)

    async def mark_read(self, org_id: uuid.UUID, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
        notification = await self.notification_repo.get_for_user(org_id, user_id, notification_id)
        if not notification:
            raise_not_found("Notification", str(notification_id))
        return await self.notification_repo.mark_read(notification)
