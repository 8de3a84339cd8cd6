"""
Base interfaces for integration providers.
"""
from abc import ABC, abstractmethod
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.models.lead import Lead
from lead_qualifier.scoring.features import Enrichment


class EnrichmentProvider(ABC):
    """Base interface for lead enrichment sources (stored research, Clearbit, etc.)"""

    @abstractmethod
    async def fetch(self, session: AsyncSession, lead: Lead) -> Optional[Enrichment]:
        """
        Enrichment signals for a lead, or None when nothing is known.

        Returns:
            Enrichment with data keyed by enrichment type:
            {
                "company_research": {"company_size": "51-200", "industry": "SaaS", "health_score": 8},
                "intent_analysis": {"buying_intent_score": 72},
                "authority_assessment": {"authority_level": 0.8},
                "urgency_signals": {"urgency_score": 0.6},
            }
        """
        pass


class EmailProvider(ABC):
    """Base interface for email providers (SMTP, SendGrid, SES, etc.)"""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None,
        from_email: Optional[str] = None
    ) -> bool:
        """Send an email. Returns False when the provider could not hand it off."""
        pass
