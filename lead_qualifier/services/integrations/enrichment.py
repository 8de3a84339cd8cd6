"""
Enrichment provider implementations.
The stored provider reads what the enrichment pipeline already wrote to lead_enrichment.
"""
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.models.lead import Lead
from lead_qualifier.repositories.lead_repo import LeadRepository
from lead_qualifier.scoring.features import Enrichment
from lead_qualifier.services.integrations.base import EnrichmentProvider


class NullEnrichmentProvider(EnrichmentProvider):
    """No enrichment; scoring runs on the capture-form answers only."""

    async def fetch(self, session: AsyncSession, lead: Lead) -> Optional[Enrichment]:
        return None


class StoredEnrichmentProvider(EnrichmentProvider):
    """
    Latest enrichment row per type for the lead.
    Confidence of the combined result is the lowest confidence reported.
    """

    async def fetch(self, session: AsyncSession, lead: Lead) -> Optional[Enrichment]:
        rows = await LeadRepository(session).get_enrichments(lead.id)
        if not rows:
            return None

        data = {}
        confidences = []
        sources = []
        for row in rows:  # newest first
            if row.enrichment_type in data:
                continue
            data[row.enrichment_type] = row.data or {}
            if row.confidence is not None:
                confidences.append(row.confidence)
            if row.source and row.source not in sources:
                sources.append(row.source)

        return Enrichment(
            data=data,
            confidence=min(confidences) if confidences else None,
            source=",".join(sources) or None,
        )


# Provider factory
_current_provider: EnrichmentProvider = None


def get_enrichment_provider() -> EnrichmentProvider:
    """Get the current enrichment provider instance."""
    global _current_provider
    if _current_provider is None:
        _current_provider = StoredEnrichmentProvider()
    return _current_provider


def set_enrichment_provider(provider: EnrichmentProvider) -> None:
    """Set the enrichment provider (for testing or switching providers)."""
    global _current_provider
    _current_provider = provider
