# tests/test_qualification_service.py
"""
Qualification pipeline tests: persistence, model blending, unscored and
insufficient-data paths, change-driven webhooks and batch recalculation.

Run with: pytest tests/test_qualification_service.py -v
"""

import json
from datetime import datetime

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import SQLAlchemyError

from lead_qualifier.core.exceptions import ConfigurationError, InvalidThresholdsError, NoCriteriaError
from lead_qualifier.models.activity import Actions
from lead_qualifier.models.lead import EnrichmentType, Lead, LeadEnrichment, QualificationStatus
from lead_qualifier.models.scoring import ModelStatus, ScoringModel
from lead_qualifier.repositories.activity_repo import ActivityLogRepository
from lead_qualifier.repositories.scoring_repo import ScoringHistoryRepository
from lead_qualifier.scoring.features import FEATURE_NAMES
from lead_qualifier.services.integrations.base import EnrichmentProvider
from lead_qualifier.services.integrations.enrichment import StoredEnrichmentProvider
from lead_qualifier.services.qualification_service import QualificationService
from lead_qualifier.services.scoring_service import ScoringService
from lead_qualifier.services.webhook_service import WebhookDispatcher


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def sent():
    return []


@pytest.fixture
def dispatcher(session_factory, clock, sent):
    def subscriber(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200, text="ok")

    return WebhookDispatcher(session_factory=session_factory, transport=httpx.MockTransport(subscriber), clock=clock)


@pytest.fixture
def service(session, null_enrichment, dispatcher):
    return QualificationService(session, enrichment_provider=null_enrichment, dispatcher=dispatcher)


@pytest_asyncio.fixture
async def active_model(session, org_id):
    model = ScoringModel(
        org_id=org_id,
        model_version=1,
        strategy="weighted_features",
        feature_names=list(FEATURE_NAMES),
        parameters={"weights": [0.1] * len(FEATURE_NAMES), "threshold": 0.5},
        status=ModelStatus.ACTIVE,
        is_active=True,
    )
    session.add(model)
    await session.commit()
    return model


class BrokenEnrichment(EnrichmentProvider):
    async def fetch(self, session, lead):
        raise RuntimeError("provider down")


class RecordingEnrichment(EnrichmentProvider):
    def __init__(self):
        self.statuses = []

    async def fetch(self, session, lead):
        self.statuses.append(lead.qualification_status)
        return None


class UnreachableDispatcher:
    async def emit(self, org_id, event, payload):
        raise RuntimeError("queue unavailable")


# ============================================================================
# TEST: Single lead
# ============================================================================

class TestQualify:

    async def test_result_is_persisted(self, service, session, org_id, criteria, lead):
        result = await service.qualify(org_id, lead.id)

        assert result.score == 100.0
        assert result.label == "hot"
        assert result.blend_policy == "rule_only.v1"

        await session.refresh(lead)
        assert lead.score == 100.0
        assert lead.label == "hot"
        assert lead.qualification_status == QualificationStatus.COMPLETED
        assert lead.breakdown["Budget"]["note"] == "Within ideal budget range ($50k+)"
        assert lead.recommended_action == "Schedule a discovery call with this decision maker immediately"

        history = await ScoringHistoryRepository(session).list_for_lead(org_id, lead.id)
        assert len(history) == 1
        assert history[0].feature_vector["values"]["seniority"] == 0.9
        assert history[0].blend_policy == "rule_only.v1"

        activity = await ActivityLogRepository(session).get_by_entity(org_id, "lead", lead.id)
        assert [entry.action for entry in activity] == [Actions.LEAD_QUALIFIED]

    async def test_changed_result_is_emitted_once(self, service, dispatcher, sent, org_id, criteria, lead, webhook):
        await service.qualify(org_id, lead.id)
        await dispatcher.drain()
        await service.qualify(org_id, lead.id)
        await dispatcher.drain()

        assert len(sent) == 1
        assert sent[0]["event"] == "lead.qualified"
        assert sent[0]["payload"]["lead"]["email"] == "dana@acme.io"
        assert sent[0]["payload"]["qualification"]["label"] == "hot"
        assert sent[0]["payload"]["qualification"]["score"] == 100.0

    async def test_active_model_is_blended(self, service, org_id, criteria, lead, active_model):
        result = await service.qualify(org_id, lead.id)

        assert result.model_version == 1
        assert result.blend_policy == "blended.v1"
        assert result.model_score is not None
        assert result.score == round(0.5 * result.rule_score + 0.5 * result.model_score, 2)
        assert result.degraded is False

    async def test_broken_model_degrades(self, service, session, org_id, criteria, lead, active_model):
        active_model.parameters = {"weights": [0.5, 0.5], "threshold": 0.5}
        session.add(active_model)
        await session.commit()

        result = await service.qualify(org_id, lead.id)

        assert result.score == 100.0
        assert result.degraded is True
        assert result.blend_policy == "rule_only.v1"
        await session.refresh(lead)
        assert lead.qualification_degraded is True

    async def test_org_thresholds_apply(self, service, session, org_id, criteria, lead):
        await ScoringService(session).update_settings(org_id, hot_threshold=95, warm_threshold=85)
        lead.industry = "Healthcare"
        session.add(lead)
        await session.commit()

        result = await service.qualify(org_id, lead.id)

        assert result.score == 80.0
        assert result.label == "cold"

    async def test_no_criteria_leaves_lead_unscored(self, service, session, org_id, lead):
        with pytest.raises(NoCriteriaError):
            await service.qualify(org_id, lead.id)

        await session.refresh(lead)
        assert lead.qualification_status == QualificationStatus.UNSCORED
        assert lead.label is None
        assert lead.score is None
        activity = await ActivityLogRepository(session).get_by_action(org_id, Actions.LEAD_UNSCORED)
        assert len(activity) == 1

    async def test_empty_lead_is_insufficient_data(self, service, session, org_id, criteria):
        lead = Lead(org_id=org_id)
        session.add(lead)
        await session.commit()

        result = await service.qualify(org_id, lead.id)

        assert result.score == 0.0
        assert result.label == "cold"
        assert result.insufficient_data is True
        assert result.degraded is True
        assert result.unknown == ["Budget", "Industry"]

    async def test_enrichment_outage_does_not_block_scoring(self, session, dispatcher, org_id, criteria, lead):
        service = QualificationService(session, enrichment_provider=BrokenEnrichment(), dispatcher=dispatcher)

        result = await service.qualify(org_id, lead.id)

        assert result.score == 100.0

    async def test_emit_failure_does_not_fail_qualification(self, session, null_enrichment, org_id, criteria, lead):
        service = QualificationService(session, enrichment_provider=null_enrichment, dispatcher=UnreachableDispatcher())

        result = await service.qualify(org_id, lead.id)

        await session.refresh(lead)
        assert result.label == "hot"
        assert lead.label == "hot"

    async def test_lead_is_processing_while_scored(self, session, dispatcher, org_id, criteria, lead):
        enrichment = RecordingEnrichment()
        service = QualificationService(session, enrichment_provider=enrichment, dispatcher=dispatcher)

        await service.qualify(org_id, lead.id)

        assert enrichment.statuses == [QualificationStatus.PROCESSING]
        await session.refresh(lead)
        assert lead.qualification_status == QualificationStatus.COMPLETED

    async def test_unreadable_criteria_mark_lead_failed(self, service, session, org_id, criteria, lead, monkeypatch):
        async def unreadable(org_id):
            raise SQLAlchemyError("connection reset")

        monkeypatch.setattr(service.criterion_repo, "list_for_org", unreadable)

        with pytest.raises(SQLAlchemyError):
            await service.qualify(org_id, lead.id)

        await session.refresh(lead)
        assert lead.qualification_status == QualificationStatus.FAILED
        assert lead.score is None
        assert await ScoringHistoryRepository(session).list_for_lead(org_id, lead.id) == []


# ============================================================================
# TEST: Batch
# ============================================================================

class TestRecalculate:

    async def test_recalculate_all_leads(self, service, session, org_id, criteria, lead):
        other = Lead(org_id=org_id, email="kim@clinic.org", industry="Healthcare", budget_range="$75,000")
        session.add(other)
        await session.commit()

        first = await service.recalculate(org_id)
        second = await service.recalculate(org_id)

        assert first.total_updated == 2
        assert first.avg_score_before == 0
        assert first.avg_score_after == 90.0
        assert first.label_changes == 2
        assert first.model_version is None
        assert second.avg_score_before == 90.0
        assert second.label_changes == 0

    async def test_recalculate_selected_leads(self, service, session, org_id, criteria, lead):
        other = Lead(org_id=org_id, email="kim@clinic.org", industry="Healthcare")
        session.add(other)
        await session.commit()

        result = await service.recalculate(org_id, lead_ids=[other.id])

        assert result.total_updated == 1
        await session.refresh(lead)
        assert lead.score is None

    async def test_recalculate_without_leads(self, service, org_id):
        result = await service.recalculate(org_id)

        assert result.total_updated == 0


# ============================================================================
# TEST: Settings and enrichment collaborators
# ============================================================================

class TestScoringSettings:

    async def test_defaults(self, session, org_id):
        current = await ScoringService(session).get_settings(org_id)

        assert current.is_default is True
        assert (current.hot_threshold, current.warm_threshold) == (70, 40)
        assert current.blend_policy == "blended"

    async def test_partial_update_keeps_other_values(self, session, org_id):
        service = ScoringService(session)

        await service.update_settings(org_id, model_weight=0.8)
        updated = await service.update_settings(org_id, hot_threshold=80)

        assert updated.is_default is False
        assert updated.model_weight == 0.8
        assert updated.hot_threshold == 80
        assert updated.warm_threshold == 40

    @pytest.mark.parametrize("changes,error", [
        ({"hot_threshold": 30}, InvalidThresholdsError),
        ({"blend_policy": "model_only"}, ConfigurationError),
        ({"model_weight": 1.5}, ConfigurationError),
    ])
    async def test_invalid_updates_are_rejected(self, session, org_id, changes, error):
        with pytest.raises(error):
            await ScoringService(session).update_settings(org_id, **changes)


class TestStoredEnrichment:

    async def test_latest_row_per_type(self, session, lead):
        rows = [
            LeadEnrichment(lead_id=lead.id, enrichment_type=EnrichmentType.COMPANY_RESEARCH,
                           data={"health_score": 4}, confidence=0.9, source="crawler",
                           created_at=datetime(2026, 1, 1)),
            LeadEnrichment(lead_id=lead.id, enrichment_type=EnrichmentType.COMPANY_RESEARCH,
                           data={"health_score": 8}, confidence=0.8, source="crawler",
                           created_at=datetime(2026, 1, 10)),
            LeadEnrichment(lead_id=lead.id, enrichment_type=EnrichmentType.INTENT_ANALYSIS,
                           data={"buying_intent_score": 70}, confidence=0.6, source="intent-api",
                           created_at=datetime(2026, 1, 5)),
        ]
        for row in rows:
            session.add(row)
        await session.commit()

        enrichment = await StoredEnrichmentProvider().fetch(session, lead)

        assert enrichment.data[EnrichmentType.COMPANY_RESEARCH] == {"health_score": 8}
        assert enrichment.data[EnrichmentType.INTENT_ANALYSIS] == {"buying_intent_score": 70}
        assert enrichment.confidence == 0.6
        assert enrichment.source == "crawler,intent-api"

    async def test_no_rows(self, session, lead):
        assert await StoredEnrichmentProvider().fetch(session, lead) is None
