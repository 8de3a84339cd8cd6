"""
Qualification service - the scoring pipeline for one lead or a batch.

snapshot (criteria, settings, active model) -> features -> rule score ->
blend -> persist (lead, scoring history, activity, hot lead alerts) ->
emit lead.qualified -> email hot lead alerts.

The snapshot is read once at the start of a pass, so a model activated
mid-pass is picked up by the next pass, never half-way.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional, List

from fastapi.encoders import jsonable_encoder
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.config import settings
from lead_qualifier.core.exceptions import DataQualityError, NoCriteriaError, raise_not_found
from lead_qualifier.models.activity import Actions
from lead_qualifier.models.lead import Lead, QualificationStatus
from lead_qualifier.models.scoring import ScoringHistory
from lead_qualifier.models.webhook import WebhookEvent
from lead_qualifier.repositories.activity_repo import ActivityLogRepository
from lead_qualifier.repositories.criterion_repo import CriterionRepository
from lead_qualifier.repositories.lead_repo import LeadRepository
from lead_qualifier.repositories.scoring_repo import ScoringHistoryRepository, ScoringModelRepository
from lead_qualifier.schemas.scoring import RecalculateResponse
from lead_qualifier.scoring.blend import QualificationResult, blend, build_policy
from lead_qualifier.scoring.features import FeatureVector, extract_features
from lead_qualifier.scoring.labels import Label
from lead_qualifier.scoring.rules import score_criteria
from lead_qualifier.scoring.strategies import ModelSnapshot
from lead_qualifier.services.integrations.base import EnrichmentProvider
from lead_qualifier.services.integrations.enrichment import get_enrichment_provider
from lead_qualifier.services.notification_service import NotificationService
from lead_qualifier.services.scoring_service import EffectiveScoringSettings, ScoringService
from lead_qualifier.services.webhook_service import WebhookDispatcher, get_webhook_dispatcher

logger = logging.getLogger(__name__)

# Lead fields forwarded to webhook subscribers
WEBHOOK_LEAD_FIELDS = (
    "id", "email", "first_name", "last_name", "phone", "job_title",
    "company_name", "company_website", "company_size", "industry",
    "budget_range", "timeline", "status", "created_at",
)


class ScoringSnapshot:
    """Read-only inputs for one scoring pass."""

    def __init__(self, org_id: uuid.UUID, criteria: list, scoring_settings: EffectiveScoringSettings,
                 model: Optional[ModelSnapshot]):
        self.org_id = org_id
        self.criteria = criteria
        self.settings = scoring_settings
        self.thresholds = scoring_settings.thresholds  # raises InvalidThresholdsError
        self.model = model

    def policy(self):
        return build_policy(self.settings.blend_policy, self.model, self.settings.model_weight)


class QualificationService:
    """Service for scoring leads."""

    def __init__(
        self,
        session: AsyncSession,
        enrichment_provider: Optional[EnrichmentProvider] = None,
        dispatcher: Optional[WebhookDispatcher] = None,
        notification_service: Optional[NotificationService] = None
    ):
        self.session = session
        self.enrichment_provider = enrichment_provider or get_enrichment_provider()
        self.dispatcher = dispatcher or get_webhook_dispatcher()
        self.notification_service = notification_service or NotificationService(session)
        self.lead_repo = LeadRepository(session)
        self.criterion_repo = CriterionRepository(session)
        self.model_repo = ScoringModelRepository(session)
        self.history_repo = ScoringHistoryRepository(session)
        self.activity_repo = ActivityLogRepository(session)
        self.scoring_service = ScoringService(session)

    async def load_snapshot(self, org_id: uuid.UUID) -> ScoringSnapshot:
        criteria = await self.criterion_repo.list_for_org(org_id)
        scoring_settings = await self.scoring_service.get_settings(org_id)
        active = await self.model_repo.get_active(org_id)
        model = ModelSnapshot.from_model(active) if active else None
        return ScoringSnapshot(org_id, list(criteria), scoring_settings, model)

    async def qualify(self, org_id: uuid.UUID, lead_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> QualificationResult:
        """Score one lead and persist the result. Raises ConfigurationError when scoring is not configured."""
        lead = await self.lead_repo.get_for_org(org_id, lead_id)
        if not lead:
            raise_not_found("Lead", str(lead_id))

        previous = self._current(lead)
        await self.lead_repo.set_qualification_status(lead, QualificationStatus.PROCESSING)
        try:
            snapshot = await self.load_snapshot(org_id)
        except Exception:
            await self._mark_failed(lead_id)
            raise
        return await self._qualify_lead(lead, snapshot, actor_id, previous)

    @staticmethod
    def _current(lead: Lead) -> tuple:
        return lead.qualification_status, lead.score, lead.label

    async def _mark_failed(self, lead_id: uuid.UUID):
        """Scoring inputs could not be read; the lead keeps its last score."""
        await self.session.rollback()
        lead = await self.lead_repo.get(lead_id)
        if lead is not None:
            await self.lead_repo.set_qualification_status(lead, QualificationStatus.FAILED)
        logger.error(f"Lead {lead_id} qualification failed: scoring inputs could not be loaded")

    async def _fetch_enrichment(self, lead: Lead):
        try:
            return await self.enrichment_provider.fetch(self.session, lead)
        except Exception as e:
            logger.warning(f"Enrichment unavailable for lead {lead.id}: {e.__class__.__name__}")
            return None

    async def _qualify_lead(
        self,
        lead: Lead,
        snapshot: ScoringSnapshot,
        actor_id: Optional[uuid.UUID] = None,
        previous: Optional[tuple] = None
    ) -> QualificationResult:
        if previous is None:
            previous = self._current(lead)
            await self.lead_repo.set_qualification_status(lead, QualificationStatus.PROCESSING)
        enrichment = await self._fetch_enrichment(lead)

        insufficient_data = False
        try:
            features = extract_features(lead, enrichment, settings.ENRICHMENT_MIN_CONFIDENCE)
        except DataQualityError as e:
            logger.warning(f"Lead {lead.id} scored with insufficient data: {e.message}")
            features = FeatureVector.empty()
            insufficient_data = True

        try:
            rule_result = score_criteria(snapshot.criteria, features)
        except NoCriteriaError:
            await self._mark_unscored(lead, actor_id)
            raise NoCriteriaError(snapshot.org_id)

        result = blend(rule_result, snapshot.policy(), features, snapshot.thresholds, insufficient_data)

        previous_status, previous_score, previous_label = previous
        changed = (
            previous_status != QualificationStatus.COMPLETED
            or previous_score != result.score
            or previous_label != result.label
        )
        now = datetime.utcnow()
        await self.lead_repo.apply_qualification(lead, result, now, commit=False)
        await self.history_repo.add(
            ScoringHistory(
                org_id=lead.org_id,
                lead_id=lead.id,
                score=result.score,
                label=result.label,
                rule_score=result.rule_score,
                model_score=result.model_score,
                model_version=result.model_version,
                blend_policy=result.blend_policy,
                degraded=result.degraded,
                feature_vector=features.to_dict(),
                created_at=now,
            ),
            commit=False,
        )
        await self.activity_repo.log(
            org_id=lead.org_id,
            action=Actions.LEAD_QUALIFIED,
            entity_type="lead",
            entity_id=lead.id,
            actor_id=actor_id,
            description=f"Lead qualified as {result.label} ({result.score:g})",
            meta_data={
                "score": result.score,
                "label": result.label,
                "model_version": result.model_version,
                "blend_policy": result.blend_policy,
                "degraded": result.degraded,
            },
            commit=False,
        )
        alert_recipients = []
        if changed and result.label == Label.HOT and settings.HOT_LEAD_ALERTS_ENABLED:
            alert_recipients = await self.notification_service.add_hot_lead_notifications(lead, result, commit=False)
        await self.session.commit()
        logger.info(
            f"Lead {lead.id} (org {lead.org_id}) qualified: {result.label} {result.score} "
            f"[{result.blend_policy}{', degraded' if result.degraded else ''}]"
        )

        if changed:
            await self._notify(lead, result)
        if alert_recipients:
            await self.notification_service.send_hot_lead_emails(lead, result, alert_recipients)
        return result

    async def _mark_unscored(self, lead: Lead, actor_id: Optional[uuid.UUID]):
        await self.lead_repo.mark_unscored(
            lead, "Not scored: no ICP criteria are configured for this organization.", commit=False
        )
        await self.activity_repo.log(
            org_id=lead.org_id,
            action=Actions.LEAD_UNSCORED,
            entity_type="lead",
            entity_id=lead.id,
            actor_id=actor_id,
            description="Lead left unscored: no ICP criteria configured",
            commit=False,
        )
        await self.session.commit()
        logger.warning(f"Lead {lead.id} left unscored: org {lead.org_id} has no ICP criteria")

    def build_payload(self, lead: Lead, result: QualificationResult) -> dict:
        payload = {
            "lead": {field: getattr(lead, field) for field in WEBHOOK_LEAD_FIELDS},
            "qualification": result.public_dict(),
        }
        payload["qualification"].update({
            "model_version": result.model_version,
            "degraded": result.degraded,
            "qualified_at": lead.qualified_at,
        })
        return jsonable_encoder(payload)

    async def _notify(self, lead: Lead, result: QualificationResult):
        """Hand the event to the dispatcher; delivery happens off the scoring path."""
        try:
            await self.dispatcher.emit(lead.org_id, WebhookEvent.LEAD_QUALIFIED, self.build_payload(lead, result))
        except Exception:
            # qualification is already committed
            logger.exception(f"Could not emit {WebhookEvent.LEAD_QUALIFIED} for lead {lead.id}")

    async def recalculate(
        self,
        org_id: uuid.UUID,
        lead_ids: Optional[List[uuid.UUID]] = None,
        actor_id: Optional[uuid.UUID] = None
    ) -> RecalculateResponse:
        """Re-score specific leads, or every lead of the organization, with one snapshot."""
        if lead_ids:
            leads = await self.lead_repo.get_many(org_id, lead_ids)
        else:
            leads = await self.lead_repo.list_for_org(org_id)

        if not leads:
            return RecalculateResponse(total_updated=0, avg_score_before=0, avg_score_after=0)

        snapshot = await self.load_snapshot(org_id)
        scores_before = [lead.score for lead in leads if lead.score is not None]

        scores_after = []
        label_changes = 0
        for lead in leads:
            previous_label = lead.label
            result = await self._qualify_lead(lead, snapshot, actor_id)
            scores_after.append(result.score)
            if result.label != previous_label:
                label_changes += 1

        return RecalculateResponse(
            total_updated=len(scores_after),
            avg_score_before=round(sum(scores_before) / len(scores_before), 1) if scores_before else 0,
            avg_score_after=round(sum(scores_after) / len(scores_after), 1),
            label_changes=label_changes,
            model_version=snapshot.model.model_version if snapshot.model else None,
        )
