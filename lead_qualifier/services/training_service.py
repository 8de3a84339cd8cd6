"""
Training service - closed-loop outcomes, model training and the version lifecycle.

NoModel -> Training -> Trained -> Active -> Superseded

Training is single-flight per organization and never blocks scoring: the
CPU-bound fit runs in a worker thread and the whole run is an asyncio task
that can be cancelled. Activation swaps the active version in a single
transaction under a per-organization lock, so a scoring pass sees either
the old or the new active model.
"""
import asyncio
import logging
import uuid
from collections import Counter, defaultdict
from datetime import datetime
from typing import Optional, Dict, List

from sklearn.model_selection import train_test_split
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.config import settings
from lead_qualifier.core.exceptions import (
    ConfigurationError,
    DataQualityError,
    InsufficientDataError,
    ModelLifecycleError,
    TrainingInProgressError,
    raise_not_found,
    raise_validation_error,
)
from lead_qualifier.database import async_session_factory
from lead_qualifier.models.activity import Actions
from lead_qualifier.models.lead import LeadStatus
from lead_qualifier.models.scoring import ModelStatus, Outcome, OutcomeLabel, ScoringModel
from lead_qualifier.repositories.activity_repo import ActivityLogRepository
from lead_qualifier.repositories.lead_repo import LeadRepository
from lead_qualifier.repositories.scoring_repo import (
    OutcomeRepository,
    ScoringHistoryRepository,
    ScoringModelRepository,
)
from lead_qualifier.scoring.features import FEATURE_NAMES, FeatureVector, extract_features
from lead_qualifier.scoring.strategies import STRATEGIES, evaluate_model, get_strategy

logger = logging.getLogger(__name__)

# Outcome label -> lead pipeline status
OUTCOME_LEAD_STATUS = {
    OutcomeLabel.CONVERTED: LeadStatus.CONVERTED,
    OutcomeLabel.REJECTED: LeadStatus.REJECTED,
}

# In-flight training per organization (this process)
_training_tasks: Dict[uuid.UUID, asyncio.Task] = {}
_activation_locks: Dict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)


def is_training(org_id: uuid.UUID) -> bool:
    task = _training_tasks.get(org_id)
    return task is not None and not task.done()


def _claim(org_id: uuid.UUID, task: asyncio.Task):
    if is_training(org_id):
        raise TrainingInProgressError(org_id)
    _training_tasks[org_id] = task


def _release(org_id: uuid.UUID, task: asyncio.Task):
    if _training_tasks.get(org_id) is task:
        _training_tasks.pop(org_id, None)


class TrainingService:
    """Service for outcomes, training and model activation."""

    def __init__(self, session: AsyncSession, session_factory=None, strategy: Optional[str] = None):
        self.session = session
        self.session_factory = session_factory or async_session_factory
        self.strategy_name = strategy or settings.MODEL_STRATEGY
        self.lead_repo = LeadRepository(session)
        self.model_repo = ScoringModelRepository(session)
        self.outcome_repo = OutcomeRepository(session)
        self.history_repo = ScoringHistoryRepository(session)
        self.activity_repo = ActivityLogRepository(session)

    # --- Outcomes ---

    async def record_outcome(
        self,
        org_id: uuid.UUID,
        lead_id: uuid.UUID,
        label: str,
        notes: Optional[str] = None,
        recorded_by: Optional[uuid.UUID] = None,
        outcome_value: Optional[float] = None,
        days_to_outcome: Optional[int] = None
    ) -> dict:
        """
        Append an outcome for a lead. A second outcome for the same lead
        supersedes the first; the history is kept.
        days_to_outcome defaults to the whole days since the lead was created.
        """
        if label not in OutcomeLabel.ALL:
            raise_validation_error(f"Outcome must be one of {', '.join(OutcomeLabel.ALL)}", "label")

        lead = await self.lead_repo.get_for_org(org_id, lead_id)
        if not lead:
            raise_not_found("Lead", str(lead_id))

        if days_to_outcome is None and lead.created_at:
            days_to_outcome = max(0, (datetime.utcnow() - lead.created_at).days)

        previous = await self.outcome_repo.get_effective_for_lead(org_id, lead_id)
        outcome = Outcome(
            org_id=org_id,
            lead_id=lead_id,
            label=label,
            supersedes_id=previous.id if previous else None,
            notes=notes,
            outcome_value=outcome_value,
            days_to_outcome=days_to_outcome,
            recorded_by=recorded_by,
        )
        await self.outcome_repo.add(outcome, commit=False)
        await self.lead_repo.update_status(lead, OUTCOME_LEAD_STATUS[label], commit=False)
        await self.activity_repo.log(
            org_id=org_id,
            action=Actions.OUTCOME_RECORDED,
            entity_type="lead",
            entity_id=lead_id,
            actor_id=recorded_by,
            description=f"Lead marked as {label}" + (" (correction)" if previous else ""),
            meta_data={
                "label": label,
                "supersedes": str(previous.id) if previous else None,
                "outcome_value": outcome_value,
                "days_to_outcome": days_to_outcome,
            },
            commit=False,
        )
        await self.session.commit()
        await self.session.refresh(outcome)
        logger.info(f"Outcome {label} recorded for lead {lead_id} (org {org_id})")

        training_started = False
        total = await self.outcome_repo.count_effective(org_id)
        if (
            total >= settings.MIN_TRAINING_OUTCOMES
            and await self.model_repo.count(org_id) == 0
            and not is_training(org_id)
        ):
            self.start_background_training(org_id, actor_id=recorded_by)
            training_started = True

        return {
            "outcome": outcome,
            "total_outcomes": total,
            "retraining_recommended": await self.retraining_recommended(org_id),
            "training_started": training_started,
        }

    # --- Training ---

    def start_background_training(self, org_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> asyncio.Task:
        """Run training as a detached task with its own session. Raises TrainingInProgressError."""
        if is_training(org_id):
            raise TrainingInProgressError(org_id)
        task = asyncio.create_task(self._train_in_new_session(org_id, actor_id))
        _claim(org_id, task)
        task.add_done_callback(lambda t: _release(org_id, t))
        logger.info(f"Background training started for org {org_id}")
        return task

    async def _train_in_new_session(self, org_id: uuid.UUID, actor_id: Optional[uuid.UUID]):
        async with self.session_factory() as session:
            service = TrainingService(session, self.session_factory, self.strategy_name)
            try:
                return await service._train(org_id, activate=True, actor_id=actor_id)
            except InsufficientDataError as e:
                logger.warning(f"Background training skipped for org {org_id}: {e.message}")
            except asyncio.CancelledError:
                logger.info(f"Training cancelled for org {org_id}")
                raise
            except Exception:
                logger.exception(f"Background training failed for org {org_id}")
                raise

    async def train(
        self,
        org_id: uuid.UUID,
        activate: bool = True,
        actor_id: Optional[uuid.UUID] = None
    ) -> ScoringModel:
        """Train a new model version now. Raises TrainingInProgressError or InsufficientDataError."""
        task = asyncio.current_task()
        _claim(org_id, task)
        try:
            return await self._train(org_id, activate=activate, actor_id=actor_id)
        finally:
            _release(org_id, task)

    def cancel_training(self, org_id: uuid.UUID) -> bool:
        """Cancel the in-flight training run of an organization. No version is created."""
        task = _training_tasks.get(org_id)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info(f"Training cancellation requested for org {org_id}")
        return True

    def _check_enough(self, total: int, per_class: Counter):
        counts = {label: per_class.get(label, 0) for label in OutcomeLabel.ALL}
        if total < settings.MIN_TRAINING_OUTCOMES:
            raise InsufficientDataError(total, settings.MIN_TRAINING_OUTCOMES, counts)
        if min(counts.values()) < settings.MIN_OUTCOMES_PER_CLASS:
            raise InsufficientDataError(
                total, settings.MIN_TRAINING_OUTCOMES, counts, settings.MIN_OUTCOMES_PER_CLASS
            )

    async def _training_examples(self, org_id: uuid.UUID, outcomes: List[Outcome]):
        """Feature rows from each lead's latest scoring history; leads never scored are extracted now."""
        lead_ids = [outcome.lead_id for outcome in outcomes]
        history = await self.history_repo.latest_for_leads(org_id, lead_ids)
        unscored = [lead_id for lead_id in lead_ids if lead_id not in history]
        leads = {lead.id: lead for lead in await self.lead_repo.get_many(org_id, unscored)}

        rows, labels = [], []
        for outcome in outcomes:
            if outcome.lead_id in history:
                features = FeatureVector.from_dict(history[outcome.lead_id].feature_vector)
            else:
                lead = leads.get(outcome.lead_id)
                if lead is None:
                    continue
                try:
                    features = extract_features(lead)
                except DataQualityError:
                    continue
            rows.append(features.as_row(FEATURE_NAMES))
            labels.append(1 if outcome.label == OutcomeLabel.CONVERTED else 0)
        return rows, labels

    async def _train(self, org_id: uuid.UUID, activate: bool, actor_id: Optional[uuid.UUID]) -> ScoringModel:
        if self.strategy_name not in STRATEGIES:
            raise ConfigurationError(f"Unknown model strategy '{self.strategy_name}'")

        outcomes = await self.outcome_repo.list_effective(org_id)
        self._check_enough(len(outcomes), Counter(outcome.label for outcome in outcomes))

        rows, labels = await self._training_examples(org_id, outcomes)
        self._check_enough(
            len(rows),
            Counter(OutcomeLabel.CONVERTED if label else OutcomeLabel.REJECTED for label in labels),
        )

        X_train, X_test, y_train, y_test = train_test_split(
            rows,
            labels,
            test_size=settings.TRAINING_HOLDOUT_FRACTION,
            stratify=labels,
            random_state=settings.TRAINING_RANDOM_SEED,
        )
        strategy = get_strategy(self.strategy_name, random_state=settings.TRAINING_RANDOM_SEED)
        logger.info(
            f"Training {strategy.name} for org {org_id} on {len(X_train)} examples ({len(X_test)} held out)"
        )
        parameters = await asyncio.to_thread(strategy.fit, X_train, y_train, FEATURE_NAMES)
        metrics = evaluate_model(strategy, parameters, X_test, y_test, FEATURE_NAMES)
        metrics["train_size"] = len(X_train)
        metrics["class_balance"] = {
            OutcomeLabel.CONVERTED: sum(labels),
            OutcomeLabel.REJECTED: len(labels) - sum(labels),
        }

        model = ScoringModel(
            org_id=org_id,
            model_version=await self.model_repo.next_version(org_id),
            strategy=strategy.name,
            feature_names=list(FEATURE_NAMES),
            parameters=parameters,
            performance_metrics=metrics,
            trained_on_count=len(outcomes),
            status=ModelStatus.TRAINED,
        )
        await self.model_repo.add(model, commit=False)
        await self.activity_repo.log(
            org_id=org_id,
            action=Actions.MODEL_TRAINED,
            entity_type="scoring_model",
            entity_id=model.id,
            actor_id=actor_id,
            description=f"Model v{model.model_version} trained on {len(outcomes)} outcomes",
            meta_data={"model_version": model.model_version, "accuracy": metrics["accuracy"]},
            commit=False,
        )
        await self.session.commit()
        await self.session.refresh(model)
        logger.info(
            f"Model v{model.model_version} trained for org {org_id}: "
            f"accuracy={metrics['accuracy']} f1={metrics['f1Score']}"
        )

        if activate:
            active = await self.model_repo.get_active(org_id)
            if active is None or metrics["accuracy"] >= settings.MODEL_ACTIVATION_MIN_ACCURACY:
                model = await self.activate(org_id, model.model_version, actor_id=actor_id)
            else:
                logger.warning(
                    f"Model v{model.model_version} for org {org_id} not activated: accuracy "
                    f"{metrics['accuracy']} below {settings.MODEL_ACTIVATION_MIN_ACCURACY}; "
                    f"v{active.model_version} stays active"
                )
        return model

    # --- Lifecycle ---

    async def activate(
        self,
        org_id: uuid.UUID,
        model_version: int,
        actor_id: Optional[uuid.UUID] = None
    ) -> ScoringModel:
        """Promote a trained version and supersede the current one atomically."""
        async with _activation_locks[org_id]:
            model = await self.model_repo.get_by_version(org_id, model_version, for_update=True)
            if not model:
                raise_not_found("Scoring model", str(model_version))
            if model.status == ModelStatus.ACTIVE:
                return model
            if model.status != ModelStatus.TRAINED:
                raise ModelLifecycleError(
                    f"Model v{model_version} is {model.status}; only trained models can be activated"
                )

            now = datetime.utcnow()
            previous = await self.model_repo.get_active(org_id, for_update=True)
            if previous:
                previous.is_active = False
                previous.status = ModelStatus.SUPERSEDED
                previous.superseded_at = now
                self.session.add(previous)
                # Demote before promoting; one active version per organization
                await self.session.flush()

            model.is_active = True
            model.status = ModelStatus.ACTIVE
            model.activated_at = now
            self.session.add(model)
            await self.activity_repo.log(
                org_id=org_id,
                action=Actions.MODEL_ACTIVATED,
                entity_type="scoring_model",
                entity_id=model.id,
                actor_id=actor_id,
                description=f"Model v{model_version} activated",
                meta_data={
                    "model_version": model_version,
                    "superseded_version": previous.model_version if previous else None,
                },
                commit=False,
            )
            await self.session.commit()
            await self.session.refresh(model)

        logger.info(f"Model v{model_version} active for org {org_id}")
        return model

    async def list_models(self, org_id: uuid.UUID) -> List[ScoringModel]:
        return await self.model_repo.list_versions(org_id)

    async def retraining_recommended(self, org_id: uuid.UUID) -> bool:
        """Advisory: enough outcomes for a first model, or enough new ones since the active model."""
        total = await self.outcome_repo.count_effective(org_id)
        active = await self.model_repo.get_active(org_id)
        if active is None:
            return total >= settings.MIN_TRAINING_OUTCOMES
        return total - active.trained_on_count >= settings.RETRAIN_TRIGGER_OUTCOMES

    async def get_model_stats(self, org_id: uuid.UUID) -> dict:
        active = await self.model_repo.get_active(org_id)
        by_label = await self.outcome_repo.count_effective_by_label(org_id)
        return {
            "current_model": active,
            "total_outcomes": sum(by_label.values()),
            "outcomes_by_label": {label: by_label.get(label, 0) for label in OutcomeLabel.ALL},
            "retraining_recommended": await self.retraining_recommended(org_id),
            "training_in_progress": is_training(org_id),
        }
