"""
Scoring API routes - model lifecycle, training, settings and recalculation.
"""
from typing import List
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.database import get_session
from lead_qualifier.services.qualification_service import QualificationService
from lead_qualifier.services.scoring_service import ScoringService
from lead_qualifier.services.training_service import TrainingService
from lead_qualifier.schemas.scoring import (
    ModelStatsResponse, ScoringModelResponse, TrainingStartedResponse,
    ScoringSettingsResponse, ScoringSettingsUpdate,
    RecalculateRequest, RecalculateResponse
)
from lead_qualifier.schemas.common import MessageResponse
from lead_qualifier.api.deps import Principal, get_current_principal

router = APIRouter(prefix="/api/scoring", tags=["scoring"])


@router.get("/retrain", response_model=ModelStatsResponse)
async def get_model_stats(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Active model, outcome counts and whether retraining is recommended."""
    training_service = TrainingService(session)
    return await training_service.get_model_stats(principal.org_id)


@router.post("/retrain", response_model=ScoringModelResponse, status_code=201)
async def retrain_model(
    background: bool = Query(False),
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Train a new model version from the recorded outcomes."""
    training_service = TrainingService(session)
    if background:
        training_service.start_background_training(principal.org_id, actor_id=principal.user_id)
        started = TrainingStartedResponse(message="Model training started")
        return JSONResponse(status_code=202, content=started.model_dump())
    return await training_service.train(principal.org_id, actor_id=principal.user_id)


@router.delete("/retrain", response_model=MessageResponse)
async def cancel_training(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Cancel the in-flight training run."""
    training_service = TrainingService(session)
    if training_service.cancel_training(principal.org_id):
        return MessageResponse(message="Training cancelled")
    return MessageResponse(message="No training in progress")


@router.get("/models", response_model=List[ScoringModelResponse])
async def list_models(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """All model versions, newest first."""
    training_service = TrainingService(session)
    return await training_service.list_models(principal.org_id)


@router.post("/models/{model_version}/activate", response_model=ScoringModelResponse)
async def activate_model(
    model_version: int,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Promote a trained model version; the current active version is superseded."""
    training_service = TrainingService(session)
    return await training_service.activate(principal.org_id, model_version, actor_id=principal.user_id)


@router.get("/settings", response_model=ScoringSettingsResponse)
async def get_scoring_settings(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Label thresholds and blend policy in effect."""
    scoring_service = ScoringService(session)
    return await scoring_service.get_settings(principal.org_id)


@router.put("/settings", response_model=ScoringSettingsResponse)
async def update_scoring_settings(
    settings_data: ScoringSettingsUpdate,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Update label thresholds and blend policy."""
    scoring_service = ScoringService(session)
    return await scoring_service.update_settings(principal.org_id, **settings_data.model_dump(exclude_unset=True))


@router.post("/recalculate", response_model=RecalculateResponse)
async def recalculate_scores(
    request: RecalculateRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Recalculate scores for specific leads or all leads."""
    qualification_service = QualificationService(session)
    return await qualification_service.recalculate(principal.org_id, request.lead_ids, principal.user_id)
