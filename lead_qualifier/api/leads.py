"""
Lead API routes - requalification and closed-loop outcomes.
"""
import uuid
from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.database import get_session
from lead_qualifier.services.qualification_service import QualificationService
from lead_qualifier.services.training_service import TrainingService
from lead_qualifier.schemas.qualification import QualificationResponse
from lead_qualifier.schemas.scoring import OutcomeCreate, OutcomeRecordedResponse
from lead_qualifier.api.deps import Principal, get_current_principal

router = APIRouter(prefix="/api/leads", tags=["leads"])


@router.post("/{lead_id}/requalify", response_model=QualificationResponse)
async def requalify_lead(
    lead_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Re-run qualification for a lead."""
    qualification_service = QualificationService(session)
    result = await qualification_service.qualify(principal.org_id, lead_id, principal.user_id)
    return QualificationResponse.from_result(lead_id, result)


@router.post("/{lead_id}/outcome", response_model=OutcomeRecordedResponse, status_code=201)
async def record_outcome(
    lead_id: uuid.UUID,
    outcome_data: OutcomeCreate,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Record whether a lead converted or was rejected."""
    training_service = TrainingService(session)
    return await training_service.record_outcome(
        principal.org_id,
        lead_id,
        outcome_data.label,
        notes=outcome_data.notes,
        recorded_by=principal.user_id,
        outcome_value=outcome_data.outcome_value,
        days_to_outcome=outcome_data.days_to_outcome
    )
