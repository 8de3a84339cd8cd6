"""
Qualification API routes.
"""
from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from lead_qualifier.database import get_session
from lead_qualifier.services.qualification_service import QualificationService
from lead_qualifier.schemas.qualification import QualifyRequest, QualificationResponse
from lead_qualifier.api.deps import Principal, get_current_principal

router = APIRouter(prefix="/api/qualify", tags=["qualification"])


@router.post("", response_model=QualificationResponse)
async def qualify_lead(
    request: QualifyRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session)
):
    """Score a lead against the organization's ICP and active model."""
    qualification_service = QualificationService(session)
    result = await qualification_service.qualify(principal.org_id, request.lead_id, principal.user_id)
    return QualificationResponse.from_result(request.lead_id, result)
