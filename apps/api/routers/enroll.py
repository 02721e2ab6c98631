"""
Enrollment API Router

POST /v1/enroll is idempotent: replaying the same request (same
idempotency key, or same template/start/intensity when no key is sent)
returns the original enrollment with 200 instead of 201.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from core.auth import AuthContext, get_auth_context
from core.database import get_db
from schemas import EnrollRequest, EnrollResponse
from services import enrollment as enrollment_service
from services.coaching_dates import local_today

router = APIRouter(prefix="/v1/enroll", tags=["Enrollment"])


@router.post("", response_model=EnrollResponse, status_code=status.HTTP_201_CREATED)
async def enroll(
    request: EnrollRequest,
    response: Response,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    """Enroll in a routine and schedule every habit for its full duration."""
    today = local_today(ctx.timezone)
    result = enrollment_service.enroll(
        db,
        ctx,
        template_id=request.template_id,
        start_date=request.start_date or today,
        intensity=request.intensity,
        idempotency_key=request.idempotency_key,
        today=today,
    )
    if result.already_enrolled:
        response.status_code = status.HTTP_200_OK
    return EnrollResponse(
        enrollment=result.enrollment,
        habits_scheduled=result.habits_scheduled,
        already_enrolled=result.already_enrolled,
    )
