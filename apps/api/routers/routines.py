"""
Routines API Router

Template browsing plus the member's enrollment lifecycle
(active, history, pause, resume, abandon).
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from core.auth import AuthContext, get_auth_context
from core.database import get_db
from schemas import (
    EnrollmentResponse,
    ResumeRequest,
    RoutineDetailResponse,
    RoutineTemplateResponse,
)
from services import enrollment as enrollment_service
from services import routine_catalog

router = APIRouter(prefix="/v1/routines", tags=["Routines"])


@router.get("", response_model=List[RoutineTemplateResponse])
async def list_routines(db: Session = Depends(get_db)):
    return routine_catalog.list_routines(db)


@router.get("/active", response_model=Optional[EnrollmentResponse])
async def get_active(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    """The member's active enrollment, or null."""
    return enrollment_service.get_current_enrollment(db, ctx)


@router.get("/history", response_model=List[EnrollmentResponse])
async def get_history(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return enrollment_service.list_enrollments(db, ctx.user_id)


@router.post("/pause", response_model=EnrollmentResponse)
async def pause(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return enrollment_service.pause_active(db, ctx)


@router.post("/abandon", response_model=EnrollmentResponse)
async def abandon(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return enrollment_service.abandon_active(db, ctx)


@router.post("/resume", response_model=EnrollmentResponse)
async def resume(
    request: Optional[ResumeRequest] = Body(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    """Resume a paused enrollment (the most recent one when no id is given)."""
    enrollment_id = request.enrollment_id if request else None
    return enrollment_service.resume(db, ctx, enrollment_id=enrollment_id)


@router.get("/{template_id}", response_model=RoutineDetailResponse)
async def get_routine(template_id: str, db: Session = Depends(get_db)):
    detail = routine_catalog.get_routine(db, template_id)
    return RoutineDetailResponse(routine=detail.routine, habits=detail.habits)
