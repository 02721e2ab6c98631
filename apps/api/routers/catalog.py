"""
Catalog API Router

Standalone habits: browse habit templates, pick one, create a custom
habit, or drop a pick.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from core.auth import AuthContext, get_auth_context
from core.database import get_db
from schemas import (
    AssignRequest,
    AssignResponse,
    CatalogHabitResponse,
    CustomHabitRequest,
    HabitTemplateResponse,
    StandaloneHabitResponse,
    SuccessResponse,
)
from services import habit_catalog

router = APIRouter(prefix="/v1/catalog", tags=["Catalog"])


@router.get("/habits", response_model=List[CatalogHabitResponse])
async def list_catalog(db: Session = Depends(get_db)):
    """All habit templates, one entry per title, with the routines that use them."""
    return [
        CatalogHabitResponse(
            **HabitTemplateResponse.model_validate(entry.template).model_dump(),
            routine_names=entry.routine_names,
        )
        for entry in habit_catalog.list_catalog(db)
    ]


@router.get("/assigned", response_model=List[StandaloneHabitResponse])
async def list_assigned(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return habit_catalog.list_assigned(db, ctx)


@router.post("/assign", response_model=AssignResponse, status_code=status.HTTP_201_CREATED)
async def assign(
    request: AssignRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    result = habit_catalog.assign_from_catalog(db, ctx, request.habit_template_id)
    return AssignResponse(standalone_habit=result.standalone_habit, habits_scheduled=result.habits_scheduled)


@router.post("/custom", response_model=AssignResponse, status_code=status.HTTP_201_CREATED)
async def create_custom(
    request: CustomHabitRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    result = habit_catalog.create_custom(
        db,
        ctx,
        title=request.title,
        description=request.description,
        cadence=request.cadence,
        recommended_time=request.recommended_time,
    )
    return AssignResponse(standalone_habit=result.standalone_habit, habits_scheduled=result.habits_scheduled)


@router.delete("/assigned/{standalone_id}", response_model=SuccessResponse)
async def unassign(
    standalone_id: UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    habit_catalog.unassign(db, ctx, standalone_id)
    return SuccessResponse(success=True)
