"""
Habits API Router

The member's daily execution ledger: what is scheduled, completion toggles,
and the reconciliation hook clients call on page load.
"""

from datetime import date, timedelta
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import AuthContext, get_auth_context
from core.config import settings
from core.database import get_db
from schemas import (
    DaySummaryResponse,
    HabitDetailResponse,
    HabitInstanceResponse,
    ReconcileResponse,
    TodayHabitsResponse,
    ToggleRequest,
)
from services import habit_ledger
from services.coaching_dates import local_today
from services.reconciliation import reconcile

router = APIRouter(prefix="/v1/habits", tags=["Habits"])


@router.get("/today", response_model=TodayHabitsResponse)
async def get_today(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    day = habit_ledger.get_for_date(db, ctx, local_today(ctx.timezone))
    return TodayHabitsResponse(
        habits=day.habits,
        grouped_by_cadence=day.grouped,
        date=day.date,
    )


@router.get("/date/{day}", response_model=List[HabitInstanceResponse])
async def get_by_date(
    day: date,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return habit_ledger.get_for_date(db, ctx, day).habits


@router.get("/range", response_model=List[DaySummaryResponse])
async def get_range(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    """
    Per-day totals, one row per date (zeros included).

    Defaults to the last HABIT_RANGE_DEFAULT_DAYS days ending today.
    """
    end = end or local_today(ctx.timezone)
    start = start or end - timedelta(days=settings.HABIT_RANGE_DEFAULT_DAYS - 1)
    return habit_ledger.get_range(db, ctx, start, end)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_today(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    result = reconcile(db, ctx)
    return ReconcileResponse(reconciled=result.reconciled, created=result.created)


@router.patch("/{habit_id}/toggle", response_model=HabitInstanceResponse)
async def toggle(
    habit_id: UUID,
    request: ToggleRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return habit_ledger.toggle(db, ctx, habit_id, request.completed)


@router.get("/{habit_id}/detail", response_model=HabitDetailResponse)
async def get_detail(
    habit_id: UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    detail = habit_ledger.get_detail(db, ctx, habit_id)
    return HabitDetailResponse(habit=detail.habit, template=detail.template)
