"""
Coaching API Router

Stats (coins, streaks, completion rate) and the reward ledger.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import AuthContext, get_auth_context
from core.database import get_db
from schemas import CoachingStatsResponse, RewardEventResponse, SpendRequest
from services import reward_ledger
from services.coaching_dates import local_today
from services.coaching_stats import get_stats_payload

router = APIRouter(prefix="/v1/coaching", tags=["Coaching"])


@router.get("/stats", response_model=CoachingStatsResponse)
async def get_stats(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return get_stats_payload(db, ctx.user_id, local_today(ctx.timezone))


@router.get("/rewards", response_model=List[RewardEventResponse])
async def list_rewards(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return reward_ledger.list_events(db, ctx.user_id, limit=limit)


@router.post("/rewards/spend", response_model=RewardEventResponse, status_code=status.HTTP_201_CREATED)
async def spend_coins(
    request: SpendRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return reward_ledger.record_spend(db, ctx, request.amount, request.reason)
