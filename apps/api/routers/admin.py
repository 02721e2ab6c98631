"""
Admin Coaching API Router

Read-only access to any member's coaching data for coaches and admins.
Gated by capability at the request boundary, not by a global middleware.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import CAPABILITY_READ_ANY_MEMBER, AuthContext, require_capability
from core.database import get_db
from core.exceptions import NotFoundError
from models import Member
from schemas import CoachingStatsResponse
from services.coaching_dates import local_today
from services.coaching_stats import get_stats_payload
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin/coaching", tags=["Admin"])


@router.get("/members/{member_id}/stats", response_model=CoachingStatsResponse)
async def get_member_stats(
    member_id: UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(CAPABILITY_READ_ANY_MEMBER)),
):
    """A member's stats as of the member's own local date."""
    member = db.query(Member).filter(Member.id == member_id).first()
    if not member:
        raise NotFoundError("Member", member_id)

    logger.info(f"Admin {ctx.user_id} ({ctx.role}) read coaching stats for member {member_id}")
    return get_stats_payload(db, member.id, local_today(member.timezone))
