"""
Reward Ledger

Append-only coin ledger. Rows are never updated or deleted; the balance is
always SUM(amount) over a member's events and is never stored.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.auth import AuthContext
from core.cache import invalidate_member_stats
from core.config import settings
from core.exceptions import ValidationError
from core.logging import log_coaching_event
from models import HabitInstance, Member, RewardEvent

logger = logging.getLogger(__name__)


def record_completion(db: Session, user_id: UUID, instance: HabitInstance) -> RewardEvent:
    """
    Earn coins for one completion. Flushes but does not commit.

    Only the habit toggle calls this, and only after its conditional update
    actually flipped the row to completed.
    """
    event = RewardEvent(
        user_id=user_id,
        amount=settings.COINS_PER_HABIT_COMPLETION,
        reason=f"Completed habit: {instance.title}",
        type="earn",
        habit_instance_id=instance.id,
    )
    db.add(event)
    db.flush()
    return event


def get_balance(db: Session, user_id: UUID) -> int:
    total = db.query(func.coalesce(func.sum(RewardEvent.amount), 0)).filter(
        RewardEvent.user_id == user_id
    ).scalar()
    return int(total or 0)


def list_events(db: Session, user_id: UUID, limit: int = 50) -> List[RewardEvent]:
    return db.query(RewardEvent).filter(
        RewardEvent.user_id == user_id
    ).order_by(RewardEvent.created_at.desc(), RewardEvent.id.desc()).limit(limit).all()


def member_lock(db: Session, user_id: UUID):
    """SELECT .. FOR UPDATE on the member row; SQLite ignores the lock clause."""
    return db.query(Member.id).filter(Member.id == user_id).with_for_update()


def record_spend(db: Session, ctx: AuthContext, amount: int, reason: str) -> RewardEvent:
    """
    Spend coins. Amount must be positive and covered by the current balance.

    The member row is locked (FOR UPDATE on PostgreSQL) for the balance check
    and insert, so concurrent spends for one member run one at a time.
    """
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be a positive number of coins", field="amount")
    if not reason or not reason.strip():
        raise ValidationError("Reason is required", field="reason")

    member_lock(db, ctx.user_id).first()
    balance = get_balance(db, ctx.user_id)
    if amount > balance:
        db.rollback()  # release the lock
        raise ValidationError(
            f"Insufficient coins: balance {balance}, requested {amount}", field="amount"
        )

    event = RewardEvent(
        user_id=ctx.user_id,
        amount=-amount,
        reason=reason.strip(),
        type="spend",
    )
    db.add(event)
    db.commit()
    db.refresh(event)

    invalidate_member_stats(ctx.user_id)
    log_coaching_event(logger, "coins_spent", user_id=ctx.user_id, amount=amount, balance=balance - amount)
    return event
