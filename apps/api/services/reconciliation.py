"""
Reconciliation

Client-triggered catch-up, safe to run on every page load:
1. active enrollments past their end date become completed
2. standalone habits due today get today's instance if they don't have one

Enrollment instances were fully materialized at enroll time and are never
created or touched here. Concurrent reconciles for the same member race on
the (user, standalone habit, date) unique index; the loser's insert is a
no-op.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.auth import AuthContext
from core.cache import invalidate_member_stats
from core.logging import log_coaching_event
from models import HabitInstance, StandaloneHabit
from services.coaching_dates import local_today
from services.enrollment import complete_expired_enrollments

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    reconciled: bool
    created: int


def standalone_due_on(db: Session, habit: StandaloneHabit, day: date) -> bool:
    if day < habit.anchor_date:
        return False
    if habit.cadence == "weekly":
        return (day - habit.anchor_date).days % 7 == 0
    if habit.cadence == "as-needed":
        # Materialized once; afterwards the member re-adds it when needed.
        return not db.query(HabitInstance.id).filter(
            HabitInstance.standalone_habit_id == habit.id
        ).first()
    return True


def materialize_standalone(db: Session, habit: StandaloneHabit, day: date) -> bool:
    """
    Insert the instance for (habit, day) if it is due and missing. Commits.

    Returns True only when this call created the row.
    """
    if not standalone_due_on(db, habit, day):
        return False

    exists = db.query(HabitInstance.id).filter(
        HabitInstance.user_id == habit.user_id,
        HabitInstance.standalone_habit_id == habit.id,
        HabitInstance.scheduled_date == day,
    ).first()
    if exists:
        return False

    db.add(HabitInstance(
        user_id=habit.user_id,
        standalone_habit_id=habit.id,
        habit_template_id=habit.habit_template_id,
        title=habit.title,
        description=habit.description,
        cadence=habit.cadence,
        scheduled_date=day,
        day_number=None,
        is_from_routine=False,
        completed=False,
    ))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Standalone habit {habit.id} already materialized for {day} by a concurrent request")
        return False
    return True


def reconcile(db: Session, ctx: AuthContext, today: Optional[date] = None) -> ReconcileResult:
    today = today or local_today(ctx.timezone)

    completed = complete_expired_enrollments(db, ctx.user_id, today)
    if completed:
        db.commit()

    habits = db.query(StandaloneHabit).filter(
        StandaloneHabit.user_id == ctx.user_id,
        StandaloneHabit.is_active == True,  # noqa: E712
    ).all()

    created = 0
    for habit in habits:
        if materialize_standalone(db, habit, today):
            created += 1

    reconciled = created > 0 or completed > 0
    if reconciled:
        invalidate_member_stats(ctx.user_id)
        log_coaching_event(
            logger, "reconciled",
            user_id=ctx.user_id, date=today, created=created, enrollments_completed=completed,
        )
    return ReconcileResult(reconciled=reconciled, created=created)
