"""
Daily Execution Ledger

Read and toggle a member's habit instances.

Toggle is the only mutation on an instance. It is a conditional UPDATE
guarded on the opposite pre-state, so under concurrent toggles exactly one
caller observes the not-completed -> completed transition, and only that
caller earns the coins.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from core.auth import AuthContext
from core.cache import invalidate_member_stats
from core.config import settings
from core.exceptions import ForbiddenError, NotFoundError, ValidationError
from core.logging import log_coaching_event
from models import CADENCES, HabitInstance, HabitTemplate
from services.coaching_dates import daterange, utcnow
from services.reward_ledger import record_completion

logger = logging.getLogger(__name__)

CADENCE_ORDER = {cadence: i for i, cadence in enumerate(CADENCES)}


@dataclass
class DayHabits:
    date: date
    habits: List[HabitInstance]
    grouped: Dict[str, List[HabitInstance]] = field(default_factory=dict)


@dataclass
class DaySummary:
    date: date
    total: int
    completed: int


@dataclass
class HabitDetail:
    habit: HabitInstance
    template: Optional[HabitTemplate]


def _sort_key(instance: HabitInstance):
    return (CADENCE_ORDER.get(instance.cadence, len(CADENCES)), instance.title.lower())


def get_for_date(db: Session, ctx: AuthContext, day: date) -> DayHabits:
    """Every instance the member has on `day`, enrollment and standalone alike."""
    habits = db.query(HabitInstance).filter(
        HabitInstance.user_id == ctx.user_id,
        HabitInstance.scheduled_date == day,
    ).all()
    habits.sort(key=_sort_key)

    grouped: Dict[str, List[HabitInstance]] = OrderedDict((cadence, []) for cadence in CADENCES)
    for habit in habits:
        grouped.setdefault(habit.cadence, []).append(habit)

    return DayHabits(date=day, habits=habits, grouped=grouped)


def get_range(db: Session, ctx: AuthContext, start: date, end: date) -> List[DaySummary]:
    """Per-day totals over [start, end]; days without instances come back as zeros."""
    if start > end:
        raise ValidationError("Start date must be on or before end date", field="start")
    span = (end - start).days + 1
    if span > settings.HABIT_RANGE_MAX_DAYS:
        raise ValidationError(
            f"Range too large: {span} days (max {settings.HABIT_RANGE_MAX_DAYS})", field="end"
        )

    rows = db.query(
        HabitInstance.scheduled_date,
        func.count(HabitInstance.id),
        func.sum(case((HabitInstance.completed == True, 1), else_=0)),  # noqa: E712
    ).filter(
        HabitInstance.user_id == ctx.user_id,
        HabitInstance.scheduled_date >= start,
        HabitInstance.scheduled_date <= end,
    ).group_by(HabitInstance.scheduled_date).all()

    by_date = {row[0]: (int(row[1]), int(row[2] or 0)) for row in rows}
    return [
        DaySummary(date=day, total=by_date.get(day, (0, 0))[0], completed=by_date.get(day, (0, 0))[1])
        for day in daterange(start, end)
    ]


def _load_owned(db: Session, ctx: AuthContext, instance_id: UUID) -> HabitInstance:
    # Existence first, then ownership: 404 for unknown ids, 403 for other members' rows.
    instance = db.query(HabitInstance).filter(HabitInstance.id == instance_id).first()
    if not instance:
        raise NotFoundError("Habit", instance_id)
    if instance.user_id != ctx.user_id:
        raise ForbiddenError()
    return instance


def toggle(db: Session, ctx: AuthContext, instance_id: UUID, completed: bool) -> HabitInstance:
    """
    Set an instance's completion state.

    Setting the state it already has is a no-op. Un-completing clears
    completed_at and leaves earned coins alone.
    """
    instance = _load_owned(db, ctx, instance_id)

    changed = db.query(HabitInstance).filter(
        HabitInstance.id == instance.id,
        HabitInstance.completed == (not completed),
    ).update(
        {
            HabitInstance.completed: completed,
            HabitInstance.completed_at: utcnow() if completed else None,
        },
        synchronize_session=False,
    )

    if changed == 1 and completed:
        record_completion(db, ctx.user_id, instance)

    db.commit()
    db.refresh(instance)

    if changed == 1:
        invalidate_member_stats(ctx.user_id)
        log_coaching_event(
            logger, "habit_toggled",
            user_id=ctx.user_id, habit_id=instance.id, completed=completed,
            rewarded=bool(completed),
        )
    return instance


def get_detail(db: Session, ctx: AuthContext, instance_id: UUID) -> HabitDetail:
    """Instance plus its template's instructional content. The snapshot stays authoritative."""
    instance = _load_owned(db, ctx, instance_id)
    template = None
    if instance.habit_template_id is not None:
        template = db.query(HabitTemplate).filter(HabitTemplate.id == instance.habit_template_id).first()
    return HabitDetail(habit=instance, template=template)
