"""
Standalone Habit Catalog

Members can pick habits outside any routine: either a copy of a habit
template from the catalog, or a custom habit of their own. Each pick is a
StandaloneHabit; its instances are created one day at a time (today's right
away, later ones by reconciliation).
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.auth import AuthContext
from core.cache import invalidate_member_stats
from core.exceptions import NotFoundError, ValidationError
from core.logging import log_coaching_event
from models import CADENCES, HabitTemplate, HabitTemplateAssignment, RoutineTemplate, StandaloneHabit
from services.coaching_dates import local_today
from services.reconciliation import materialize_standalone

logger = logging.getLogger(__name__)


@dataclass
class CatalogHabit:
    template: HabitTemplate
    routine_names: List[str] = field(default_factory=list)


@dataclass
class AssignResult:
    standalone_habit: StandaloneHabit
    habits_scheduled: int


def list_catalog(db: Session) -> List[CatalogHabit]:
    """Habit templates de-duplicated by title (case-insensitive), with the routines using them."""
    rows = db.query(HabitTemplate, RoutineTemplate.name).outerjoin(
        HabitTemplateAssignment, HabitTemplateAssignment.habit_template_id == HabitTemplate.id
    ).outerjoin(
        RoutineTemplate, RoutineTemplate.id == HabitTemplateAssignment.routine_template_id
    ).filter(
        HabitTemplate.is_deleted == False,  # noqa: E712
    ).order_by(HabitTemplate.order_index, HabitTemplate.title).all()

    deduped = {}
    for habit, routine_name in rows:
        key = habit.title.strip().lower()
        entry = deduped.get(key)
        if entry is None:
            entry = deduped[key] = CatalogHabit(template=habit)
        if routine_name and routine_name not in entry.routine_names:
            entry.routine_names.append(routine_name)
    return list(deduped.values())


def list_assigned(db: Session, ctx: AuthContext) -> List[StandaloneHabit]:
    return db.query(StandaloneHabit).filter(
        StandaloneHabit.user_id == ctx.user_id,
        StandaloneHabit.is_active == True,  # noqa: E712
    ).order_by(StandaloneHabit.created_at, StandaloneHabit.title).all()


def assign_from_catalog(
    db: Session,
    ctx: AuthContext,
    habit_template_id: UUID,
    today: Optional[date] = None,
) -> AssignResult:
    """Pick a catalog habit (reactivating an earlier pick), then schedule today if due."""
    today = today or local_today(ctx.timezone)

    template = db.query(HabitTemplate).filter(
        HabitTemplate.id == habit_template_id,
        HabitTemplate.is_deleted == False,  # noqa: E712
    ).first()
    if not template:
        raise NotFoundError("Habit template", habit_template_id)

    def _existing():
        return db.query(StandaloneHabit).filter(
            StandaloneHabit.user_id == ctx.user_id,
            StandaloneHabit.habit_template_id == template.id,
        ).first()

    habit = _existing()
    if habit:
        habit.is_active = True
        db.commit()
    else:
        habit = StandaloneHabit(
            user_id=ctx.user_id,
            habit_template_id=template.id,
            title=template.title,
            description=template.snapshot_description,
            cadence=template.cadence,
            recommended_time=template.recommended_time,
            is_active=True,
            is_custom=False,
            anchor_date=today,
        )
        db.add(habit)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            habit = _existing()
            habit.is_active = True
            db.commit()

    scheduled = 1 if materialize_standalone(db, habit, today) else 0
    db.refresh(habit)

    invalidate_member_stats(ctx.user_id)
    log_coaching_event(
        logger, "standalone_assigned",
        user_id=ctx.user_id, standalone_habit_id=habit.id, habit_template_id=template.id,
        habits_scheduled=scheduled,
    )
    return AssignResult(standalone_habit=habit, habits_scheduled=scheduled)


def create_custom(
    db: Session,
    ctx: AuthContext,
    title: str,
    description: Optional[str] = None,
    cadence: str = "daily",
    recommended_time: Optional[str] = None,
    today: Optional[date] = None,
) -> AssignResult:
    today = today or local_today(ctx.timezone)

    if not title or not title.strip():
        raise ValidationError("Title is required", field="title")
    if cadence not in CADENCES:
        raise ValidationError(f"Unknown cadence: {cadence}", field="cadence")

    habit = StandaloneHabit(
        user_id=ctx.user_id,
        habit_template_id=None,
        title=title.strip(),
        description=description or None,
        cadence=cadence,
        recommended_time=recommended_time or None,
        is_active=True,
        is_custom=True,
        anchor_date=today,
    )
    db.add(habit)
    db.commit()

    scheduled = 1 if materialize_standalone(db, habit, today) else 0
    db.refresh(habit)

    invalidate_member_stats(ctx.user_id)
    log_coaching_event(
        logger, "standalone_custom_created",
        user_id=ctx.user_id, standalone_habit_id=habit.id, cadence=cadence, habits_scheduled=scheduled,
    )
    return AssignResult(standalone_habit=habit, habits_scheduled=scheduled)


def unassign(db: Session, ctx: AuthContext, standalone_id: UUID) -> None:
    """Soft delete. Past instances (and their coins) stay."""
    habit = db.query(StandaloneHabit).filter(
        StandaloneHabit.id == standalone_id,
        StandaloneHabit.user_id == ctx.user_id,
    ).first()
    if not habit:
        raise NotFoundError("Assigned habit", standalone_id)

    habit.is_active = False
    db.commit()
    log_coaching_event(logger, "standalone_unassigned", user_id=ctx.user_id, standalone_habit_id=habit.id)
