"""Read access to the routine template store (admin-owned; never written here)."""

from dataclasses import dataclass
from typing import List

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from models import HabitTemplate, HabitTemplateAssignment, RoutineTemplate


@dataclass
class RoutineWithHabits:
    routine: RoutineTemplate
    habits: List[HabitTemplate]


def list_routines(db: Session) -> List[RoutineTemplate]:
    return db.query(RoutineTemplate).filter(
        RoutineTemplate.is_deleted == False,  # noqa: E712
    ).order_by(RoutineTemplate.sort_order, RoutineTemplate.name).all()


def get_routine(db: Session, template_id: str) -> RoutineWithHabits:
    routine = db.query(RoutineTemplate).filter(
        RoutineTemplate.id == template_id,
        RoutineTemplate.is_deleted == False,  # noqa: E712
    ).first()
    if not routine:
        raise NotFoundError("Routine template", template_id)

    habits = db.query(HabitTemplate).join(
        HabitTemplateAssignment, HabitTemplateAssignment.habit_template_id == HabitTemplate.id
    ).filter(
        HabitTemplateAssignment.routine_template_id == routine.id,
        HabitTemplate.is_deleted == False,  # noqa: E712
    ).order_by(HabitTemplate.order_index, HabitTemplate.title).all()

    return RoutineWithHabits(routine=routine, habits=habits)
