"""
Routine Expansion

Pure function: routine template + assigned habit templates + start date
-> the full list of dated habit occurrences for one enrollment.

No database access here; services/enrollment.py persists what this returns.

Rules per habit (day_number is 1-based within the routine):
- only days inside [day_start, day_end] (day_end None = last routine day)
- daily:     every day in that window
- weekly:    day_start, day_start + 7, day_start + 14, ...
- as-needed: once, on day_start
- lite intensity keeps only lite habits; intense keeps everything
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional
from uuid import UUID


INTENSITY_INCLUDES = {
    "lite": {"lite"},
    "intense": {"lite", "intense"},
}


@dataclass(frozen=True)
class ScheduledHabit:
    """One dated occurrence produced by expansion."""
    habit_template_id: UUID
    title: str
    description: Optional[str]
    cadence: str
    scheduled_date: date
    day_number: int


def habit_included(habit_intensity: Optional[str], enrollment_intensity: str) -> bool:
    return (habit_intensity or "lite") in INTENSITY_INCLUDES.get(enrollment_intensity, set())


def occurs_on(cadence: str, day_number: int, day_start: int, day_end: int) -> bool:
    if day_number < day_start or day_number > day_end:
        return False
    if cadence == "weekly":
        return (day_number - day_start) % 7 == 0
    if cadence == "as-needed":
        return day_number == day_start
    return True


def expand_routine(
    habits: Iterable,
    duration_days: int,
    start_date: date,
    intensity: str = "lite",
) -> List[ScheduledHabit]:
    """
    Expand habit templates over a routine's days.

    `habits` are HabitTemplate rows (or anything with the same attributes).
    Output is ordered by date, then by the habit's order_index.
    """
    selected = sorted(
        (h for h in habits if not getattr(h, "is_deleted", False) and habit_included(h.intensity, intensity)),
        key=lambda h: (h.order_index or 0, h.title),
    )

    scheduled: List[ScheduledHabit] = []
    for offset in range(duration_days):
        day_number = offset + 1
        current = start_date + timedelta(days=offset)
        for habit in selected:
            day_start = habit.day_start or 1
            day_end = habit.day_end if habit.day_end is not None else duration_days
            if not occurs_on(habit.cadence, day_number, day_start, min(day_end, duration_days)):
                continue
            scheduled.append(
                ScheduledHabit(
                    habit_template_id=habit.id,
                    title=habit.title,
                    description=habit.short_description or habit.description,
                    cadence=habit.cadence,
                    scheduled_date=current,
                    day_number=day_number,
                )
            )
    return scheduled
