"""
Seed demo routine templates for local development.

Templates are admin-owned; this stands in for admin tooling so a fresh
database has something to enroll in. Safe to re-run: existing rows are
left untouched.

Usage (from apps/api):
    python scripts/seed_routine_templates.py
"""
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import get_db_sync  # noqa: E402
from core.logging import setup_logging  # noqa: E402
from models import HabitTemplate, HabitTemplateAssignment, RoutineTemplate  # noqa: E402

logger = logging.getLogger("seed_routine_templates")

ROUTINES = [
    {
        "id": "sleep_mastery",
        "name": "Sleep Mastery",
        "description": "Two weeks of wind-down habits for deeper, steadier sleep.",
        "category": "sleep",
        "duration_days": 14,
        "tier": "free",
        "sort_order": 1,
        "habits": [
            {
                "title": "Screens off by 10pm",
                "short_description": "Put every screen away an hour before bed.",
                "cadence": "daily",
                "recommended_time": "Evening",
                "duration_minutes": 5,
                "intensity": "lite",
                "order_index": 1,
            },
            {
                "title": "Morning sunlight walk",
                "short_description": "Ten minutes outside within an hour of waking.",
                "instructions": "Walk outdoors without sunglasses; overcast days still count.",
                "cadence": "daily",
                "recommended_time": "Morning",
                "duration_minutes": 10,
                "intensity": "intense",
                "order_index": 2,
            },
            {
                "title": "Weekly sleep review",
                "short_description": "Look back at the week's bedtimes and adjust one thing.",
                "cadence": "weekly",
                "recommended_time": "Anytime",
                "duration_minutes": 15,
                "intensity": "lite",
                "order_index": 3,
            },
            {
                "title": "Set up a dark bedroom",
                "short_description": "Blackout curtains, no standby lights.",
                "cadence": "as-needed",
                "recommended_time": "Anytime",
                "day_start": 1,
                "intensity": "lite",
                "order_index": 4,
            },
        ],
    },
    {
        "id": "stress_reset",
        "name": "Stress Reset",
        "description": "Seven days of short daily practices to bring stress down.",
        "category": "mind",
        "duration_days": 7,
        "tier": "premium",
        "sort_order": 2,
        "habits": [
            {
                "title": "Box breathing",
                "short_description": "Four rounds of 4-4-4-4 breathing.",
                "cadence": "daily",
                "recommended_time": "Morning",
                "duration_minutes": 5,
                "intensity": "lite",
                "order_index": 1,
            },
            {
                "title": "Evening journal",
                "short_description": "Three lines: what went well, what didn't, what's next.",
                "cadence": "daily",
                "recommended_time": "Evening",
                "duration_minutes": 10,
                "day_start": 3,
                "intensity": "intense",
                "order_index": 2,
            },
        ],
    },
]


def seed(db) -> int:
    created = 0
    for spec in ROUTINES:
        habits = spec["habits"]
        routine = db.query(RoutineTemplate).filter(RoutineTemplate.id == spec["id"]).first()
        if routine:
            logger.info(f"Routine {spec['id']} already present, skipping")
            continue

        routine = RoutineTemplate(**{k: v for k, v in spec.items() if k != "habits"})
        db.add(routine)
        for habit_spec in habits:
            habit = HabitTemplate(**habit_spec)
            db.add(habit)
            db.flush()
            db.add(HabitTemplateAssignment(habit_template_id=habit.id, routine_template_id=routine.id))
        created += 1
        logger.info(f"Seeded routine {routine.id} with {len(habits)} habits")
    db.commit()
    return created


def main():
    setup_logging()
    db = get_db_sync()
    try:
        created = seed(db)
        logger.info(f"Seed complete: {created} routine(s) created")
    except Exception:
        db.rollback()
        logger.error("Seeding failed", exc_info=True)
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
