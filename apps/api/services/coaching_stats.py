"""
Coaching Stats

Read-only projection over the habit ledger and reward ledger: coins,
streaks and completion rate. Nothing here writes.

Streak rules, per calendar day up to `today`:
- complete: the day has instances and every one is completed
- neutral:  no instances and not inside an active/completed enrollment;
            skipped, neither extends nor breaks a streak
- broken:   no instances but inside an active/completed enrollment
- incomplete: at least one instance left undone
- paused:   inside a pause interval and not complete; skipped like neutral
Today only counts when complete; otherwise it is still in progress and is
skipped rather than breaking the streak.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from core.cache import get_cache, set_cache, stats_cache_key
from core.config import settings
from models import Enrollment, EnrollmentPause, HabitInstance
from schemas import CoachingStatsResponse
from services.enrollment import get_active_enrollment, list_pauses
from services.reward_ledger import get_balance

logger = logging.getLogger(__name__)

COMPLETE = "complete"
INCOMPLETE = "incomplete"
NEUTRAL = "neutral"
PAUSED = "paused"
BROKEN = "broken"

# Enrollments whose uninstanced days count against a streak.
STREAK_ENROLLMENT_STATUSES = ("active", "completed")


@dataclass
class CoachingStats:
    coins: int
    current_streak: int
    longest_streak: int
    completion_rate: float
    total_completed: int
    total_scheduled: int
    active_enrollment: Optional[Enrollment]


def _daily_counts(db: Session, user_id: UUID, today: date) -> Dict[date, Tuple[int, int]]:
    rows = db.query(
        HabitInstance.scheduled_date,
        func.count(HabitInstance.id),
        func.sum(case((HabitInstance.completed == True, 1), else_=0)),  # noqa: E712
    ).filter(
        HabitInstance.user_id == user_id,
        HabitInstance.scheduled_date <= today,
    ).group_by(HabitInstance.scheduled_date).all()
    return {row[0]: (int(row[1]), int(row[2] or 0)) for row in rows}


def _enrollment_windows(db: Session, user_id: UUID) -> List[Tuple[date, date]]:
    rows = db.query(Enrollment.start_date, Enrollment.end_date).filter(
        Enrollment.user_id == user_id,
        Enrollment.status.in_(STREAK_ENROLLMENT_STATUSES),
    ).all()
    return [(row[0], row[1]) for row in rows]


def classify_day(
    day: date,
    counts: Dict[date, Tuple[int, int]],
    windows: List[Tuple[date, date]],
    pauses: Sequence[EnrollmentPause] = (),
) -> str:
    total, completed = counts.get(day, (0, 0))
    if total > 0 and completed == total:
        return COMPLETE
    if any(pause.covers(day) for pause in pauses):
        return PAUSED
    if total > 0:
        return INCOMPLETE
    if any(start <= day <= end for start, end in windows):
        return BROKEN
    return NEUTRAL


def compute_streaks(
    counts: Dict[date, Tuple[int, int]],
    windows: List[Tuple[date, date]],
    today: date,
    pauses: Sequence[EnrollmentPause] = (),
) -> Tuple[int, int]:
    """(current_streak, longest_streak) for the given per-day counts."""
    if not counts:
        return 0, 0
    earliest = min(counts)
    if earliest > today:
        return 0, 0

    # Current: walk back from today (today only if already complete).
    current = 0
    day = today
    while day >= earliest:
        state = classify_day(day, counts, windows, pauses)
        if state == COMPLETE:
            current += 1
        elif state in (NEUTRAL, PAUSED) or day == today:
            pass
        else:
            break
        day -= timedelta(days=1)

    # Longest: same rules forward over history.
    longest = 0
    run = 0
    day = earliest
    while day <= today:
        state = classify_day(day, counts, windows, pauses)
        if state == COMPLETE:
            run += 1
            longest = max(longest, run)
        elif state not in (NEUTRAL, PAUSED) and day != today:
            run = 0
        day += timedelta(days=1)

    return current, longest


def _completion_rate(
    db: Session,
    enrollment: Optional[Enrollment],
    today: date,
    pauses: Sequence[EnrollmentPause] = (),
) -> float:
    """Share of elapsed instances completed; undone instances on paused days are excused."""
    if not enrollment:
        return 0.0
    cutoff = min(today, enrollment.end_date)
    rows = db.query(HabitInstance.scheduled_date, HabitInstance.completed).filter(
        HabitInstance.enrollment_id == enrollment.id,
        HabitInstance.scheduled_date <= cutoff,
    ).all()
    pauses = [pause for pause in pauses if pause.enrollment_id == enrollment.id]

    total = completed = 0
    for scheduled_date, done in rows:
        if not done and any(pause.covers(scheduled_date) for pause in pauses):
            continue
        total += 1
        completed += int(bool(done))
    if not total:
        return 0.0
    return round(completed / total, 4)


def compute_stats(db: Session, user_id: UUID, today: date) -> CoachingStats:
    counts = _daily_counts(db, user_id, today)
    windows = _enrollment_windows(db, user_id)
    pauses = list_pauses(db, user_id)
    current, longest = compute_streaks(counts, windows, today, pauses)

    total_scheduled, total_completed = db.query(
        func.count(HabitInstance.id),
        func.sum(case((HabitInstance.completed == True, 1), else_=0)),  # noqa: E712
    ).filter(HabitInstance.user_id == user_id).one()

    active = get_active_enrollment(db, user_id)
    if active and active.end_date < today:
        # Ended but not yet lazily completed; stats are read-only.
        active = None

    return CoachingStats(
        coins=get_balance(db, user_id),
        current_streak=current,
        longest_streak=longest,
        completion_rate=_completion_rate(db, active, today, pauses),
        total_completed=int(total_completed or 0),
        total_scheduled=int(total_scheduled or 0),
        active_enrollment=active,
    )


def get_stats_payload(db: Session, user_id: UUID, today: date) -> dict:
    """
    Stats as a JSON-ready dict (camelCase), served from Redis when possible.

    Every mutating coaching operation drops the member's cached entries.
    """
    key = stats_cache_key(user_id, today.isoformat())
    cached = get_cache(key)
    if cached is not None:
        return cached

    stats = compute_stats(db, user_id, today)
    payload = CoachingStatsResponse.model_validate(stats).model_dump(mode="json", by_alias=True)
    set_cache(key, payload, ttl=settings.CACHE_TTL_STATS)
    return payload
