"""
Enrollment Service

Turns a routine template into an enrollment plus its full calendar of habit
instances, and owns the enrollment lifecycle (pause, resume, abandon, lazy
completion).

Guarantees:
- Idempotent: the same (member, idempotency key) always yields the same
  enrollment; replays never create rows.
- One active enrollment per member. The partial unique index on
  enrollment(user_id) WHERE status='active' is the arbiter under concurrency;
  a racer that loses gets ConflictError.
- All-or-nothing: the enrollment row and every instance commit together.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.auth import AuthContext
from core.cache import invalidate_member_stats
from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.logging import log_coaching_event
from models import (
    INTENSITIES,
    Enrollment,
    EnrollmentPause,
    HabitInstance,
    HabitTemplate,
    HabitTemplateAssignment,
    RoutineTemplate,
)
from services.coaching_dates import local_today, utcnow
from services.habit_schedule import expand_routine

logger = logging.getLogger(__name__)


@dataclass
class EnrollmentResult:
    enrollment: Enrollment
    habits_scheduled: int
    already_enrolled: bool


def derive_idempotency_key(user_id: UUID, template_id: str, start_date: date, intensity: str) -> str:
    """Key used when the client does not send one: same inputs, same enrollment."""
    raw = f"{user_id}:{template_id}:{start_date.isoformat()}:{intensity}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _find_by_key(db: Session, user_id: UUID, key: str) -> Optional[Enrollment]:
    return db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
        Enrollment.idempotency_key == key,
    ).first()


def _replay(existing: Enrollment, template_id: str, start_date: date, intensity: str) -> EnrollmentResult:
    if (
        existing.routine_template_id != template_id
        or existing.start_date != start_date
        or existing.intensity != intensity
    ):
        raise ConflictError(
            "Idempotency key was already used for a different enrollment request",
            existing_enrollment_id=existing.id,
        )
    return EnrollmentResult(
        enrollment=existing,
        habits_scheduled=existing.habits_scheduled,
        already_enrolled=True,
    )


def get_active_enrollment(db: Session, user_id: UUID) -> Optional[Enrollment]:
    return db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
        Enrollment.status == "active",
    ).first()


def list_enrollments(db: Session, user_id: UUID) -> List[Enrollment]:
    """Enrollment history, newest first."""
    return db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
    ).order_by(Enrollment.created_at.desc(), Enrollment.start_date.desc()).all()


def complete_expired_enrollments(db: Session, user_id: UUID, today: date) -> int:
    """
    Mark active enrollments whose end_date is behind `today` as completed.

    There is no scheduler; this runs before any lifecycle read or change
    (enroll, reconcile, pause, abandon, resume, active lookup). Caller owns
    the commit.
    """
    expired = db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
        Enrollment.status == "active",
        Enrollment.end_date < today,
    ).all()
    for enrollment in expired:
        enrollment.status = "completed"
        enrollment.ended_at = utcnow()
        log_coaching_event(
            logger, "enrollment_completed",
            user_id=user_id, enrollment_id=enrollment.id, end_date=enrollment.end_date,
        )
    if expired:
        db.flush()
    return len(expired)


def enroll(
    db: Session,
    ctx: AuthContext,
    template_id: str,
    start_date: date,
    intensity: str = "lite",
    idempotency_key: Optional[str] = None,
    today: Optional[date] = None,
) -> EnrollmentResult:
    """
    Enroll a member in a routine and materialize every habit instance.

    Raises:
        ConflictError: another enrollment is active, or the key was reused
            with different parameters
        ValidationError: start date in the past, unknown intensity
        NotFoundError: template missing or deleted
    """
    today = today or local_today(ctx.timezone)
    user_id = ctx.user_id
    key = idempotency_key or derive_idempotency_key(user_id, template_id, start_date, intensity)

    existing = _find_by_key(db, user_id, key)
    if existing:
        logger.info(f"Enrollment replay for member {user_id} (key {key[:12]})")
        return _replay(existing, template_id, start_date, intensity)

    if intensity not in INTENSITIES:
        raise ValidationError(f"Unknown intensity: {intensity}", field="intensity")
    if start_date < today:
        raise ValidationError("Start date cannot be in the past", field="start_date")

    template = db.query(RoutineTemplate).filter(
        RoutineTemplate.id == template_id,
        RoutineTemplate.is_deleted == False,  # noqa: E712
    ).first()
    if not template:
        raise NotFoundError("Routine template", template_id)

    complete_expired_enrollments(db, user_id, today)

    active = get_active_enrollment(db, user_id)
    if active:
        db.commit()  # keep any lazy completions
        raise ConflictError(
            "You already have an active routine. Pause or abandon it before enrolling in another.",
            existing_enrollment_id=active.id,
        )

    habits = db.query(HabitTemplate).join(
        HabitTemplateAssignment,
        HabitTemplateAssignment.habit_template_id == HabitTemplate.id,
    ).filter(
        HabitTemplateAssignment.routine_template_id == template.id,
        HabitTemplate.is_deleted == False,  # noqa: E712
    ).all()
    scheduled = expand_routine(habits, template.duration_days, start_date, intensity)

    enrollment = Enrollment(
        user_id=user_id,
        routine_template_id=template.id,
        start_date=start_date,
        end_date=start_date + timedelta(days=template.duration_days - 1),
        status="active",
        intensity=intensity,
        idempotency_key=key,
        habits_scheduled=len(scheduled),
    )

    try:
        db.add(enrollment)
        db.flush()

        db.add_all([
            HabitInstance(
                user_id=user_id,
                enrollment_id=enrollment.id,
                habit_template_id=item.habit_template_id,
                title=item.title,
                description=item.description,
                cadence=item.cadence,
                scheduled_date=item.scheduled_date,
                day_number=item.day_number,
                is_from_routine=True,
                completed=False,
            )
            for item in scheduled
        ])
        db.commit()
        db.refresh(enrollment)
    except IntegrityError:
        db.rollback()
        # A concurrent request got there first: same key -> replay, otherwise conflict.
        winner = _find_by_key(db, user_id, key)
        if winner:
            return _replay(winner, template_id, start_date, intensity)
        active = get_active_enrollment(db, user_id)
        if not active:
            logger.error(f"Enrollment insert failed for member {user_id}", exc_info=True)
            raise
        logger.warning(f"Concurrent enrollment lost for member {user_id}")
        raise ConflictError(
            "You already have an active routine. Pause or abandon it before enrolling in another.",
            existing_enrollment_id=active.id,
        )

    invalidate_member_stats(user_id)
    log_coaching_event(
        logger, "enrollment_created",
        user_id=user_id, enrollment_id=enrollment.id, template_id=template.id,
        intensity=intensity, habits_scheduled=len(scheduled),
    )
    return EnrollmentResult(enrollment=enrollment, habits_scheduled=len(scheduled), already_enrolled=False)


def _settle_expired(db: Session, user_id: UUID, today: date) -> None:
    if complete_expired_enrollments(db, user_id, today):
        db.commit()
        invalidate_member_stats(user_id)


def get_current_enrollment(db: Session, ctx: AuthContext, today: Optional[date] = None) -> Optional[Enrollment]:
    """The active enrollment after lazy completion; an ended run is never reported as active."""
    today = today or local_today(ctx.timezone)
    _settle_expired(db, ctx.user_id, today)
    return get_active_enrollment(db, ctx.user_id)


def list_pauses(db: Session, user_id: UUID) -> List[EnrollmentPause]:
    return db.query(EnrollmentPause).filter(
        EnrollmentPause.user_id == user_id,
    ).order_by(EnrollmentPause.paused_on).all()


def _open_pause(db: Session, enrollment: Enrollment) -> Optional[EnrollmentPause]:
    return db.query(EnrollmentPause).filter(
        EnrollmentPause.enrollment_id == enrollment.id,
        EnrollmentPause.resumed_on.is_(None),
    ).first()


def _close_pause(db: Session, enrollment: Enrollment, on: date) -> None:
    pause = _open_pause(db, enrollment)
    if pause:
        pause.resumed_on = max(on, pause.paused_on)


def _require_active(db: Session, ctx: AuthContext, today: date) -> Enrollment:
    active = get_current_enrollment(db, ctx, today)
    if not active:
        raise ForbiddenError("No active routine")
    return active


def pause_active(db: Session, ctx: AuthContext, today: Optional[date] = None) -> Enrollment:
    """
    active -> paused. Instances stay where they are.

    The pause is recorded from `today` until the resume day, so the days in
    between do not count against the member's streak or completion rate.
    """
    today = today or local_today(ctx.timezone)
    enrollment = _require_active(db, ctx, today)
    enrollment.status = "paused"
    enrollment.paused_at = utcnow()
    db.add(EnrollmentPause(enrollment_id=enrollment.id, user_id=ctx.user_id, paused_on=today))
    db.commit()
    invalidate_member_stats(ctx.user_id)
    log_coaching_event(
        logger, "enrollment_paused",
        user_id=ctx.user_id, enrollment_id=enrollment.id, paused_on=today,
    )
    return enrollment


def abandon_active(db: Session, ctx: AuthContext, today: Optional[date] = None) -> Enrollment:
    """
    active -> abandoned (terminal).

    A run already past its end date is completed first, leaving nothing
    active to abandon (ForbiddenError).
    """
    today = today or local_today(ctx.timezone)
    enrollment = _require_active(db, ctx, today)
    enrollment.status = "abandoned"
    enrollment.ended_at = utcnow()
    db.commit()
    invalidate_member_stats(ctx.user_id)
    log_coaching_event(logger, "enrollment_abandoned", user_id=ctx.user_id, enrollment_id=enrollment.id)
    return enrollment


def resume(
    db: Session,
    ctx: AuthContext,
    enrollment_id: Optional[UUID] = None,
    today: Optional[date] = None,
) -> Enrollment:
    """
    paused -> active. Never re-materializes and never shifts dates; the
    instances scheduled while paused stay, but the pause interval is closed
    at `today` so those days are excused rather than missed.

    Without an id, the most recently paused enrollment is resumed.
    """
    today = today or local_today(ctx.timezone)
    _settle_expired(db, ctx.user_id, today)
    query = db.query(Enrollment).filter(Enrollment.user_id == ctx.user_id)

    if enrollment_id is not None:
        enrollment = query.filter(Enrollment.id == enrollment_id).first()
        if not enrollment:
            raise NotFoundError("Enrollment", enrollment_id)
    else:
        enrollment = query.filter(Enrollment.status == "paused").order_by(
            Enrollment.paused_at.desc(), Enrollment.created_at.desc()
        ).first()
        if not enrollment:
            raise NotFoundError("Enrollment", "paused")

    if enrollment.status != "paused":
        raise ConflictError(f"Enrollment is {enrollment.status}, not paused")

    active = get_active_enrollment(db, ctx.user_id)
    if active:
        raise ConflictError(
            "You already have an active routine",
            existing_enrollment_id=active.id,
        )

    if enrollment.end_date < today:
        enrollment.status = "completed"
        enrollment.ended_at = utcnow()
        _close_pause(db, enrollment, enrollment.end_date + timedelta(days=1))
        db.commit()
        invalidate_member_stats(ctx.user_id)
        raise ValidationError("This routine has already ended", field="enrollment_id")

    enrollment.status = "active"
    enrollment.paused_at = None
    _close_pause(db, enrollment, today)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("You already have an active routine")

    invalidate_member_stats(ctx.user_id)
    log_coaching_event(logger, "enrollment_resumed", user_id=ctx.user_id, enrollment_id=enrollment.id)
    return enrollment
