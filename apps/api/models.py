from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
import uuid


ENROLLMENT_STATUSES = ("active", "paused", "completed", "abandoned")
INTENSITIES = ("lite", "intense")
CADENCES = ("daily", "weekly", "as-needed")
ROUTINE_TIERS = ("free", "premium")
REWARD_TYPES = ("earn", "spend")


class Member(Base):
    """
    A member of the coaching platform.

    Login, sessions and profile management live outside this service; the
    coaching engine needs only an identity, a role, and the member's timezone
    (all "today" computations use the member's local calendar date).
    """
    __tablename__ = "member"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=True)
    display_name = Column(Text, nullable=True)
    role = Column(Text, default="member", nullable=False)  # 'member', 'coach', 'admin', 'owner'
    subscription_tier = Column(Text, default="free", nullable=False)
    timezone = Column(Text, nullable=True)  # IANA name, e.g. "America/New_York"


# --- TEMPLATE STORE (admin-owned, read-only to the engine) ---

class RoutineTemplate(Base):
    """A routine program definition, e.g. a 14-day sleep routine."""
    __tablename__ = "routine_template"

    id = Column(Text, primary_key=True)  # human-readable slug, e.g. "sleep_mastery"
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    duration_days = Column(Integer, nullable=False, default=14)
    tier = Column(Text, nullable=False, default="free")  # 'free' | 'premium'
    sort_order = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    assignments = relationship("HabitTemplateAssignment", back_populates="routine")

    __table_args__ = (
        CheckConstraint("duration_days >= 1", name="ck_routine_template_duration_positive"),
    )


class HabitTemplate(Base):
    """
    A habit definition. Belongs to zero or more routines via HabitTemplateAssignment.

    day_start/day_end bound the 1-based routine days on which the habit appears
    (day_end NULL means "until the routine ends").
    """
    __tablename__ = "habit_template"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(Text, nullable=False)
    short_description = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    instructions = Column(Text, nullable=True)
    tips = Column(Text, nullable=True)
    cadence = Column(Text, nullable=False, default="daily")  # 'daily' | 'weekly' | 'as-needed'
    recommended_time = Column(Text, nullable=True)  # "Morning", "Evening", "Anytime"
    duration_minutes = Column(Integer, nullable=True)
    day_start = Column(Integer, nullable=False, default=1)
    day_end = Column(Integer, nullable=True)
    intensity = Column(Text, nullable=False, default="lite")  # 'lite' | 'intense'
    order_index = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    assignments = relationship("HabitTemplateAssignment", back_populates="habit")

    @property
    def snapshot_description(self):
        return self.short_description or self.description


class HabitTemplateAssignment(Base):
    """Many-to-many junction between habit templates and routine templates."""
    __tablename__ = "habit_template_assignment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    habit_template_id = Column(Uuid(as_uuid=True), ForeignKey("habit_template.id"), nullable=False)
    routine_template_id = Column(Text, ForeignKey("routine_template.id"), nullable=False)

    habit = relationship("HabitTemplate", back_populates="assignments")
    routine = relationship("RoutineTemplate", back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("habit_template_id", "routine_template_id", name="uq_habit_template_assignment"),
        Index("ix_habit_template_assignment_routine", "routine_template_id"),
    )


# --- ENROLLMENT (one member's run of one routine) ---

class Enrollment(Base):
    """
    A member's time-bounded run through a routine template.

    Never deleted: status changes only, so history stays auditable.
    At most one row per member may be 'active'; the partial unique index
    below is what serializes concurrent enrollment attempts.
    """
    __tablename__ = "enrollment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False)
    routine_template_id = Column(Text, ForeignKey("routine_template.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # start_date + duration_days - 1
    status = Column(Text, nullable=False, default="active")  # active | paused | completed | abandoned
    intensity = Column(Text, nullable=False, default="lite")
    idempotency_key = Column(Text, nullable=False)
    # Count returned to clients that replay the same idempotency key.
    habits_scheduled = Column(Integer, nullable=False, default=0)
    paused_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    routine = relationship("RoutineTemplate")

    __table_args__ = (
        Index("ix_enrollment_user_id", "user_id"),
        Index("ix_enrollment_status", "status"),
        UniqueConstraint("user_id", "idempotency_key", name="uq_enrollment_user_idempotency_key"),
        Index(
            "ux_enrollment_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=(status == "active"),
            sqlite_where=(status == "active"),
        ),
    )


class EnrollmentPause(Base):
    """
    One pause of an enrollment: member-local days paused_on .. resumed_on - 1.

    resumed_on is NULL while the pause is still open. Paused days are neutral
    for streaks and left out of the completion rate.
    """
    __tablename__ = "enrollment_pause"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    enrollment_id = Column(Uuid(as_uuid=True), ForeignKey("enrollment.id"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False)
    paused_on = Column(Date, nullable=False)
    resumed_on = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_enrollment_pause_user_id", "user_id"),
        Index("ix_enrollment_pause_enrollment_id", "enrollment_id"),
    )

    def covers(self, day) -> bool:
        return self.paused_on <= day and (self.resumed_on is None or day < self.resumed_on)


# --- DAILY EXECUTION LEDGER ---

class HabitInstance(Base):
    """
    One member's scheduled occurrence of a habit on one date.

    Title and description are copied from the template when the instance is
    created; later template edits never reach existing rows.
    """
    __tablename__ = "habit_instance"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False)
    enrollment_id = Column(Uuid(as_uuid=True), ForeignKey("enrollment.id"), nullable=True)  # NULL for standalone
    habit_template_id = Column(Uuid(as_uuid=True), ForeignKey("habit_template.id"), nullable=True)  # NULL for custom
    standalone_habit_id = Column(Uuid(as_uuid=True), ForeignKey("standalone_habit.id"), nullable=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    cadence = Column(Text, nullable=False, default="daily")
    scheduled_date = Column(Date, nullable=False)
    day_number = Column(Integer, nullable=True)  # 1-based routine day; NULL for standalone
    is_from_routine = Column(Boolean, nullable=False, default=True)
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        # Powers the daily "what do I do today?" query and range aggregation
        Index("ix_habit_instance_user_date", "user_id", "scheduled_date"),
        Index("ix_habit_instance_enrollment", "enrollment_id"),
        Index(
            "ux_habit_instance_enrollment_template_date",
            "user_id", "enrollment_id", "habit_template_id", "scheduled_date",
            unique=True,
            postgresql_where=(enrollment_id.isnot(None)),
            sqlite_where=(enrollment_id.isnot(None)),
        ),
        Index(
            "ux_habit_instance_standalone_date",
            "user_id", "standalone_habit_id", "scheduled_date",
            unique=True,
            postgresql_where=(standalone_habit_id.isnot(None)),
            sqlite_where=(standalone_habit_id.isnot(None)),
        ),
    )


class StandaloneHabit(Base):
    """
    A member-chosen habit outside any enrollment (catalog pick or custom).

    Open-ended: instances are materialized lazily, one day at a time, by
    reconciliation rather than expanded up front.
    """
    __tablename__ = "standalone_habit"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False)
    habit_template_id = Column(Uuid(as_uuid=True), ForeignKey("habit_template.id"), nullable=True)  # NULL for custom
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    cadence = Column(Text, nullable=False, default="daily")
    recommended_time = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_custom = Column(Boolean, nullable=False, default=False)
    anchor_date = Column(Date, nullable=False)  # weekly cadence repeats every 7 days from here
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_standalone_habit_user", "user_id"),
        Index(
            "ux_standalone_habit_user_template",
            "user_id", "habit_template_id",
            unique=True,
            postgresql_where=(habit_template_id.isnot(None)),
            sqlite_where=(habit_template_id.isnot(None)),
        ),
    )


# --- REWARD LEDGER ---

class RewardEvent(Base):
    """
    Append-only coin ledger row. Positive amount = earn, negative = spend.

    There is no stored balance anywhere: balance = SUM(amount) per member.
    """
    __tablename__ = "reward_event"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)  # e.g. "Completed habit: Morning Meditation"
    type = Column(Text, nullable=False)  # 'earn' | 'spend'
    habit_instance_id = Column(Uuid(as_uuid=True), ForeignKey("habit_instance.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_reward_event_user", "user_id"),
        Index("ix_reward_event_user_created", "user_id", "created_at"),
    )
