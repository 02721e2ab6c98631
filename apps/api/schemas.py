from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Dict


class CamelModel(BaseModel):
    """camelCase on the wire; snake_case accepted on input too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Templates ---

class RoutineTemplateResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    duration_days: int
    tier: str
    sort_order: int = 0


class HabitTemplateResponse(CamelModel):
    id: UUID
    title: str
    short_description: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    tips: Optional[str] = None
    cadence: str
    recommended_time: Optional[str] = None
    duration_minutes: Optional[int] = None
    day_start: int = 1
    day_end: Optional[int] = None
    intensity: str = "lite"
    order_index: int = 0


class RoutineDetailResponse(CamelModel):
    routine: RoutineTemplateResponse
    habits: List[HabitTemplateResponse]


class CatalogHabitResponse(HabitTemplateResponse):
    routine_names: List[str] = []


# --- Enrollment ---

class EnrollRequest(CamelModel):
    template_id: str = Field(min_length=1)
    start_date: Optional[date] = None  # defaults to the member's local today
    intensity: str = "lite"
    idempotency_key: Optional[str] = Field(default=None, max_length=200)


class EnrollmentResponse(CamelModel):
    id: UUID
    routine_template_id: str
    start_date: date
    end_date: date
    status: str
    intensity: str
    habits_scheduled: int
    paused_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class EnrollResponse(CamelModel):
    enrollment: EnrollmentResponse
    habits_scheduled: int
    already_enrolled: bool


class ResumeRequest(CamelModel):
    enrollment_id: Optional[UUID] = None


# --- Habit ledger ---

class HabitInstanceResponse(CamelModel):
    id: UUID
    enrollment_id: Optional[UUID] = None
    habit_template_id: Optional[UUID] = None
    standalone_habit_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    cadence: str
    scheduled_date: date
    day_number: Optional[int] = None
    is_from_routine: bool
    completed: bool
    completed_at: Optional[datetime] = None


class TodayHabitsResponse(CamelModel):
    habits: List[HabitInstanceResponse]
    grouped_by_cadence: Dict[str, List[HabitInstanceResponse]]
    date: date


class DaySummaryResponse(CamelModel):
    date: date
    total: int
    completed: int


class ToggleRequest(CamelModel):
    completed: bool


class HabitDetailResponse(CamelModel):
    habit: HabitInstanceResponse
    template: Optional[HabitTemplateResponse] = None


class ReconcileResponse(CamelModel):
    reconciled: bool
    created: int


# --- Rewards & stats ---

class RewardEventResponse(CamelModel):
    id: UUID
    amount: int
    reason: str
    type: str
    habit_instance_id: Optional[UUID] = None
    created_at: Optional[datetime] = None


class SpendRequest(CamelModel):
    amount: int
    reason: str = Field(min_length=1, max_length=500)


class CoachingStatsResponse(CamelModel):
    coins: int
    current_streak: int
    longest_streak: int
    completion_rate: float
    total_completed: int
    total_scheduled: int
    active_enrollment: Optional[EnrollmentResponse] = None


# --- Standalone catalog ---

class StandaloneHabitResponse(CamelModel):
    id: UUID
    habit_template_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    cadence: str
    recommended_time: Optional[str] = None
    is_active: bool
    is_custom: bool
    anchor_date: date
    created_at: Optional[datetime] = None


class AssignRequest(CamelModel):
    habit_template_id: UUID


class CustomHabitRequest(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    cadence: str = "daily"
    recommended_time: Optional[str] = None


class AssignResponse(CamelModel):
    standalone_habit: StandaloneHabitResponse
    habits_scheduled: int


class SuccessResponse(BaseModel):
    success: bool = True
