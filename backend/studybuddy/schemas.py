"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers, the planner and tests. JSON field names are camelCase
on the wire; Python code uses the snake_case attribute names.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import AchievementType, GoalStatus, ReminderType, TaskType


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Timeline(str, Enum):
    ONE_WEEK = "1 week"
    TWO_WEEKS = "2 weeks"
    ONE_MONTH = "1 month"
    TWO_MONTHS = "2 months"
    THREE_MONTHS = "3 months"
    SIX_MONTHS = "6 months"


class DailyStudyTime(str, Enum):
    HALF_HOUR = "30 minutes"
    ONE_HOUR = "1 hour"
    NINETY_MINUTES = "1.5 hours"
    TWO_HOURS = "2 hours"
    THREE_PLUS_HOURS = "3+ hours"


class Pace(str, Enum):
    RELAXED = "relaxed"
    MODERATE = "moderate"
    INTENSIVE = "intensive"


REQUEST_LOCATIONS = ("body", "path", "query", "header", "cookie")


def format_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic error dicts into `{field, message}` items.

    The request location FastAPI prepends (`body`, `path`, ...) is dropped so
    framework and service validation name fields the same way.
    """
    out = []
    for err in errors:
        loc = list(err.get("loc", ()))
        if loc and loc[0] in REQUEST_LOCATIONS:
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) or "body"
        out.append({"field": field, "message": err.get("msg", "invalid value")})
    return out


# ---------------------------------------------------------------------------
# Plan generation


class GoalRequest(CamelModel):
    """Input to plan generation. Frozen once validated."""
    model_config = ConfigDict(frozen=True)

    user_id: int = Field(gt=0)
    title: str
    timeline: Timeline
    daily_study_time: DailyStudyTime
    pace: Pace
    description: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class GeneratedTask(CamelModel):
    """A normalized task as produced by the planner."""
    title: str = Field(min_length=1)
    description: str = ""
    type: TaskType = TaskType.READING
    estimated_minutes: int = Field(default=30, gt=0)
    xp_reward: int = Field(default=50, gt=0)
    order_index: int = Field(ge=0)


class StudyPlan(CamelModel):
    """Normalized result of one plan generation call."""
    tasks: List[GeneratedTask]
    total_estimated_hours: float = 0
    difficulty_level: str = "Beginner"
    learning_path: List[str] = Field(default_factory=list)


class InsightSnapshot(CamelModel):
    """Progress figures fed to the motivational insight prompt."""
    current_streak: int
    completed_tasks: int
    total_tasks: int
    goal_title: str
    days_into_goal: int


# ---------------------------------------------------------------------------
# Request bodies


class TaskCompletionIn(CamelModel):
    is_completed: bool


class GoalStatusIn(CamelModel):
    status: GoalStatus


class UserCreateIn(CamelModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)
    display_name: str = Field(min_length=1, max_length=200)


class UserUpdateIn(CamelModel):
    username: Optional[str] = Field(default=None, min_length=1, max_length=100)
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=200)


class ReminderCreateIn(CamelModel):
    user_id: int = Field(gt=0)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    type: ReminderType
    time: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    frequency: Optional[str] = None
    is_active: bool = True


class ReminderStatusIn(CamelModel):
    is_active: bool


# ---------------------------------------------------------------------------
# Responses


class UserOut(CamelModel):
    id: int
    username: str
    display_name: str
    streak: int
    total_xp: int
    created_at: datetime


class GoalOut(CamelModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    timeline: str
    daily_study_time: str
    pace: str
    status: GoalStatus
    progress: int
    created_at: datetime
    completed_at: Optional[datetime] = None


class GoalProgressOut(GoalOut):
    completed_tasks: int
    total_tasks: int
    completion_percentage: int


class TaskOut(CamelModel):
    id: int
    goal_id: int
    title: str
    description: Optional[str] = None
    type: TaskType
    estimated_minutes: int
    xp_reward: int
    is_completed: bool
    scheduled_for: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    order_index: int


class AchievementOut(CamelModel):
    id: int
    user_id: int
    type: AchievementType
    title: str
    description: str
    icon: str
    xp_reward: int
    unlocked_at: datetime


class ReminderOut(CamelModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    type: ReminderType
    time: Optional[str] = None
    frequency: Optional[str] = None
    is_active: bool


class AIInsightsOut(CamelModel):
    total_estimated_hours: float
    difficulty_level: str
    learning_path: List[str]


class GoalWithPlanOut(CamelModel):
    goal: GoalOut
    tasks: List[TaskOut]
    ai_insights: AIInsightsOut


class DashboardStatsOut(CamelModel):
    streak: int
    total_xp: int
    completed_tasks: int
    total_daily_tasks: int
    study_time_today: float


class DashboardOut(CamelModel):
    user: UserOut
    goal_progress: Optional[GoalProgressOut] = None
    todays_tasks: List[TaskOut]
    recent_achievements: List[AchievementOut]
    reminders: List[ReminderOut]
    stats: DashboardStatsOut


class InsightOut(CamelModel):
    insight: str


class ExportOut(CamelModel):
    user: UserOut
    goals: List[GoalOut]
    achievements: List[AchievementOut]
    reminders: List[ReminderOut]
    export_date: datetime


class GenerationStatsOut(CamelModel):
    total_runs: int = 0
    failed_runs: int = 0
    slow_runs: int = 0
    avg_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    last_error: str = ""

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "GenerationStatsOut":
        return cls.model_validate({k: raw[k] for k in cls.model_fields if k in raw})
