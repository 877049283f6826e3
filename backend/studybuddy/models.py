"""SQLModel data models.

This module defines the application's database tables using SQLModel.
The same classes are used by the in-memory storage, so every record has
one shape regardless of where it lives.

Timestamps are naive local datetimes kept in timezone-less DATETIME
columns: "today" is the server's local calendar day.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

# Column type for every timestamp; values are naive and must stay so.
LocalDateTime = DateTime(timezone=False)


class GoalStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskType(str, Enum):
    VIDEO = "video"
    READING = "reading"
    QUIZ = "quiz"
    PRACTICE = "practice"
    PROJECT = "project"


class AchievementType(str, Enum):
    STREAK = "streak"
    XP = "xp"
    TASKS = "tasks"
    GOALS = "goals"


class ReminderType(str, Enum):
    DAILY = "daily"
    BREAK = "break"
    WEEKLY = "weekly"


class User(SQLModel, table=True):
    """A learner.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `streak`: consecutive study days, maintained outside this service
    - `total_xp`: cumulative XP, only ever incremented
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    display_name: str
    streak: int = 0
    total_xp: int = 0
    created_at: datetime = Field(default_factory=datetime.now, sa_type=LocalDateTime)


class StudyGoal(SQLModel, table=True):
    """A learning objective owned by one user.

    `progress` is a cached percentage; the authoritative value is always the
    completion ratio of the goal's tasks.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    title: str
    description: Optional[str] = None
    timeline: str
    daily_study_time: str
    pace: str
    status: GoalStatus = Field(default=GoalStatus.ACTIVE)
    progress: int = 0
    created_at: datetime = Field(default_factory=datetime.now, sa_type=LocalDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=LocalDateTime)


class StudyTask(SQLModel, table=True):
    """One unit of study work inside a goal's plan.

    `order_index` totally orders the tasks of a goal. `completed_at` is set
    exactly when `is_completed` is true.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(foreign_key='studygoal.id', index=True)
    title: str
    description: Optional[str] = None
    type: TaskType
    estimated_minutes: int
    xp_reward: int
    is_completed: bool = False
    scheduled_for: Optional[datetime] = Field(default=None, index=True, sa_type=LocalDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=LocalDateTime)
    order_index: int


class Achievement(SQLModel, table=True):
    """An unlocked milestone. Rows are append-only."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    type: AchievementType
    title: str
    description: str
    icon: str
    xp_reward: int
    unlocked_at: datetime = Field(default_factory=datetime.now, sa_type=LocalDateTime)


class StudyReminder(SQLModel, table=True):
    """Reminder preferences. Nothing schedules these; they are displayed only."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    title: str
    description: Optional[str] = None
    type: ReminderType
    time: Optional[str] = None
    frequency: Optional[str] = None
    is_active: bool = True
