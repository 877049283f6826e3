"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate the storage layer,
the plan generator and the derived-progress helpers. Services are
intentionally thin: they perform validation, execute domain logic and
persist aggregates through an injected `Storage`.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from passlib.context import CryptContext
from pydantic import ValidationError

from . import models, progress
from .achievements import DEFAULT_RULES, AchievementRule, StatsSnapshot, evaluate_rules
from .errors import Conflict, GenerationFailed, InvalidRequest, NotFound
from .planner import GenerationError, PlanGenerator
from .scheduling import TaskScheduler, default_scheduler
from .schemas import (
    GoalOut, GoalProgressOut, GoalRequest, InsightSnapshot, ReminderCreateIn, UserCreateIn, UserUpdateIn,
    format_errors,
)
from .storage import Storage

logger = logging.getLogger("studybuddy.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

Clock = Callable[[], datetime]

RECENT_ACHIEVEMENTS_LIMIT = 3


def hash_password(password: str) -> str:
    return PWD_CTX.hash(password)


class GoalService:
    """Create goals from AI-generated plans and manage their lifecycle."""
    def __init__(self, storage: Storage, generator: Optional[PlanGenerator] = None,
                 scheduler: TaskScheduler = default_scheduler, clock: Clock = datetime.now):
        self.storage = storage
        self.generator = generator
        self.scheduler = scheduler
        self.clock = clock

    def create_goal_with_plan(self, raw: Any) -> Dict[str, Any]:
        """Validate `raw`, generate a plan, then persist the goal and its tasks.

        Nothing is written unless validation and generation both succeed.
        The goal and the task batch are two separate writes; a failure
        between them leaves a goal without tasks.
        """
        try:
            request = GoalRequest.model_validate(raw)
        except ValidationError as e:
            raise InvalidRequest("Invalid goal data", errors=format_errors(e.errors())) from e
        if not self.storage.get_user(request.user_id):
            raise NotFound("User not found")

        try:
            plan = self.generator.generate_plan(request)
        except GenerationError as e:
            logger.error("plan generation failed for user %s: %s", request.user_id, e)
            raise GenerationFailed() from e

        now = self.clock()
        goal = self.storage.create_goal(models.StudyGoal(
            user_id=request.user_id,
            title=request.title,
            description=request.description,
            timeline=request.timeline.value,
            daily_study_time=request.daily_study_time.value,
            pace=request.pace.value,
            status=models.GoalStatus.ACTIVE,
            progress=0,
            created_at=now,
        ))
        schedule = self.scheduler(plan.tasks, now)
        tasks = self.storage.create_tasks([
            models.StudyTask(
                goal_id=goal.id,
                title=t.title,
                description=t.description,
                type=t.type,
                estimated_minutes=t.estimated_minutes,
                xp_reward=t.xp_reward,
                order_index=t.order_index,
                scheduled_for=when,
            )
            for t, when in zip(plan.tasks, schedule)
        ])
        logger.info("created goal %s with %d tasks for user %s", goal.id, len(tasks), request.user_id)
        return {
            "goal": goal,
            "tasks": sorted(tasks, key=lambda t: t.order_index),
            "ai_insights": {
                "total_estimated_hours": plan.total_estimated_hours,
                "difficulty_level": plan.difficulty_level,
                "learning_path": plan.learning_path,
            },
        }

    def list_goals(self, user_id: int) -> List[models.StudyGoal]:
        return self.storage.list_goals(user_id)

    def list_tasks(self, goal_id: int) -> List[models.StudyTask]:
        """Tasks of a goal in plan order (empty for unknown goals)."""
        return self.storage.list_tasks_for_goal(goal_id)

    def update_status(self, goal_id: int, status: models.GoalStatus) -> models.StudyGoal:
        """Apply a status change. Only completion has an effect.

        Completing an already completed goal keeps its original
        `completed_at`. Other statuses are accepted and ignored.
        """
        goal = self.storage.get_goal(goal_id)
        if not goal:
            raise NotFound("Goal not found")
        if status == models.GoalStatus.COMPLETED and goal.status != models.GoalStatus.COMPLETED:
            self.storage.complete_goal(goal_id, self.clock())
        elif status != models.GoalStatus.COMPLETED:
            logger.info("status change to %s for goal %s is not supported; ignored", status.value, goal_id)
        return self.storage.get_goal(goal_id)


class TaskService:
    """Task completion, XP rewards and achievement unlocks."""
    def __init__(self, storage: Storage, rules: Sequence[AchievementRule] = DEFAULT_RULES,
                 clock: Clock = datetime.now):
        self.storage = storage
        self.rules = rules
        self.clock = clock

    def set_task_completion(self, task_id: int, is_completed: bool) -> models.StudyTask:
        """Mark a task done or not done.

        Completing credits the goal owner with the task's XP and then runs
        the achievement rules. Un-completing clears `completed_at` but keeps
        the XP already credited. Repeating the current state changes nothing.
        """
        task = self.storage.get_task(task_id)
        if not task:
            raise NotFound("Task not found")
        if task.is_completed == is_completed:
            return task

        now = self.clock()
        task = self.storage.set_task_completion(task_id, is_completed, now)
        goal = self.storage.get_goal(task.goal_id)
        if not goal:
            return task

        if is_completed:
            self.storage.add_user_xp(goal.user_id, task.xp_reward)
            self._unlock_achievements(goal.user_id, now)
        if goal.status != models.GoalStatus.COMPLETED:
            tasks = self.storage.list_tasks_for_goal(goal.id)
            self.storage.update_goal_progress(
                goal.id, progress.completion_percentage(progress.count_completed(tasks), len(tasks))
            )
        return task

    def _unlock_achievements(self, user_id: int, now: datetime) -> List[models.Achievement]:
        user = self.storage.get_user(user_id)
        if not user:
            return []
        start, end = progress.day_bounds(now)
        todays = self.storage.list_tasks_scheduled_between(user_id, start, end)
        snapshot = StatsSnapshot(
            user_id=user_id,
            total_xp=user.total_xp,
            streak=user.streak,
            completed_today=progress.count_completed(todays),
        )
        created = []
        for draft in evaluate_rules(snapshot, self.rules):
            created.append(self.storage.create_achievement(draft.to_record(user_id)))
            logger.info("user %s unlocked achievement %r", user_id, draft.title)
        return created


class DashboardService:
    """Aggregate the per-user dashboard view."""
    def __init__(self, storage: Storage, clock: Clock = datetime.now):
        self.storage = storage
        self.clock = clock

    def goal_progress(self, goal: models.StudyGoal) -> GoalProgressOut:
        tasks = self.storage.list_tasks_for_goal(goal.id)
        completed = progress.count_completed(tasks)
        return GoalProgressOut.model_validate({
            **GoalOut.model_validate(goal).model_dump(),
            "completed_tasks": completed,
            "total_tasks": len(tasks),
            "completion_percentage": progress.completion_percentage(completed, len(tasks)),
        })

    def get_dashboard(self, user_id: int) -> Dict[str, Any]:
        user = self.storage.get_user(user_id)
        if not user:
            raise NotFound("User not found")
        active_goal = self.storage.get_active_goal(user_id)
        start, end = progress.day_bounds(self.clock())
        todays_tasks = self.storage.list_tasks_scheduled_between(user_id, start, end)
        completed_today = progress.count_completed(todays_tasks)
        return {
            "user": user,
            "goal_progress": self.goal_progress(active_goal) if active_goal else None,
            "todays_tasks": todays_tasks,
            "recent_achievements": self.storage.list_recent_achievements(user_id, RECENT_ACHIEVEMENTS_LIMIT),
            "reminders": self.storage.list_reminders(user_id),
            "stats": {
                "streak": user.streak,
                "total_xp": user.total_xp,
                "completed_tasks": completed_today,
                "total_daily_tasks": len(todays_tasks),
                "study_time_today": progress.estimated_study_hours(completed_today),
            },
        }


class InsightService:
    """Motivational text for a user's current goal."""
    def __init__(self, storage: Storage, generator: PlanGenerator, clock: Clock = datetime.now):
        self.storage = storage
        self.generator = generator
        self.clock = clock

    def get_insight(self, user_id: int) -> str:
        """Return an insight; a missing user and a missing active goal both raise `NotFound`."""
        user = self.storage.get_user(user_id)
        goal = self.storage.get_active_goal(user_id) if user else None
        if not user or not goal:
            raise NotFound("User or active goal not found")
        tasks = self.storage.list_tasks_for_goal(goal.id)
        snapshot = InsightSnapshot(
            current_streak=user.streak,
            completed_tasks=progress.count_completed(tasks),
            total_tasks=len(tasks),
            goal_title=goal.title,
            days_into_goal=progress.days_since(goal.created_at, self.clock()),
        )
        return self.generator.generate_insight(snapshot)


class UserService:
    """User accounts, profile updates and data export."""
    def __init__(self, storage: Storage, clock: Clock = datetime.now):
        self.storage = storage
        self.clock = clock

    def create_user(self, data: UserCreateIn) -> models.User:
        """Create a new user with a hashed password."""
        if self.storage.get_user_by_username(data.username):
            raise Conflict("Username already taken")
        user = models.User(
            username=data.username,
            password_hash=hash_password(data.password),
            display_name=data.display_name,
        )
        return self.storage.create_user(user)

    def get_user(self, user_id: int) -> models.User:
        user = self.storage.get_user(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def update_user(self, user_id: int, data: UserUpdateIn) -> models.User:
        self.get_user(user_id)
        if data.username is not None:
            existing = self.storage.get_user_by_username(data.username)
            if existing and existing.id != user_id:
                raise Conflict("Username already taken")
        return self.storage.update_user(user_id, username=data.username, display_name=data.display_name)

    def export_user(self, user_id: int) -> Dict[str, Any]:
        """Dump everything stored for a user as one document."""
        user = self.get_user(user_id)
        return {
            "user": user,
            "goals": self.storage.list_goals(user_id),
            "achievements": self.storage.list_achievements(user_id),
            "reminders": self.storage.list_reminders(user_id),
            "export_date": self.clock(),
        }


class ReminderService:
    """Reminder records. They are configuration only; nothing fires them."""
    def __init__(self, storage: Storage):
        self.storage = storage

    def create_reminder(self, data: ReminderCreateIn) -> models.StudyReminder:
        if not self.storage.get_user(data.user_id):
            raise NotFound("User not found")
        return self.storage.create_reminder(models.StudyReminder(**data.model_dump()))

    def set_active(self, reminder_id: int, is_active: bool) -> models.StudyReminder:
        reminder = self.storage.set_reminder_active(reminder_id, is_active)
        if not reminder:
            raise NotFound("Reminder not found")
        return reminder


def seed_demo_data(storage: Storage, password: str = "password") -> models.User:
    """Create the demo learner and its default reminders once.

    Returns the existing user when already seeded.
    """
    existing = storage.get_user_by_username("johndoe")
    if existing:
        return existing
    user = storage.create_user(models.User(
        username="johndoe",
        password_hash=hash_password(password),
        display_name="John Doe",
        streak=7,
        total_xp=1247,
    ))
    defaults = [
        dict(title="Daily Study Time", description="Time to study!", type=models.ReminderType.DAILY,
             time="09:00", frequency="daily", is_active=True),
        dict(title="Break Reminder", description="Take a break!", type=models.ReminderType.BREAK,
             time=None, frequency="every_45_min", is_active=True),
        dict(title="Weekly Goal Check", description="Review your weekly progress", type=models.ReminderType.WEEKLY,
             time="19:00", frequency="weekly", is_active=False),
    ]
    for fields in defaults:
        storage.create_reminder(models.StudyReminder(user_id=user.id, **fields))
    logger.info("seeded demo user %s", user.id)
    return user
