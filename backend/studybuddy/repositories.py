"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users, goals,
tasks, achievements, reminders). Repositories return SQLModel objects and
perform commits/refreshes where appropriate. `SQLStorage` combines them
into the `storage.Storage` interface used by services.
"""

import functools
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from . import models
from .errors import UnexpectedPersistenceFailure
from .storage import Storage

logger = logging.getLogger("studybuddy.storage")


def persisting(fn):
    """Roll back and re-raise database errors as `UnexpectedPersistenceFailure`.

    `OverflowError` is raised unwrapped by the sqlite3 driver for integers
    that do not fit a column.
    """
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except (SQLAlchemyError, OverflowError) as exc:
            self.session.rollback()
            logger.exception("storage operation %s failed", fn.__name__)
            raise UnexpectedPersistenceFailure() from exc
    return wrapper


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    @persisting
    def get_user(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    @persisting
    def get_user_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    @persisting
    def create_user(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    @persisting
    def update_user(self, user_id: int, *, username: Optional[str] = None,
                    display_name: Optional[str] = None) -> Optional[models.User]:
        user = self.session.get(models.User, user_id)
        if not user:
            return None
        if username is not None:
            user.username = username
        if display_name is not None:
            user.display_name = display_name
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    @persisting
    def add_user_xp(self, user_id: int, xp: int) -> None:
        """Add `xp` to the user's running total (no-op for unknown users)."""
        user = self.session.get(models.User, user_id)
        if not user:
            return
        user.total_xp = (user.total_xp or 0) + xp
        self.session.add(user)
        self.session.commit()


class GoalRepository:
    """Queries and status updates for `StudyGoal` rows."""
    def __init__(self, session: Session):
        self.session = session

    @persisting
    def get_goal(self, goal_id: int) -> Optional[models.StudyGoal]:
        return self.session.get(models.StudyGoal, goal_id)

    @persisting
    def get_active_goal(self, user_id: int) -> Optional[models.StudyGoal]:
        """Return the lowest-id active goal; several may be active at once."""
        stmt = select(models.StudyGoal).where(
            models.StudyGoal.user_id == user_id,
            models.StudyGoal.status == models.GoalStatus.ACTIVE,
        ).order_by(models.StudyGoal.id)
        return self.session.exec(stmt).first()

    @persisting
    def list_goals(self, user_id: int) -> List[models.StudyGoal]:
        stmt = select(models.StudyGoal).where(models.StudyGoal.user_id == user_id).order_by(models.StudyGoal.id)
        return list(self.session.exec(stmt).all())

    @persisting
    def create_goal(self, goal: models.StudyGoal) -> models.StudyGoal:
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    @persisting
    def update_goal_progress(self, goal_id: int, progress: int) -> None:
        goal = self.session.get(models.StudyGoal, goal_id)
        if goal:
            goal.progress = progress
            self.session.add(goal)
            self.session.commit()

    @persisting
    def complete_goal(self, goal_id: int, completed_at: datetime) -> None:
        goal = self.session.get(models.StudyGoal, goal_id)
        if goal:
            goal.status = models.GoalStatus.COMPLETED
            goal.progress = 100
            goal.completed_at = completed_at
            self.session.add(goal)
            self.session.commit()


class TaskRepository:
    """Persist and query `StudyTask` rows."""
    def __init__(self, session: Session):
        self.session = session

    @persisting
    def get_task(self, task_id: int) -> Optional[models.StudyTask]:
        return self.session.get(models.StudyTask, task_id)

    @persisting
    def list_tasks_for_goal(self, goal_id: int) -> List[models.StudyTask]:
        """List a goal's tasks in plan order."""
        stmt = select(models.StudyTask).where(models.StudyTask.goal_id == goal_id).order_by(models.StudyTask.order_index)
        return list(self.session.exec(stmt).all())

    @persisting
    def list_tasks_scheduled_between(self, user_id: int, start: datetime, end: datetime) -> List[models.StudyTask]:
        """Tasks of any of the user's goals scheduled in `[start, end)`."""
        stmt = (
            select(models.StudyTask)
            .join(models.StudyGoal, models.StudyGoal.id == models.StudyTask.goal_id)
            .where(
                models.StudyGoal.user_id == user_id,
                models.StudyTask.scheduled_for >= start,
                models.StudyTask.scheduled_for < end,
            )
            .order_by(models.StudyTask.order_index, models.StudyTask.id)
        )
        return list(self.session.exec(stmt).all())

    @persisting
    def create_tasks(self, tasks: List[models.StudyTask]) -> List[models.StudyTask]:
        """Insert all tasks in a single commit."""
        for t in tasks:
            self.session.add(t)
        self.session.commit()
        for t in tasks:
            self.session.refresh(t)
        return list(tasks)

    @persisting
    def set_task_completion(self, task_id: int, is_completed: bool, when: datetime) -> Optional[models.StudyTask]:
        task = self.session.get(models.StudyTask, task_id)
        if not task:
            return None
        task.is_completed = is_completed
        task.completed_at = when if is_completed else None
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        return task


class AchievementRepository:
    """Append-only access to `Achievement` rows."""
    def __init__(self, session: Session):
        self.session = session

    @persisting
    def list_achievements(self, user_id: int) -> List[models.Achievement]:
        """Newest first."""
        stmt = select(models.Achievement).where(models.Achievement.user_id == user_id).order_by(
            desc(models.Achievement.unlocked_at), desc(models.Achievement.id)
        )
        return list(self.session.exec(stmt).all())

    @persisting
    def list_recent_achievements(self, user_id: int, limit: int) -> List[models.Achievement]:
        stmt = select(models.Achievement).where(models.Achievement.user_id == user_id).order_by(
            desc(models.Achievement.unlocked_at), desc(models.Achievement.id)
        ).limit(limit)
        return list(self.session.exec(stmt).all())

    @persisting
    def create_achievement(self, achievement: models.Achievement) -> models.Achievement:
        self.session.add(achievement)
        self.session.commit()
        self.session.refresh(achievement)
        return achievement


class ReminderRepository:
    """CRUD operations for `StudyReminder` rows."""
    def __init__(self, session: Session):
        self.session = session

    @persisting
    def get_reminder(self, reminder_id: int) -> Optional[models.StudyReminder]:
        return self.session.get(models.StudyReminder, reminder_id)

    @persisting
    def list_reminders(self, user_id: int) -> List[models.StudyReminder]:
        stmt = select(models.StudyReminder).where(models.StudyReminder.user_id == user_id).order_by(models.StudyReminder.id)
        return list(self.session.exec(stmt).all())

    @persisting
    def create_reminder(self, reminder: models.StudyReminder) -> models.StudyReminder:
        self.session.add(reminder)
        self.session.commit()
        self.session.refresh(reminder)
        return reminder

    @persisting
    def set_reminder_active(self, reminder_id: int, is_active: bool) -> Optional[models.StudyReminder]:
        reminder = self.session.get(models.StudyReminder, reminder_id)
        if not reminder:
            return None
        reminder.is_active = is_active
        self.session.add(reminder)
        self.session.commit()
        self.session.refresh(reminder)
        return reminder


class SQLStorage(UserRepository, GoalRepository, TaskRepository, AchievementRepository,
                 ReminderRepository, Storage):
    """`Storage` backed by one SQLModel session."""
    def __init__(self, session: Session):
        self.session = session
