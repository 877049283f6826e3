"""Storage interface and the in-memory implementation.

Services depend on `Storage` only. Two implementations satisfy it:

- `MemoryStorage` (this module): dictionaries keyed by incrementing ids,
  used by unit tests and scripts that do not need a database.
- `repositories.SQLStorage`: SQLModel tables behind a `Session`.

Records returned by either implementation are the SQLModel classes from
`models`; callers treat them as read-only and go through the storage
methods to change state.
"""

import itertools
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from . import models


class Storage(ABC):
    """Capability set required by the service layer."""

    # users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[models.User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[models.User]: ...

    @abstractmethod
    def create_user(self, user: models.User) -> models.User: ...

    @abstractmethod
    def update_user(self, user_id: int, *, username: Optional[str] = None,
                    display_name: Optional[str] = None) -> Optional[models.User]: ...

    @abstractmethod
    def add_user_xp(self, user_id: int, xp: int) -> None: ...

    # goals
    @abstractmethod
    def get_goal(self, goal_id: int) -> Optional[models.StudyGoal]: ...

    @abstractmethod
    def get_active_goal(self, user_id: int) -> Optional[models.StudyGoal]: ...

    @abstractmethod
    def list_goals(self, user_id: int) -> List[models.StudyGoal]: ...

    @abstractmethod
    def create_goal(self, goal: models.StudyGoal) -> models.StudyGoal: ...

    @abstractmethod
    def update_goal_progress(self, goal_id: int, progress: int) -> None: ...

    @abstractmethod
    def complete_goal(self, goal_id: int, completed_at: datetime) -> None: ...

    # tasks
    @abstractmethod
    def get_task(self, task_id: int) -> Optional[models.StudyTask]: ...

    @abstractmethod
    def list_tasks_for_goal(self, goal_id: int) -> List[models.StudyTask]: ...

    @abstractmethod
    def list_tasks_scheduled_between(self, user_id: int, start: datetime, end: datetime) -> List[models.StudyTask]: ...

    @abstractmethod
    def create_tasks(self, tasks: List[models.StudyTask]) -> List[models.StudyTask]: ...

    @abstractmethod
    def set_task_completion(self, task_id: int, is_completed: bool, when: datetime) -> Optional[models.StudyTask]: ...

    # achievements
    @abstractmethod
    def list_achievements(self, user_id: int) -> List[models.Achievement]: ...

    @abstractmethod
    def list_recent_achievements(self, user_id: int, limit: int) -> List[models.Achievement]: ...

    @abstractmethod
    def create_achievement(self, achievement: models.Achievement) -> models.Achievement: ...

    # reminders
    @abstractmethod
    def get_reminder(self, reminder_id: int) -> Optional[models.StudyReminder]: ...

    @abstractmethod
    def list_reminders(self, user_id: int) -> List[models.StudyReminder]: ...

    @abstractmethod
    def create_reminder(self, reminder: models.StudyReminder) -> models.StudyReminder: ...

    @abstractmethod
    def set_reminder_active(self, reminder_id: int, is_active: bool) -> Optional[models.StudyReminder]: ...


class MemoryStorage(Storage):
    """Dictionary-backed storage. Not shared between processes."""

    def __init__(self):
        self._users: Dict[int, models.User] = {}
        self._goals: Dict[int, models.StudyGoal] = {}
        self._tasks: Dict[int, models.StudyTask] = {}
        self._achievements: Dict[int, models.Achievement] = {}
        self._reminders: Dict[int, models.StudyReminder] = {}
        self._ids = {name: itertools.count(1) for name in ("user", "goal", "task", "achievement", "reminder")}

    def _next_id(self, kind: str) -> int:
        return next(self._ids[kind])

    # users
    def get_user(self, user_id: int) -> Optional[models.User]:
        return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[models.User]:
        return next((u for u in self._users.values() if u.username == username), None)

    def create_user(self, user: models.User) -> models.User:
        user.id = self._next_id("user")
        self._users[user.id] = user
        return user

    def update_user(self, user_id, *, username=None, display_name=None):
        user = self._users.get(user_id)
        if user is None:
            return None
        if username is not None:
            user.username = username
        if display_name is not None:
            user.display_name = display_name
        return user

    def add_user_xp(self, user_id: int, xp: int) -> None:
        user = self._users.get(user_id)
        if user is not None:
            user.total_xp += xp

    # goals
    def get_goal(self, goal_id: int) -> Optional[models.StudyGoal]:
        return self._goals.get(goal_id)

    def get_active_goal(self, user_id: int) -> Optional[models.StudyGoal]:
        active = [g for g in self.list_goals(user_id) if g.status == models.GoalStatus.ACTIVE]
        return active[0] if active else None

    def list_goals(self, user_id: int) -> List[models.StudyGoal]:
        return sorted((g for g in self._goals.values() if g.user_id == user_id), key=lambda g: g.id)

    def create_goal(self, goal: models.StudyGoal) -> models.StudyGoal:
        goal.id = self._next_id("goal")
        self._goals[goal.id] = goal
        return goal

    def update_goal_progress(self, goal_id: int, progress: int) -> None:
        goal = self._goals.get(goal_id)
        if goal is not None:
            goal.progress = progress

    def complete_goal(self, goal_id: int, completed_at: datetime) -> None:
        goal = self._goals.get(goal_id)
        if goal is not None:
            goal.status = models.GoalStatus.COMPLETED
            goal.progress = 100
            goal.completed_at = completed_at

    # tasks
    def get_task(self, task_id: int) -> Optional[models.StudyTask]:
        return self._tasks.get(task_id)

    def list_tasks_for_goal(self, goal_id: int) -> List[models.StudyTask]:
        return sorted((t for t in self._tasks.values() if t.goal_id == goal_id), key=lambda t: t.order_index)

    def list_tasks_scheduled_between(self, user_id, start, end):
        goal_ids = {g.id for g in self.list_goals(user_id)}
        found = [
            t for t in self._tasks.values()
            if t.goal_id in goal_ids and t.scheduled_for is not None and start <= t.scheduled_for < end
        ]
        return sorted(found, key=lambda t: (t.order_index, t.id))

    def create_tasks(self, tasks: List[models.StudyTask]) -> List[models.StudyTask]:
        for task in tasks:
            task.id = self._next_id("task")
            self._tasks[task.id] = task
        return list(tasks)

    def set_task_completion(self, task_id, is_completed, when):
        task = self._tasks.get(task_id)
        if task is None:
            return None
        task.is_completed = is_completed
        task.completed_at = when if is_completed else None
        return task

    # achievements
    def list_achievements(self, user_id: int) -> List[models.Achievement]:
        mine = (a for a in self._achievements.values() if a.user_id == user_id)
        return sorted(mine, key=lambda a: (a.unlocked_at, a.id), reverse=True)

    def list_recent_achievements(self, user_id: int, limit: int) -> List[models.Achievement]:
        return self.list_achievements(user_id)[:limit]

    def create_achievement(self, achievement: models.Achievement) -> models.Achievement:
        achievement.id = self._next_id("achievement")
        self._achievements[achievement.id] = achievement
        return achievement

    # reminders
    def get_reminder(self, reminder_id: int) -> Optional[models.StudyReminder]:
        return self._reminders.get(reminder_id)

    def list_reminders(self, user_id: int) -> List[models.StudyReminder]:
        return sorted((r for r in self._reminders.values() if r.user_id == user_id), key=lambda r: r.id)

    def create_reminder(self, reminder: models.StudyReminder) -> models.StudyReminder:
        reminder.id = self._next_id("reminder")
        self._reminders[reminder.id] = reminder
        return reminder

    def set_reminder_active(self, reminder_id, is_active):
        reminder = self._reminders.get(reminder_id)
        if reminder is None:
            return None
        reminder.is_active = is_active
        return reminder
