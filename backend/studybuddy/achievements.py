"""Achievement unlock rules.

A rule is a plain function from a `StatsSnapshot` to the achievements it
wants to create. The completion flow evaluates every registered rule after
crediting XP, so new milestones are added here without touching the
completion code path.
"""

from dataclasses import dataclass
from typing import Callable, List, Sequence

from . import models


@dataclass(frozen=True)
class StatsSnapshot:
    user_id: int
    total_xp: int
    streak: int
    completed_today: int


@dataclass(frozen=True)
class AchievementDraft:
    type: models.AchievementType
    title: str
    description: str
    icon: str
    xp_reward: int

    def to_record(self, user_id: int) -> models.Achievement:
        return models.Achievement(
            user_id=user_id,
            type=self.type,
            title=self.title,
            description=self.description,
            icon=self.icon,
            xp_reward=self.xp_reward,
        )


AchievementRule = Callable[[StatsSnapshot], List[AchievementDraft]]

TASK_MASTER = AchievementDraft(
    type=models.AchievementType.TASKS,
    title="Task Master",
    description="Completed 5 tasks in a day",
    icon="fas fa-check-circle",
    xp_reward=100,
)
TASK_MASTER_DAILY_COUNT = 5


def task_master_rule(snapshot: StatsSnapshot) -> List[AchievementDraft]:
    """Unlock "Task Master" when today's completed count hits exactly five.

    The check is an equality, so a sixth completion does not unlock it again
    the same day, but another day reaching five does. Existing achievements
    are not consulted.
    """
    if snapshot.completed_today == TASK_MASTER_DAILY_COUNT:
        return [TASK_MASTER]
    return []


DEFAULT_RULES: Sequence[AchievementRule] = (task_master_rule,)


def evaluate_rules(snapshot: StatsSnapshot, rules: Sequence[AchievementRule] = DEFAULT_RULES) -> List[AchievementDraft]:
    drafts = []
    for rule in rules:
        drafts.extend(rule(snapshot))
    return drafts
