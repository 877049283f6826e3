"""Derived progress figures shared by the dashboard and completion flows."""

import math
from datetime import datetime, time, timedelta
from typing import Iterable, Tuple

from . import models

# Dashboard study time assumes every completed task took this long.
AVERAGE_TASK_MINUTES = 45


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up (2.25 -> 2.3), unlike the builtin `round`."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def completion_percentage(completed: int, total: int) -> int:
    """Whole percentage of `completed` over `total`, or 0 for an empty plan."""
    if total <= 0:
        return 0
    return int(round_half_up(100 * completed / total))


def count_completed(tasks: Iterable[models.StudyTask]) -> int:
    return sum(1 for t in tasks if t.is_completed)


def day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Start of `now`'s calendar day and start of the next one."""
    start = datetime.combine(now.date(), time.min)
    return start, start + timedelta(days=1)


def estimated_study_hours(completed_today: int) -> float:
    """Coarse hours studied today, one decimal place."""
    return round_half_up(completed_today * AVERAGE_TASK_MINUTES / 60, 1)


def days_since(start: datetime, now: datetime) -> int:
    """Whole days elapsed between `start` and `now` (never negative)."""
    return max(0, (now - start).days)
