"""Task scheduling strategies for newly generated plans.

A scheduler receives the normalized plan tasks and the goal's creation
moment and returns one `scheduled_for` value per task, in the same order.
"""

from datetime import datetime
from typing import Callable, List, Optional

from .schemas import GeneratedTask

TaskScheduler = Callable[[List[GeneratedTask], datetime], List[Optional[datetime]]]


def schedule_all_now(tasks: List[GeneratedTask], created_at: datetime) -> List[Optional[datetime]]:
    """Schedule the whole plan at the creation moment, regardless of timeline."""
    return [created_at for _ in tasks]


default_scheduler: TaskScheduler = schedule_all_now
