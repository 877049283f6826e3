"""Study plan and motivational insight generation through the OpenAI API.

`PlanGenerator.generate_plan` turns a `GoalRequest` into a normalized
`StudyPlan` or raises `GenerationError`. `PlanGenerator.generate_insight`
returns a short motivational text and never raises.

Model output is decoded strictly: text that is not a JSON object holding a
`tasks` list is rejected with `MalformedGenerationResponse`. Only entries
inside an accepted `tasks` list get per-field defaults.
"""

import json
import logging
import math
import time
from functools import lru_cache
from typing import Any, List, Optional

from openai import OpenAI

from .config import settings
from .models import TaskType
from .schemas import GeneratedTask, GoalRequest, InsightSnapshot, StudyPlan
from .utils.generation_observability import record_generation_event

logger = logging.getLogger("studybuddy.planner")

PLAN_SYSTEM_PROMPT = (
    "You are an expert educational curriculum designer who creates personalized, "
    "effective study plans. Always respond with valid JSON format."
)
INSIGHT_SYSTEM_PROMPT = (
    "You are a supportive and knowledgeable learning coach who provides personalized "
    "motivation and guidance to students."
)
EMPTY_INSIGHT = "Great job on your learning journey! Keep up the excellent work."
FALLBACK_INSIGHT = (
    "You're making excellent progress! Stay consistent with your daily studies "
    "and you'll achieve your goals."
)

DEFAULT_TASK_TYPE = TaskType.READING
DEFAULT_ESTIMATED_MINUTES = 30
DEFAULT_XP_REWARD = 50
DEFAULT_DIFFICULTY = "Beginner"
# Largest value accepted for minutes, XP and orderIndex (32-bit INTEGER columns).
MAX_TASK_NUMBER = 2 ** 31 - 1


class GenerationError(Exception):
    """The model call failed or its output could not be used."""


class MalformedGenerationResponse(GenerationError):
    """The model answered, but not with a JSON object holding a `tasks` list."""


def build_plan_prompt(request: GoalRequest) -> str:
    return f"""Create a detailed, personalized study plan for learning "{request.title}" with the following requirements:

Timeline: {request.timeline.value}
Daily Study Time: {request.daily_study_time.value}
Learning Pace: {request.pace.value}
Additional Details: {request.description or "None provided"}

Please generate a comprehensive study plan that includes:
1. A series of specific tasks (videos to watch, readings, quizzes, practice exercises, projects)
2. Each task should have a clear title, description, type, estimated time in minutes, and XP reward
3. Tasks should be ordered logically from beginner to advanced
4. The plan should realistically fit within the specified timeline and daily study time
5. Include a mix of different learning activities (videos, reading, hands-on practice, assessments)

Respond with a JSON object in this exact format:
{{
  "tasks": [
    {{
      "title": "Task title",
      "description": "Detailed description of what the learner will do",
      "type": "video|reading|quiz|practice|project",
      "estimatedMinutes": number,
      "xpReward": number,
      "orderIndex": number
    }}
  ],
  "totalEstimatedHours": number,
  "difficultyLevel": "Beginner|Intermediate|Advanced",
  "learningPath": ["Phase 1 description", "Phase 2 description", "etc"]
}}

Make sure the XP rewards are balanced (videos: 30-50, reading: 40-60, quizzes: 50-75, practice: 60-100, projects: 100-200) and the total time aligns with the specified constraints."""


def build_insight_prompt(snapshot: InsightSnapshot) -> str:
    return f"""Generate a personalized, motivational insight for a student with the following progress:

- Current study streak: {snapshot.current_streak} days
- Completed tasks: {snapshot.completed_tasks} out of {snapshot.total_tasks}
- Current goal: {snapshot.goal_title}
- Days into their learning journey: {snapshot.days_into_goal}

Create a brief, encouraging message (2-3 sentences) that:
1. Acknowledges their progress
2. Provides specific motivation based on their stats
3. Gives a helpful tip or suggestion for continued success

Keep it personal, positive, and actionable. Respond with just the motivational text, no JSON formatting."""


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _positive_int(value: Any, default: int) -> int:
    number = _number(value)
    if number is None or number < 1 or number > MAX_TASK_NUMBER:
        return default
    return int(number)


def _task_type(value: Any) -> TaskType:
    text = _text(value)
    try:
        return TaskType(text.lower()) if text else DEFAULT_TASK_TYPE
    except ValueError:
        return DEFAULT_TASK_TYPE


def normalize_task(entry: Any, position: int) -> GeneratedTask:
    """Fill every missing or unusable field of one model task entry."""
    if not isinstance(entry, dict):
        entry = {}
    order = _number(entry.get("orderIndex"))
    return GeneratedTask(
        title=_text(entry.get("title")) or f"Task {position + 1}",
        description=_text(entry.get("description")) or "",
        type=_task_type(entry.get("type")),
        estimated_minutes=_positive_int(entry.get("estimatedMinutes"), DEFAULT_ESTIMATED_MINUTES),
        xp_reward=_positive_int(entry.get("xpReward"), DEFAULT_XP_REWARD),
        order_index=int(order) if order is not None and 0 <= order <= MAX_TASK_NUMBER else position,
    )


def _renumber_if_colliding(tasks: List[GeneratedTask]) -> List[GeneratedTask]:
    indices = [t.order_index for t in tasks]
    if len(set(indices)) == len(indices):
        return tasks
    logger.warning("model returned duplicate orderIndex values %s; using list order", indices)
    return [t.model_copy(update={"order_index": i}) for i, t in enumerate(tasks)]


def parse_plan_response(raw: Optional[str]) -> StudyPlan:
    """Decode raw model text into a normalized `StudyPlan`."""
    try:
        data = json.loads(raw or "")
    except ValueError as exc:
        raise MalformedGenerationResponse(f"response is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("tasks"), list):
        raise MalformedGenerationResponse("Invalid response format: missing tasks array")

    tasks = [normalize_task(entry, i) for i, entry in enumerate(data["tasks"])]
    hours = _number(data.get("totalEstimatedHours"))
    path = data.get("learningPath")
    return StudyPlan(
        tasks=_renumber_if_colliding(tasks),
        total_estimated_hours=hours if hours is not None and hours >= 0 else 0,
        difficulty_level=_text(data.get("difficultyLevel")) or DEFAULT_DIFFICULTY,
        learning_path=[str(step) for step in path if step is not None] if isinstance(path, list) else [],
    )


class PlanGenerator:
    """Client for the text-generation model.

    `client` is any object exposing `chat.completions.create` like
    `openai.OpenAI`; when omitted, one is built lazily from settings with
    a bounded timeout and retries disabled.
    """

    def __init__(self, client=None, *, model: Optional[str] = None, timeout: Optional[float] = None):
        self._client = client
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout or settings.OPENAI_TIMEOUT_SECONDS

    @property
    def client(self):
        if self._client is None:
            self._client = OpenAI(api_key=settings.OPENAI_API_KEY or None, timeout=self.timeout, max_retries=0)
        return self._client

    def _record(self, kind: str, started: float, error: Optional[Exception] = None, **extra) -> None:
        event = {
            "kind": kind,
            "model": self.model,
            "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
            "failed": error is not None,
            "error": str(error) if error is not None else "",
        }
        event.update(extra)
        record_generation_event(event)

    def generate_plan(self, request: GoalRequest) -> StudyPlan:
        started = time.perf_counter()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": PLAN_SYSTEM_PROMPT},
                    {"role": "user", "content": build_plan_prompt(request)},
                ],
                response_format={"type": "json_object"},
                temperature=settings.PLAN_TEMPERATURE,
            )
            plan = parse_plan_response(response.choices[0].message.content)
        except MalformedGenerationResponse as e:
            self._record("plan", started, error=e)
            logger.warning("Failed to generate study plan: %s", e)
            raise
        except Exception as e:
            self._record("plan", started, error=e)
            logger.exception("Failed to generate study plan")
            raise GenerationError(f"Failed to generate study plan: {e}") from e
        self._record("plan", started, task_count=len(plan.tasks))
        return plan

    def generate_insight(self, snapshot: InsightSnapshot) -> str:
        started = time.perf_counter()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": INSIGHT_SYSTEM_PROMPT},
                    {"role": "user", "content": build_insight_prompt(snapshot)},
                ],
                temperature=settings.INSIGHT_TEMPERATURE,
                max_tokens=settings.INSIGHT_MAX_TOKENS,
            )
            content = response.choices[0].message.content
        except Exception as e:
            self._record("insight", started, error=e)
            logger.warning("Failed to generate motivational insight: %s", e)
            return FALLBACK_INSIGHT
        self._record("insight", started)
        return (content or "").strip() or EMPTY_INSIGHT


@lru_cache
def get_plan_generator() -> PlanGenerator:
    """FastAPI dependency returning the process-wide generator."""
    return PlanGenerator()
