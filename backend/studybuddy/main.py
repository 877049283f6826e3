"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints used by the StudyBuddy frontend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Domain errors are mapped to status
codes by the exception handlers registered below.

Endpoints implemented:
- GET /dashboard/{user_id}
- POST /goals
- GET /goals/{user_id}
- PATCH /goals/{goal_id}
- GET /goals/{goal_id}/tasks
- PATCH /tasks/{task_id}/complete
- GET /achievements/{user_id}
- GET /ai-insight/{user_id}
- POST /users, GET/PATCH /users/{user_id}, GET /users/{user_id}/export
- POST /reminders, PATCH /reminders/{reminder_id}
- GET /ai/stats, GET /health
"""

import json
import logging
import time
import uuid
from typing import Any, Dict, List

import uvicorn
from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from . import services
from .config import settings
from .database import create_db_and_tables, engine, get_session
from .errors import InvalidRequest, StudyBuddyError
from .planner import PlanGenerator, get_plan_generator
from .repositories import SQLStorage
from .schemas import (
    AchievementOut, DashboardOut, ExportOut, GenerationStatsOut, GoalOut, GoalStatusIn, GoalWithPlanOut,
    InsightOut, ReminderCreateIn, ReminderOut, ReminderStatusIn, TaskCompletionIn, TaskOut, UserCreateIn,
    UserOut, UserUpdateIn, format_errors,
)
from .storage import Storage
from .utils.generation_observability import get_generation_stats

app = FastAPI(title="StudyBuddy API")
logger = logging.getLogger("studybuddy.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

# Wide-open CORS keeps a local frontend dev server working without extra config.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()
if settings.SEED_DEMO_USER:
    with Session(engine) as _session:
        services.seed_demo_data(SQLStorage(_session))


def get_storage(db: Session = Depends(get_session)) -> Storage:
    """Request-scoped storage bound to the request's database session."""
    return SQLStorage(db)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(StudyBuddyError)
async def handle_domain_error(request: Request, exc: StudyBuddyError):
    body: Dict[str, Any] = {"message": str(exc)}
    if isinstance(exc, InvalidRequest):
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    """Report malformed bodies and path parameters as 400 with per-field detail."""
    return JSONResponse(
        status_code=400,
        content={"message": InvalidRequest.public_message, "errors": format_errors(exc.errors())},
    )


@app.get('/dashboard/{user_id}', response_model=DashboardOut)
def get_dashboard(user_id: int, storage: Storage = Depends(get_storage)):
    """Return the user's dashboard: active goal progress, today's tasks, stats."""
    data = services.DashboardService(storage).get_dashboard(user_id)
    return DashboardOut.model_validate(data)


@app.post('/goals', response_model=GoalWithPlanOut)
def create_goal(payload: Dict[str, Any] = Body(...),
                storage: Storage = Depends(get_storage),
                generator: PlanGenerator = Depends(get_plan_generator)):
    """Create a goal together with its AI-generated study plan.

    The body is validated by the service so that shape errors are reported
    before the model is called. Generation failures leave no records behind.
    """
    result = services.GoalService(storage, generator).create_goal_with_plan(payload)
    return GoalWithPlanOut.model_validate(result)


@app.get('/goals/{user_id}', response_model=List[GoalOut])
def list_goals(user_id: int, storage: Storage = Depends(get_storage)):
    """List every goal owned by `user_id`, oldest first."""
    return [GoalOut.model_validate(g) for g in services.GoalService(storage).list_goals(user_id)]


@app.patch('/goals/{goal_id}', response_model=GoalOut)
def update_goal_status(goal_id: int, payload: GoalStatusIn, storage: Storage = Depends(get_storage)):
    """Change a goal's status. Only `completed` is acted upon."""
    goal = services.GoalService(storage).update_status(goal_id, payload.status)
    return GoalOut.model_validate(goal)


@app.get('/goals/{goal_id}/tasks', response_model=List[TaskOut])
def list_goal_tasks(goal_id: int, storage: Storage = Depends(get_storage)):
    """List a goal's tasks ordered by `orderIndex`."""
    return [TaskOut.model_validate(t) for t in services.GoalService(storage).list_tasks(goal_id)]


@app.patch('/tasks/{task_id}/complete', response_model=TaskOut)
def complete_task(task_id: int, payload: TaskCompletionIn, storage: Storage = Depends(get_storage)):
    """Toggle task completion, awarding XP and achievements on completion."""
    task = services.TaskService(storage).set_task_completion(task_id, payload.is_completed)
    return TaskOut.model_validate(task)


@app.get('/achievements/{user_id}', response_model=List[AchievementOut])
def list_achievements(user_id: int, storage: Storage = Depends(get_storage)):
    return [AchievementOut.model_validate(a) for a in storage.list_achievements(user_id)]


@app.get('/ai-insight/{user_id}', response_model=InsightOut)
def get_ai_insight(user_id: int,
                   storage: Storage = Depends(get_storage),
                   generator: PlanGenerator = Depends(get_plan_generator)):
    """Motivational text for the user's active goal.

    404 when the user or their active goal is missing; model failures are
    replaced by a static encouragement and never surface here.
    """
    insight = services.InsightService(storage, generator).get_insight(user_id)
    return InsightOut(insight=insight)


@app.post('/users', response_model=UserOut, status_code=201)
def create_user(payload: UserCreateIn, storage: Storage = Depends(get_storage)):
    """Register a learner. The password is stored hashed."""
    return UserOut.model_validate(services.UserService(storage).create_user(payload))


@app.get('/users/{user_id}', response_model=UserOut)
def get_user(user_id: int, storage: Storage = Depends(get_storage)):
    return UserOut.model_validate(services.UserService(storage).get_user(user_id))


@app.patch('/users/{user_id}', response_model=UserOut)
def update_user(user_id: int, payload: UserUpdateIn, storage: Storage = Depends(get_storage)):
    """Update the username and/or display name."""
    return UserOut.model_validate(services.UserService(storage).update_user(user_id, payload))


@app.get('/users/{user_id}/export', response_model=ExportOut)
def export_user(user_id: int, storage: Storage = Depends(get_storage)):
    """Dump the user's profile, goals, achievements and reminders."""
    return ExportOut.model_validate(services.UserService(storage).export_user(user_id))


@app.post('/reminders', response_model=ReminderOut)
def create_reminder(payload: ReminderCreateIn, storage: Storage = Depends(get_storage)):
    return ReminderOut.model_validate(services.ReminderService(storage).create_reminder(payload))


@app.patch('/reminders/{reminder_id}', response_model=ReminderOut)
def update_reminder(reminder_id: int, payload: ReminderStatusIn, storage: Storage = Depends(get_storage)):
    """Enable or disable a reminder."""
    reminder = services.ReminderService(storage).set_active(reminder_id, payload.is_active)
    return ReminderOut.model_validate(reminder)


@app.get("/ai/stats", response_model=GenerationStatsOut)
def generation_stats():
    """Aggregate model-call stats from the observability log."""
    return GenerationStatsOut.from_raw(get_generation_stats())


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
