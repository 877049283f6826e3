import json
import os
import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest

# Point the app at throwaway locations before anything imports `studybuddy`.
_TMP = Path(tempfile.mkdtemp(prefix="studybuddy-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["GENERATION_OBSERVABILITY_DIR"] = str(_TMP / "observability")
os.environ.setdefault("ENV", "dev")

from sqlmodel import SQLModel, Session  # noqa: E402

from studybuddy.database import engine  # noqa: E402
from studybuddy.main import app  # noqa: E402
from studybuddy.planner import PlanGenerator, get_plan_generator  # noqa: E402
from studybuddy.repositories import SQLStorage  # noqa: E402
from studybuddy import models, services  # noqa: E402


class FakeCompletions:
    """Stand-in for `client.chat.completions` that replays canned answers."""
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(content=None, error=None):
    completions = FakeCompletions(content=content, error=error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def plan_json(count=10, **overrides):
    """A well-formed model answer with `count` tasks."""
    types = ["video", "reading", "quiz", "practice", "project"]
    body = {
        "tasks": [
            {
                "title": f"Step {i + 1}",
                "description": f"Work through part {i + 1}",
                "type": types[i % len(types)],
                "estimatedMinutes": 30,
                "xpReward": 50,
                "orderIndex": i,
            }
            for i in range(count)
        ],
        "totalEstimatedHours": 12,
        "difficultyLevel": "Beginner",
        "learningPath": ["Basics", "Practice", "Projects"],
    }
    body.update(overrides)
    return json.dumps(body)


@pytest.fixture(autouse=True)
def reset_db():
    """Fresh tables for every test."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def use_model():
    """Install a fake model answer for the API; returns the fake completions."""
    def install(content=None, error=None):
        client = fake_client(content=content, error=error)
        generator = PlanGenerator(client=client, model="test-model")
        app.dependency_overrides[get_plan_generator] = lambda: generator
        return client.chat.completions
    return install


@pytest.fixture
def make_user():
    """Insert a user straight into the database and return its id."""
    def create(username="learner", streak=0, total_xp=0):
        with Session(engine) as session:
            user = SQLStorage(session).create_user(models.User(
                username=username,
                password_hash=services.hash_password("pw"),
                display_name=username.title(),
                streak=streak,
                total_xp=total_xp,
            ))
            return user.id
    return create
