"""Service-level behaviour against the in-memory storage."""

from datetime import datetime, timedelta

import pytest

from conftest import fake_client, plan_json
from studybuddy import models, progress
from studybuddy.achievements import StatsSnapshot, evaluate_rules, task_master_rule
from studybuddy.errors import GenerationFailed, InvalidRequest, NotFound
from studybuddy.planner import PlanGenerator
from studybuddy.services import GoalService, TaskService
from studybuddy.storage import MemoryStorage

NOW = datetime(2024, 6, 3, 9, 30)


def goal_request(user_id):
    return {"userId": user_id, "title": "Linear algebra", "timeline": "2 months",
            "dailyStudyTime": "1.5 hours", "pace": "moderate"}


def setup_storage():
    storage = MemoryStorage()
    user = storage.create_user(models.User(username="sam", password_hash="x", display_name="Sam"))
    return storage, user


def test_goal_creation_uses_scheduler_and_clock():
    storage, user = setup_storage()
    generator = PlanGenerator(client=fake_client(content=plan_json(count=3)))
    seen = []

    def one_per_day(tasks, created_at):
        seen.append(created_at)
        return [created_at + timedelta(days=i) for i in range(len(tasks))]

    service = GoalService(storage, generator, scheduler=one_per_day, clock=lambda: NOW)
    result = service.create_goal_with_plan(goal_request(user.id))
    assert seen == [NOW]
    assert result["goal"].created_at == NOW
    assert [t.scheduled_for for t in result["tasks"]] == [NOW, NOW + timedelta(days=1), NOW + timedelta(days=2)]


def test_goal_creation_failures_write_nothing():
    storage, user = setup_storage()
    failing = PlanGenerator(client=fake_client(error=OSError("reset by peer")))
    with pytest.raises(GenerationFailed):
        GoalService(storage, failing).create_goal_with_plan(goal_request(user.id))
    with pytest.raises(InvalidRequest) as info:
        GoalService(storage, failing).create_goal_with_plan({"userId": user.id})
    assert {e["field"] for e in info.value.errors} >= {"title", "pace"}
    with pytest.raises(NotFound):
        GoalService(storage, failing).create_goal_with_plan(goal_request(user.id + 1))
    assert storage.list_goals(user.id) == []


def test_completion_does_not_touch_completed_goal_progress():
    storage, user = setup_storage()
    generator = PlanGenerator(client=fake_client(content=plan_json(count=2)))
    result = GoalService(storage, generator, clock=lambda: NOW).create_goal_with_plan(goal_request(user.id))
    goal_id = result["goal"].id
    GoalService(storage, clock=lambda: NOW).update_status(goal_id, models.GoalStatus.COMPLETED)

    TaskService(storage, clock=lambda: NOW).set_task_completion(result["tasks"][0].id, True)
    assert storage.get_goal(goal_id).progress == 100
    assert storage.get_user(user.id).total_xp == 50


def test_achievements_count_only_todays_tasks():
    storage, user = setup_storage()
    yesterday = NOW - timedelta(days=1)
    generator = PlanGenerator(client=fake_client(content=plan_json(count=6)))
    tasks = GoalService(storage, generator, clock=lambda: yesterday).create_goal_with_plan(
        goal_request(user.id))["tasks"]

    service = TaskService(storage, clock=lambda: NOW)
    for t in tasks[:5]:
        service.set_task_completion(t.id, True)
    # the tasks were scheduled yesterday, so nothing counts toward today
    assert storage.list_achievements(user.id) == []


def test_custom_rules_are_evaluated():
    storage, user = setup_storage()
    generator = PlanGenerator(client=fake_client(content=plan_json(count=1)))
    task = GoalService(storage, generator, clock=lambda: NOW).create_goal_with_plan(
        goal_request(user.id))["tasks"][0]
    snapshots = []
    TaskService(storage, rules=[lambda s: snapshots.append(s) or []], clock=lambda: NOW).set_task_completion(
        task.id, True)
    assert snapshots == [StatsSnapshot(user_id=user.id, total_xp=50, streak=0, completed_today=1)]


@pytest.mark.parametrize("completed, unlocked", [(4, 0), (5, 1), (6, 0)])
def test_task_master_rule(completed, unlocked):
    snapshot = StatsSnapshot(user_id=1, total_xp=0, streak=0, completed_today=completed)
    assert len(task_master_rule(snapshot)) == unlocked
    assert len(evaluate_rules(snapshot)) == unlocked


@pytest.mark.parametrize("completed, total, expected", [(0, 0, 0), (0, 10, 0), (1, 8, 13), (2, 3, 67), (10, 10, 100)])
def test_completion_percentage(completed, total, expected):
    assert progress.completion_percentage(completed, total) == expected


@pytest.mark.parametrize("completed, hours", [(0, 0), (1, 0.8), (3, 2.3), (5, 3.8)])
def test_estimated_study_hours(completed, hours):
    assert progress.estimated_study_hours(completed) == hours


def test_day_bounds_and_days_since():
    start, end = progress.day_bounds(NOW)
    assert start == datetime(2024, 6, 3)
    assert end == datetime(2024, 6, 4)
    assert progress.days_since(NOW - timedelta(days=2, hours=3), NOW) == 2
    assert progress.days_since(NOW + timedelta(days=1), NOW) == 0
