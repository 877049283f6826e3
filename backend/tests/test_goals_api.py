import json
from datetime import datetime

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from conftest import plan_json
from studybuddy import models
from studybuddy.database import engine
from studybuddy.main import app

client = TestClient(app)


def goal_payload(user_id, **overrides):
    body = {
        "userId": user_id,
        "title": "Learn Python",
        "description": "Focus on data analysis",
        "timeline": "1 month",
        "dailyStudyTime": "1 hour",
        "pace": "moderate",
    }
    body.update(overrides)
    return body


def count_rows(table):
    with Session(engine) as session:
        return len(session.exec(select(table)).all())


def test_create_goal_with_plan(make_user, use_model):
    user_id = make_user()
    use_model(content=plan_json(count=10))
    r = client.post('/goals', json=goal_payload(user_id))
    assert r.status_code == 200
    data = r.json()

    goal = data['goal']
    assert goal['status'] == 'active'
    assert goal['progress'] == 0
    assert goal['userId'] == user_id
    assert goal['dailyStudyTime'] == '1 hour'

    tasks = data['tasks']
    assert len(tasks) == 10
    assert [t['orderIndex'] for t in tasks] == list(range(10))
    assert all(not t['isCompleted'] and t['completedAt'] is None for t in tasks)
    today = datetime.now().date().isoformat()
    assert all(t['scheduledFor'].startswith(today) for t in tasks)

    assert data['aiInsights'] == {
        'totalEstimatedHours': 12,
        'difficultyLevel': 'Beginner',
        'learningPath': ['Basics', 'Practice', 'Projects'],
    }


def test_invalid_goal_reports_fields_without_calling_model(make_user, use_model):
    user_id = make_user()
    completions = use_model(content=plan_json())
    r = client.post('/goals', json=goal_payload(user_id, title="   ", pace="turbo"))
    assert r.status_code == 400
    body = r.json()
    assert body['message'] == 'Invalid goal data'
    fields = {e['field'] for e in body['errors']}
    assert 'title' in fields
    assert 'pace' in fields
    assert completions.calls == []
    assert count_rows(models.StudyGoal) == 0


def test_missing_fields_are_reported(make_user, use_model):
    use_model(content=plan_json())
    r = client.post('/goals', json={'userId': make_user()})
    assert r.status_code == 400
    fields = {e['field'] for e in r.json()['errors']}
    assert {'title', 'timeline', 'dailyStudyTime', 'pace'} <= fields


def test_unknown_user_is_404(use_model):
    completions = use_model(content=plan_json())
    r = client.post('/goals', json=goal_payload(999))
    assert r.status_code == 404
    assert completions.calls == []


def test_generation_failure_persists_nothing(make_user, use_model):
    user_id = make_user()
    use_model(error=TimeoutError("model timed out"))
    r = client.post('/goals', json=goal_payload(user_id))
    assert r.status_code == 500
    assert r.json()['message'] == 'Failed to create goal and study plan'
    assert count_rows(models.StudyGoal) == 0
    assert count_rows(models.StudyTask) == 0


def test_malformed_model_output_persists_nothing(make_user, use_model):
    user_id = make_user()
    use_model(content='{"lessons": []}')
    r = client.post('/goals', json=goal_payload(user_id))
    assert r.status_code == 500
    assert count_rows(models.StudyGoal) == 0


def test_list_goals_and_tasks(make_user, use_model):
    user_id = make_user()
    use_model(content=plan_json(count=3))
    first = client.post('/goals', json=goal_payload(user_id)).json()['goal']
    client.post('/goals', json=goal_payload(user_id, title="Learn SQL"))

    goals = client.get(f'/goals/{user_id}').json()
    assert [g['title'] for g in goals] == ['Learn Python', 'Learn SQL']
    assert client.get(f'/goals/{user_id + 100}').json() == []

    tasks = client.get(f"/goals/{first['id']}/tasks").json()
    assert [t['title'] for t in tasks] == ['Step 1', 'Step 2', 'Step 3']
    assert client.get('/goals/12345/tasks').json() == []


def test_complete_goal(make_user, use_model):
    user_id = make_user()
    use_model(content=plan_json(count=2))
    goal_id = client.post('/goals', json=goal_payload(user_id)).json()['goal']['id']

    r = client.patch(f'/goals/{goal_id}', json={'status': 'completed'})
    assert r.status_code == 200
    done = r.json()
    assert done['status'] == 'completed'
    assert done['progress'] == 100
    assert done['completedAt'] is not None

    again = client.patch(f'/goals/{goal_id}', json={'status': 'completed'}).json()
    assert again['completedAt'] == done['completedAt']


def test_other_status_changes_are_ignored(make_user, use_model):
    user_id = make_user()
    use_model(content=plan_json(count=1))
    goal_id = client.post('/goals', json=goal_payload(user_id)).json()['goal']['id']
    r = client.patch(f'/goals/{goal_id}', json={'status': 'paused'})
    assert r.status_code == 200
    assert r.json()['status'] == 'active'


def test_goal_status_errors():
    assert client.patch('/goals/4242', json={'status': 'completed'}).status_code == 404
    assert client.patch('/goals/1', json={'status': 'done'}).status_code == 400


def test_oversized_model_numbers_still_create_a_full_plan(make_user, use_model):
    user_id = make_user()
    answer = json.loads(plan_json(count=3))
    answer['tasks'][0]['estimatedMinutes'] = 1e20
    answer['tasks'][1]['xpReward'] = 10 ** 25
    use_model(content=json.dumps(answer))

    r = client.post('/goals', json=goal_payload(user_id))
    assert r.status_code == 200
    tasks = r.json()['tasks']
    assert [t['estimatedMinutes'] for t in tasks] == [30, 30, 30]
    assert [t['xpReward'] for t in tasks] == [50, 50, 50]
    assert count_rows(models.StudyGoal) == 1
    assert count_rows(models.StudyTask) == 3
