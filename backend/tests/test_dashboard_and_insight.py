from datetime import datetime

from fastapi.testclient import TestClient
from sqlmodel import Session

from conftest import plan_json
from studybuddy.achievements import TASK_MASTER
from studybuddy.database import engine
from studybuddy.main import app
from studybuddy.planner import EMPTY_INSIGHT, FALLBACK_INSIGHT
from studybuddy.repositories import SQLStorage

client = TestClient(app)


def start_goal(user_id):
    payload = {
        "userId": user_id,
        "title": "Learn Spanish",
        "timeline": "3 months",
        "dailyStudyTime": "30 minutes",
        "pace": "relaxed",
    }
    return client.post('/goals', json=payload).json()


def test_dashboard_for_new_user(make_user):
    user_id = make_user(streak=7, total_xp=1247)
    r = client.get(f'/dashboard/{user_id}')
    assert r.status_code == 200
    data = r.json()
    assert data['user']['id'] == user_id
    assert 'passwordHash' not in data['user']
    assert data['goalProgress'] is None
    assert data['todaysTasks'] == []
    assert data['recentAchievements'] == []
    assert data['stats'] == {
        'streak': 7,
        'totalXp': 1247,
        'completedTasks': 0,
        'totalDailyTasks': 0,
        'studyTimeToday': 0,
    }


def test_dashboard_tracks_todays_work(make_user, use_model):
    user_id = make_user()
    use_model(content=plan_json(count=10))
    tasks = start_goal(user_id)['tasks']
    for t in tasks[:3]:
        client.patch(f"/tasks/{t['id']}/complete", json={'isCompleted': True})

    data = client.get(f'/dashboard/{user_id}').json()
    progress = data['goalProgress']
    assert progress['title'] == 'Learn Spanish'
    assert progress['completedTasks'] == 3
    assert progress['totalTasks'] == 10
    assert progress['completionPercentage'] == 30
    assert len(data['todaysTasks']) == 10
    assert data['stats']['completedTasks'] == 3
    assert data['stats']['totalDailyTasks'] == 10
    assert data['stats']['studyTimeToday'] == 2.3
    assert data['stats']['totalXp'] == 150


def test_dashboard_shows_three_newest_achievements(make_user):
    user_id = make_user()
    with Session(engine) as session:
        storage = SQLStorage(session)
        for day in range(1, 5):
            record = TASK_MASTER.to_record(user_id)
            record.unlocked_at = datetime(2024, 3, day, 12, 0)
            storage.create_achievement(record)

    recent = client.get(f'/dashboard/{user_id}').json()['recentAchievements']
    assert [a['unlockedAt'][:10] for a in recent] == ['2024-03-04', '2024-03-03', '2024-03-02']
    assert len(client.get(f'/achievements/{user_id}').json()) == 4


def test_dashboard_unknown_user():
    r = client.get('/dashboard/31337')
    assert r.status_code == 404
    assert r.json()['message'] == 'User not found'


def test_insight_for_active_goal(make_user, use_model):
    user_id = make_user(streak=4)
    completions = use_model(content=plan_json(count=2))
    start_goal(user_id)
    completions.content = "Four days strong! Keep it up."

    r = client.get(f'/ai-insight/{user_id}')
    assert r.status_code == 200
    assert r.json() == {'insight': 'Four days strong! Keep it up.'}
    prompt = completions.calls[-1]['messages'][1]['content']
    assert 'Current study streak: 4 days' in prompt
    assert 'Current goal: Learn Spanish' in prompt


def test_insight_model_failure_is_not_an_error(make_user, use_model):
    user_id = make_user()
    completions = use_model(content=plan_json(count=1))
    start_goal(user_id)
    completions.error = RuntimeError("quota exceeded")
    r = client.get(f'/ai-insight/{user_id}')
    assert r.status_code == 200
    assert r.json()['insight'] == FALLBACK_INSIGHT


def test_insight_empty_answer(make_user, use_model):
    user_id = make_user()
    completions = use_model(content=plan_json(count=1))
    start_goal(user_id)
    completions.content = ""
    assert client.get(f'/ai-insight/{user_id}').json()['insight'] == EMPTY_INSIGHT


def test_insight_missing_user_and_missing_goal_look_the_same(make_user, use_model):
    use_model(content="unused")
    no_user = client.get('/ai-insight/5555')
    no_goal = client.get(f'/ai-insight/{make_user()}')
    assert no_user.status_code == no_goal.status_code == 404
    assert no_user.json() == no_goal.json() == {'message': 'User or active goal not found'}


def test_insight_ignores_completed_goals(make_user, use_model):
    user_id = make_user()
    use_model(content=plan_json(count=1))
    goal_id = start_goal(user_id)['goal']['id']
    client.patch(f'/goals/{goal_id}', json={'status': 'completed'})
    assert client.get(f'/ai-insight/{user_id}').status_code == 404
