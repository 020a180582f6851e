from fastapi.testclient import TestClient

from conftest import EPISODE_ID, PROJECT_ID, USER_ID
from novel_orchestrator.api.main import create_app
from novel_orchestrator.storage.memory import InMemoryTaskQueue


def _client(store, settings) -> TestClient:
    app = create_app(queue=InMemoryTaskQueue(), store=store, settings_override=settings)
    return TestClient(app)


def test_health_endpoint(store, settings) -> None:
    response = _client(store, settings).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "novel-orchestrator"}


def test_enqueue_story_to_script_returns_queued_task(store, settings) -> None:
    client = _client(store, settings)
    response = client.post(
        f"/projects/{PROJECT_ID}/story-to-script",
        json={"episodeId": EPISODE_ID, "reasoningEffort": "low", "extra": {"k": 1}},
        headers={"X-User-Id": USER_ID, "Accept-Language": "zh-CN,zh;q=0.9"},
    )

    assert response.status_code == 202
    task = response.json()
    assert task["status"] == "queued"
    assert task["type"] == "story_to_script_run"
    assert task["locale"] == "zh"
    assert task["dedupe_key"] == f"story_to_script_run:{EPISODE_ID}"
    assert task["target_type"] == "NovelPromotionEpisode"
    assert task["payload"]["reasoningEffort"] == "low"
    assert task["payload"]["extra"] == {"k": 1}

    fetched = client.get(f"/tasks/{task['task_id']}")
    assert fetched.status_code == 200
    assert fetched.json()["task_id"] == task["task_id"]


def test_enqueue_falls_back_to_default_locale(store, settings) -> None:
    response = _client(store, settings).post(
        f"/projects/{PROJECT_ID}/script-to-storyboard",
        json={"episodeId": EPISODE_ID},
        headers={"X-User-Id": USER_ID},
    )
    assert response.status_code == 202
    assert response.json()["locale"] == "en"
    assert response.json()["type"] == "script_to_storyboard_run"


def test_second_enqueue_supersedes_the_first(store, settings) -> None:
    client = _client(store, settings)
    headers = {"X-User-Id": USER_ID}
    body = {"episodeId": EPISODE_ID}
    first = client.post(f"/projects/{PROJECT_ID}/story-to-script", json=body, headers=headers).json()
    client.post(f"/projects/{PROJECT_ID}/story-to-script", json=body, headers=headers)

    old = client.get(f"/tasks/{first['task_id']}").json()
    assert old["status"] == "cancelled"
    assert old["error"] == "superseded"


def test_enqueue_requires_user_project_and_episode(store, settings) -> None:
    client = _client(store, settings)

    response = client.post(f"/projects/{PROJECT_ID}/story-to-script", json={"episodeId": EPISODE_ID})
    assert response.status_code == 401

    response = client.post(
        "/projects/missing/story-to-script",
        json={"episodeId": EPISODE_ID},
        headers={"X-User-Id": USER_ID},
    )
    assert response.status_code == 404

    response = client.post(
        f"/projects/{PROJECT_ID}/story-to-script", json={}, headers={"X-User-Id": USER_ID}
    )
    assert response.status_code == 422


def test_cancel_task(store, settings) -> None:
    client = _client(store, settings)
    task = client.post(
        f"/projects/{PROJECT_ID}/story-to-script",
        json={"episodeId": EPISODE_ID},
        headers={"X-User-Id": USER_ID},
    ).json()

    response = client.post(f"/tasks/{task['task_id']}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    assert client.post("/tasks/unknown/cancel").status_code == 404
    assert client.get("/tasks/unknown").status_code == 404
