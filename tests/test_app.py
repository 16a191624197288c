from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from app import create_app
from tests.conftest import InstantClock, ManualClock
from workflows.engine import PipelineEngine


@pytest.fixture()
def client():
    """API whose pipelines finish as soon as the event loop gets to them."""
    with TestClient(create_app(PipelineEngine(clock=InstantClock()))) as c:
        yield c


@pytest.fixture()
def frozen_client():
    """API whose pipelines never get past their first step."""
    with TestClient(create_app(PipelineEngine(clock=ManualClock()))) as c:
        yield c


def _wait_until_done(client: TestClient, task_id: str) -> dict:
    for _ in range(500):
        body = client.get(f"/pipeline/{task_id}").json()
        if body["status"] != "running":
            return body
        time.sleep(0.01)
    raise AssertionError(f"{task_id} still running")


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "pipeline-tasks", "tasks": 0}


def test_start_and_poll_to_completion(client):
    resp = client.post("/pipeline/start", json={"project": "acme-app", "stepDelayMs": 50})

    assert resp.status_code == 200
    started = resp.json()
    assert started["status"] == "running"
    assert started["total"] == 12

    body = _wait_until_done(client, started["taskId"])
    assert body["status"] == "completed"
    assert body["progress"] == "12 of 12"
    assert body["percentage"] == "100%"
    assert body["currentStep"] == "(done)"
    assert body["error"] is None
    assert len(body["lastLog"]) == 5
    assert body["lastLog"][-1].endswith("✓ Pipeline completed successfully")


def test_failure_then_resume(client):
    started = client.post("/pipeline/start", json={"stepDelayMs": 50, "failAtStep": 3}).json()

    failed = _wait_until_done(client, started["taskId"])
    assert failed["status"] == "failed"
    assert failed["progress"] == "2 of 12"
    assert failed["percentage"] == "17%"
    assert failed["currentStep"] == "Running linter"
    assert failed["error"].startswith('Step 3 "Running linter" failed')

    resp = client.post(f"/pipeline/{started['taskId']}/retry", json={"mode": "resume", "stepDelayMs": 50})
    assert resp.status_code == 200
    retry = resp.json()
    assert retry["originalTaskId"] == started["taskId"]
    assert retry["mode"] == "resume"
    assert retry["resumeFromStep"] == 3
    assert retry["total"] == 12
    assert retry["fixFailingStep"] is True

    done = _wait_until_done(client, retry["newTaskId"])
    assert done["status"] == "completed"
    assert done["progress"] == "12 of 12"
    assert done["lineage"] == started["taskId"]

    listing = client.get("/pipeline/tasks").json()
    assert listing["total"] == 2
    assert listing["created"] == 2
    rows = {row["id"]: row for row in listing["tasks"]}
    assert rows[started["taskId"]]["progress"] == "2/12"
    assert rows[started["taskId"]]["error"] is not None
    assert rows[retry["newTaskId"]]["status"] == "completed"


def test_restart_with_defaults(client):
    started = client.post("/pipeline/start", json={"stepDelayMs": 50, "failAtStep": 5}).json()
    _wait_until_done(client, started["taskId"])

    retry = client.post(f"/pipeline/{started['taskId']}/retry", json={"mode": "restart"}).json()

    assert retry["resumeFromStep"] == 1
    assert _wait_until_done(client, retry["newTaskId"])["status"] == "completed"


@pytest.mark.parametrize(
    "payload",
    [{"stepDelayMs": 10}, {"stepDelayMs": 6000}, {"failAtStep": 13}, {"failAtStep": -1}],
)
def test_start_validation(client, payload):
    resp = client.post("/pipeline/start", json=payload)

    assert resp.status_code == 422
    assert client.get("/pipeline/tasks").json()["total"] == 0


def test_unknown_task_is_404(client):
    for resp in (
        client.get("/pipeline/task-nope"),
        client.post("/pipeline/task-nope/cancel", json={"reason": "x"}),
        client.post("/pipeline/task-nope/retry", json={}),
    ):
        assert resp.status_code == 404
        assert resp.json()["error"] == "task_not_found"
        assert resp.json()["taskId"] == "task-nope"


def test_cancel_running_task(frozen_client):
    task_id = frozen_client.post("/pipeline/start", json={}).json()["taskId"]

    resp = frozen_client.post(f"/pipeline/{task_id}/cancel")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "cancelled"
    assert body["taskId"] == task_id
    assert body["stoppedAt"] == "0 of 12"
    assert body["reason"] == "User requested cancellation"

    progress = frozen_client.get(f"/pipeline/{task_id}").json()
    assert progress["status"] == "cancelled"
    assert progress["lastLog"][-1].endswith("⊘ Cancellation requested: User requested cancellation")

    again = frozen_client.post(f"/pipeline/{task_id}/cancel", json={"reason": "twice"})
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_state"


def test_retry_of_running_task_is_409(frozen_client):
    task_id = frozen_client.post("/pipeline/start", json={}).json()["taskId"]

    resp = frozen_client.post(f"/pipeline/{task_id}/retry", json={"mode": "restart"})

    assert resp.status_code == 409
    assert resp.json()["error"] == "still_running"


def test_retry_validation(frozen_client):
    task_id = frozen_client.post("/pipeline/start", json={}).json()["taskId"]
    frozen_client.post(f"/pipeline/{task_id}/cancel", json={"reason": "stop"})

    assert frozen_client.post(f"/pipeline/{task_id}/retry", json={"mode": "sideways"}).status_code == 422
    assert frozen_client.post(f"/pipeline/{task_id}/retry", json={"stepDelayMs": 1}).status_code == 422


def test_listing_reports_created_count_past_retention_cap():
    with TestClient(create_app(PipelineEngine(clock=InstantClock(), max_tasks=1))) as capped:
        first = capped.post("/pipeline/start", json={"stepDelayMs": 50}).json()["taskId"]
        _wait_until_done(capped, first)
        second = capped.post("/pipeline/start", json={"stepDelayMs": 50}).json()["taskId"]
        _wait_until_done(capped, second)

        listing = capped.get("/pipeline/tasks").json()

        assert listing["total"] == 1
        assert listing["created"] == 2
        assert [row["id"] for row in listing["tasks"]] == [second]
        assert capped.get(f"/pipeline/{first}").status_code == 404
