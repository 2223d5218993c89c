"""Tests for the timeline HTTP/WebSocket API."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from starlette.testclient import TestClient

from team_planner.config import PlannerConfig
from team_planner.errors import SourceError
from team_planner.server import create_app
from team_planner.service import PlannerService
from team_planner.sources.memory import InMemoryTaskSource

TODAY = date(2024, 5, 8)


@pytest.fixture
def source() -> InMemoryTaskSource:
    return InMemoryTaskSource(
        contents=[
            {"id": "c1", "title": "Launch video", "start_date": "2024-05-06", "end_date": "2024-05-08",
             "assignee_ids": ["u1"], "channel_id": "youtube"},
            {"id": "c2", "title": "Idea", "start_date": "2024-05-01", "is_unscheduled": True},
        ],
        tasks=[
            {"id": "t1", "title": "Edit", "start_date": "2024-05-07", "end_date": "2024-05-09", "assignee_ids": ["u1"]},
            {"id": "t2", "title": "Archive", "start_date": "2023-01-02", "assignee_ids": ["u2"]},
        ],
    )


@pytest.fixture
def client(tmp_path: Path, source: InMemoryTaskSource):
    service = PlannerService(tmp_path, source=source, config=PlannerConfig(), today=TODAY)
    app = create_app(service=service)
    with TestClient(app) as c:
        yield c


def test_week_board(client: TestClient) -> None:
    resp = client.get("/api/timeline/week", params={"date": "2024-05-08"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["week_start"] == "2024-05-06"
    lane = data["lanes"][0]
    assert lane["key"] == "u1"
    assert lane["row_count"] == 2
    assert lane["workload"] == "chill"
    assert set(data["tasks"]) == {"c1", "t1"}


def test_week_filters(client: TestClient) -> None:
    resp = client.get("/api/timeline/week", params={"date": "2024-05-08", "chip": "CHANNEL:youtube"})
    assert set(resp.json()["tasks"]) == {"c1"}

    resp = client.get("/api/timeline/week", params={"date": "2024-05-08", "kind": "task"})
    assert set(resp.json()["tasks"]) == {"t1"}


def test_bad_query_values_are_400(client: TestClient) -> None:
    assert client.get("/api/timeline/week", params={"date": "soon"}).status_code == 400
    assert client.get("/api/timeline/week", params={"chip": "COLOR:red"}).status_code == 400
    assert client.get("/api/timeline/week", params={"kind": "meeting"}).status_code == 400


def test_navigating_far_back_expands_the_window(client: TestClient) -> None:
    before = client.get("/api/timeline/window").json()
    assert before["start"] == "2024-02-01"

    resp = client.get("/api/timeline/week", params={"date": "2023-01-04"})

    assert resp.status_code == 200
    assert set(resp.json()["tasks"]) == {"t2"}
    after = client.get("/api/timeline/window").json()
    assert after["start"] == "2022-12-01"


def test_window_expand_and_load_all(client: TestClient) -> None:
    resp = client.post("/api/timeline/window/expand", json={"date": "2024-10-15"})
    assert resp.json()["changed"] is True
    assert resp.json()["window"]["end"] == "2024-11-30"

    resp = client.post("/api/timeline/window/load-all")
    assert resp.json()["window"]["is_all_loaded"] is True
    assert client.post("/api/timeline/window/load-all").json()["changed"] is False


def test_unscheduled_backlog(client: TestClient) -> None:
    resp = client.get("/api/timeline/unscheduled")
    assert [t["id"] for t in resp.json()["tasks"]] == ["c2"]


def test_reschedule_moves_task(client: TestClient) -> None:
    resp = client.post("/api/timeline/tasks/t1/reschedule", json={"date": "2024-05-09", "owner_id": "u3"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["task"]["start_date"] == "2024-05-09"
    assert body["task"]["end_date"] == "2024-05-11"
    assert body["task"]["owners"] == ["u3"]

    board = client.get("/api/timeline/week", params={"date": "2024-05-08"}).json()
    assert "u3" in [lane["key"] for lane in board["lanes"]]


def test_reschedule_unknown_task_is_404(client: TestClient) -> None:
    resp = client.post("/api/timeline/tasks/missing/reschedule", json={"date": "2024-05-09"})
    assert resp.status_code == 404
    assert client.get("/api/timeline/window").json()["is_all_loaded"] is False


def test_mutating_task_outside_window_widens_it(client: TestClient) -> None:
    resp = client.post("/api/timeline/tasks/t2/schedule", json={"date": "2023-01-03"})

    assert resp.status_code == 200
    assert resp.json()["task"]["start_date"] == "2023-01-03"
    window = client.get("/api/timeline/window").json()
    assert window["is_all_loaded"] is False
    assert window["start"] == "2022-12-01"


def test_failed_persist_is_502_and_rolled_back(client: TestClient, source: InMemoryTaskSource) -> None:
    source.update_error = SourceError("write refused")
    resp = client.post("/api/timeline/tasks/t1/reschedule", json={"date": "2024-05-10"})
    assert resp.status_code == 502
    assert resp.json()["ok"] is False
    assert resp.json()["task"]["start_date"] == "2024-05-07"


def test_delay_and_logs(client: TestClient) -> None:
    resp = client.post("/api/timeline/tasks/c1/delay", json={"date": "2024-05-10", "reason": "waiting on client"})
    assert resp.status_code == 200
    assert resp.json()["task"]["start_date"] == resp.json()["task"]["end_date"] == "2024-05-10"

    logs = client.get("/api/timeline/tasks/c1/logs").json()["logs"]
    assert logs[-1]["action"] == "DELAYED"


def test_delay_without_reason_is_400(client: TestClient) -> None:
    resp = client.post("/api/timeline/tasks/c1/delay", json={"date": "2024-05-10", "reason": ""})
    assert resp.status_code == 400


def test_schedule_backlog_item(client: TestClient) -> None:
    resp = client.post("/api/timeline/tasks/c2/schedule", json={"date": "2024-05-07"})
    assert resp.status_code == 200
    assert resp.json()["task"]["is_unscheduled"] is False
    assert client.get("/api/timeline/unscheduled").json()["tasks"] == []


def test_insert_record_shows_up_on_board(client: TestClient) -> None:
    resp = client.post(
        "/api/timeline/records/task",
        json={"title": "Shoot", "startDate": "2024-05-10", "assigneeIds": ["u2"]},
    )
    assert resp.status_code == 201
    new_id = resp.json()["id"]

    board = client.get("/api/timeline/week", params={"date": "2024-05-08"}).json()
    assert new_id in board["tasks"]


def test_websocket_receives_invalidation(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        hello = ws.receive_json()
        assert hello["type"] == "connected"
        client.post("/api/timeline/tasks/t1/reschedule", json={"date": "2024-05-09"})
        message = ws.receive_json()
        assert message["channel"] == "tasks"
        assert message["type"] == "invalidated"
