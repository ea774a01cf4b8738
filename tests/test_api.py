"""
HTTP API tests: catalog, sessions, domain edits, runs and playback.

Run tests:
    pytest tests/test_api.py -v
"""

import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api.app_config import AppConfigManager
from main import app

GRID = {"rows": 3, "cols": 3, "start": [0, 0], "end": [2, 2]}


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


@pytest.fixture
def grid_session(client):
    response = client.post("/api/sessions", json={"family": "pathfinding", "domain": GRID})
    assert response.status_code == 200
    return response.json()["id"]


@pytest.fixture
def sorting_run(client):
    session_id = client.post("/api/sessions", json={"family": "sorting", "domain": {"values": [3, 2, 1]}}).json()["id"]
    response = client.post(f"/api/sessions/{session_id}/runs", json={"algorithm_id": "bubble"})
    assert response.status_code == 200
    return session_id, response.json()


# ============================================================================
# System and catalog
# ============================================================================


class TestSystem:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_system_info(self, client):
        data = client.get("/api/system/info").json()
        assert "fastapi" in data["packages"]
        assert data["settings"]["max_speed"] >= data["settings"]["min_speed"]

    def test_update_settings(self, client, tmp_path):
        override = tmp_path / "settings.json"
        manager = AppConfigManager(environ={"ALGOVIZ_CONFIG": str(override)})
        with patch("api.system.app_config", manager):
            response = client.put("/api/system/settings", json={"max_speed": 6.0})
            assert response.status_code == 200
            assert response.json()["max_speed"] == 6.0
            assert json.loads(override.read_text(encoding="utf-8"))["max_speed"] == 6.0

            rejected = client.put("/api/system/settings", json={"min_speed": 9.0})
            assert rejected.status_code == 400
        assert manager.settings.min_speed != 9.0

    def test_websocket_stats(self, client):
        data = client.get("/api/ws/stats").json()
        assert "total_connections" in data


class TestCatalog:
    def test_all_families(self, client):
        data = client.get("/api/algorithms").json()
        assert set(data["families"]) == {"sorting", "pathfinding", "tree", "graph"}
        assert "manhattan" in data["options"]["heuristics"]
        assert "recursive-division" in data["options"]["maze_generators"]

    def test_one_family(self, client):
        data = client.get("/api/algorithms/graph").json()
        assert {a["id"] for a in data["algorithms"]} >= {"prim", "kruskal", "kahn"}

    def test_unknown_family(self, client):
        response = client.get("/api/algorithms/geometry")
        assert response.status_code == 422
        assert response.json()["reason"] == "unknown-family"


# ============================================================================
# Sessions
# ============================================================================


class TestSessions:
    def test_create_with_default_domain(self, client):
        data = client.post("/api/sessions", json={"family": "tree"}).json()
        assert data["domain"]["structure"] == "bst"
        assert data["playback"]["status"] == "idle"

    def test_create_rejects_bad_domain(self, client):
        response = client.post("/api/sessions", json={"family": "pathfinding", "domain": dict(GRID, end=[0, 0])})
        assert response.status_code == 422
        body = response.json()
        assert body["reason"] == "start-equals-end"
        assert body["detail"] == body["message"]
        assert client.get("/api/sessions").json()["total"] == 0

    def test_list_and_filter(self, client, grid_session):
        client.post("/api/sessions", json={"family": "sorting"})
        assert client.get("/api/sessions").json()["total"] == 2
        filtered = client.get("/api/sessions", params={"family": "pathfinding"}).json()
        assert [s["id"] for s in filtered["sessions"]] == [grid_session]

    def test_get_and_delete(self, client, grid_session):
        assert client.get(f"/api/sessions/{grid_session}").json()["id"] == grid_session
        assert client.delete(f"/api/sessions/{grid_session}").json()["success"] is True
        assert client.get(f"/api/sessions/{grid_session}").status_code == 404
        assert client.delete(f"/api/sessions/{grid_session}").status_code == 404

    def test_unknown_session(self, client):
        response = client.post("/api/sessions/session_missing/playback/play")
        assert response.status_code == 404
        assert "session_missing" in response.json()["detail"]


# ============================================================================
# Domain edits
# ============================================================================


class TestDomainEdits:
    def test_toggle_wall(self, client, grid_session):
        data = client.post(f"/api/sessions/{grid_session}/domain/walls/toggle", json={"cell": [1, 1]}).json()
        assert data["domain"]["walls"] == [[1, 1]]

    def test_toggle_endpoint(self, client, grid_session):
        response = client.post(f"/api/sessions/{grid_session}/domain/walls/toggle", json={"cell": [2, 2]})
        assert response.status_code == 422
        assert response.json()["reason"] == "endpoint-is-wall"

    def test_move_endpoints(self, client, grid_session):
        data = client.post(f"/api/sessions/{grid_session}/domain/endpoints", json={"end": [0, 2]}).json()
        assert data["domain"]["end"] == [0, 2]

    def test_endpoints_need_a_cell(self, client, grid_session):
        response = client.post(f"/api/sessions/{grid_session}/domain/endpoints", json={})
        assert response.status_code == 422
        assert response.json()["reason"] == "missing-field"

    def test_weights(self, client, grid_session):
        data = client.post(f"/api/sessions/{grid_session}/domain/weights", json={"cell": [0, 1], "weight": 4}).json()
        assert data["domain"]["weights"] == [[0, 1, 4]]

    def test_maze(self, client, grid_session):
        response = client.post(f"/api/sessions/{grid_session}/domain/maze", json={"generator": "no-such-maze"})
        assert response.status_code == 422
        ok = client.post(f"/api/sessions/{grid_session}/domain/maze", json={"generator": "random-noise", "seed": 2})
        assert ok.status_code == 200

    def test_replace_domain(self, client, grid_session):
        new_grid = {"rows": 4, "cols": 4, "start": [0, 0], "end": [3, 3]}
        data = client.put(f"/api/sessions/{grid_session}/domain", json={"domain": new_grid}).json()
        assert data["domain"]["rows"] == 4

    def test_array(self, client):
        session_id = client.post("/api/sessions", json={"family": "sorting"}).json()["id"]
        data = client.post(
            f"/api/sessions/{session_id}/domain/array", json={"size": 6, "ordering": "reversed", "seed": 1}
        ).json()
        assert data["domain"]["values"] == sorted(data["domain"]["values"], reverse=True)

    def test_tree(self, client):
        session_id = client.post("/api/sessions", json={"family": "tree", "domain": {"keys": [5]}}).json()["id"]
        data = client.post(f"/api/sessions/{session_id}/domain/tree", json={"action": "insert", "key": 9}).json()
        assert data["domain"]["keys"] == [5, 9]

    def test_balanced_tree(self, client):
        session_id = client.post("/api/sessions", json={"family": "tree"}).json()["id"]
        data = client.post(f"/api/sessions/{session_id}/domain/tree/balanced", json={"count": 7, "seed": 2}).json()
        keys = data["domain"]["keys"]
        assert len(keys) == 7
        assert keys[0] == sorted(keys)[3]

    def test_wrong_family(self, client, grid_session):
        response = client.post(f"/api/sessions/{grid_session}/domain/array", json={"size": 4})
        assert response.status_code == 422
        assert response.json()["reason"] == "unsupported-operation"

    def test_edit_while_paused(self, client, grid_session):
        client.post(f"/api/sessions/{grid_session}/runs", json={"algorithm_id": "bfs"})
        response = client.post(f"/api/sessions/{grid_session}/domain/walls/toggle", json={"cell": [1, 1]})
        assert response.status_code == 409
        assert response.json()["status"] == "paused"


# ============================================================================
# Runs and playback
# ============================================================================


class TestRuns:
    def test_start_run(self, sorting_run):
        _, data = sorting_run
        assert data["run"]["total_steps"] == 9
        assert data["playback"]["status"] == "paused"
        assert data["frame"]["index"] == -1
        assert data["frame"]["snapshot"]["values"] == [3, 2, 1]

    def test_unknown_algorithm(self, client, grid_session):
        response = client.post(f"/api/sessions/{grid_session}/runs", json={"algorithm_id": "teleport"})
        assert response.status_code == 422
        assert response.json()["reason"] == "unknown-algorithm"

    def test_run_options(self, client, grid_session):
        response = client.post(
            f"/api/sessions/{grid_session}/runs", json={"algorithm_id": "astar", "params": {"heuristic": "euclidean"}}
        )
        assert response.status_code == 200
        link = client.get(f"/api/sessions/{grid_session}/link").json()
        assert link["params"]["heuristic"] == "euclidean"

    def test_restart(self, client, sorting_run):
        session_id, first = sorting_run
        client.post(f"/api/sessions/{session_id}/playback/reset")
        data = client.post(f"/api/sessions/{session_id}/runs/restart").json()
        assert data["run"]["run_id"] != first["run"]["run_id"]
        assert data["playback"]["status"] == "paused"

    def test_restart_without_run(self, client, grid_session):
        assert client.post(f"/api/sessions/{grid_session}/runs/restart").status_code == 409


class TestPlayback:
    def test_step_and_seek(self, client, sorting_run):
        session_id, _ = sorting_run
        data = client.post(f"/api/sessions/{session_id}/playback/step-forward").json()
        assert data["frame"]["index"] == 0
        assert data["frame"]["step"]["type"] == "compare"
        data = client.post(f"/api/sessions/{session_id}/playback/seek", json={"index": 8}).json()
        assert data["playback"]["status"] == "finished"
        assert data["frame"]["snapshot"]["values"] == [1, 2, 3]

    def test_finished_rejects_play(self, client, sorting_run):
        session_id, _ = sorting_run
        client.post(f"/api/sessions/{session_id}/playback/seek", json={"index": 8})
        response = client.post(f"/api/sessions/{session_id}/playback/play")
        assert response.status_code == 409
        assert response.json()["status"] == "finished"

    def test_play_then_pause(self, client, sorting_run):
        session_id, _ = sorting_run
        assert client.post(f"/api/sessions/{session_id}/playback/play").json()["playback"]["status"] == "running"
        assert client.post(f"/api/sessions/{session_id}/playback/pause").json()["playback"]["status"] == "paused"

    def test_speed(self, client, sorting_run):
        session_id, _ = sorting_run
        data = client.post(f"/api/sessions/{session_id}/playback/speed", json={"multiplier": 100}).json()
        assert data["playback"]["speed"] == 4.0

    def test_cancel_keeps_last_frame(self, client, sorting_run):
        session_id, _ = sorting_run
        client.post(f"/api/sessions/{session_id}/playback/seek", json={"index": 2})
        client.post(f"/api/sessions/{session_id}/playback/cancel")
        data = client.get(f"/api/sessions/{session_id}/frame").json()
        assert data["playback"]["status"] == "cancelled"
        assert data["frame"]["index"] == 2

    def test_unknown_intent(self, client, sorting_run):
        session_id, _ = sorting_run
        assert client.post(f"/api/sessions/{session_id}/playback/rewind").status_code == 404


class TestReads:
    def test_frame_at_index(self, client, sorting_run):
        session_id, _ = sorting_run
        initial = client.get(f"/api/sessions/{session_id}/frames/-1").json()
        assert initial["step"] is None
        assert initial["snapshot"]["values"] == [3, 2, 1]
        last = client.get(f"/api/sessions/{session_id}/frames/8").json()
        assert last["snapshot"]["complete"] is True
        # Reading a frame does not move playback
        assert client.get(f"/api/sessions/{session_id}/frame").json()["frame"]["index"] == -1

    def test_frame_out_of_range(self, client, sorting_run):
        session_id, _ = sorting_run
        assert client.get(f"/api/sessions/{session_id}/frames/9").status_code == 409

    def test_steps_pagination(self, client, sorting_run):
        session_id, _ = sorting_run
        data = client.get(f"/api/sessions/{session_id}/steps", params={"offset": 6, "limit": 5}).json()
        assert data["total"] == 9
        assert len(data["steps"]) == 3
        assert data["steps"][-1]["type"] == "complete"

    def test_steps_without_run(self, client, grid_session):
        assert client.get(f"/api/sessions/{grid_session}/steps").status_code == 409


class TestDeepLinks:
    def test_link_reopens_same_frame(self, client, sorting_run):
        session_id, _ = sorting_run
        frame = client.post(f"/api/sessions/{session_id}/playback/seek", json={"index": 4}).json()["frame"]
        link = client.get(f"/api/sessions/{session_id}/link").json()
        assert link == {"family": "sorting", "algorithm_id": "bubble", "params": {"values": [3, 2, 1]}, "index": 4}

        reopened = client.post("/api/sessions/from-link", json=link).json()
        assert reopened["id"] != session_id
        assert reopened["frame"]["snapshot"] == frame["snapshot"]

    def test_link_before_run(self, client, grid_session):
        assert client.get(f"/api/sessions/{grid_session}/link").status_code == 409

    def test_bad_link(self, client):
        link = {"family": "sorting", "algorithm_id": "bogo", "params": {"values": [1]}, "index": 0}
        response = client.post("/api/sessions/from-link", json=link)
        assert response.status_code == 422
        assert client.get("/api/sessions").json()["total"] == 0
