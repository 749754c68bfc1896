"""
HTTP contract tests for the mission engine blueprints.

Walks a mission end to end through the API and checks the error envelope
({"error", "code", "details"}) and status codes for each failure class.
"""

import pytest

BASE = "/api/v1"


@pytest.fixture()
def workflow(client, instructor_headers):
    res = client.post(f"{BASE}/workflows", headers=instructor_headers, json={
        "name": "Maker Cycle", "phases": ["Design", "Build"], "is_default": True,
    })
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def project(client, student, student_headers, workflow):
    res = client.post(f"{BASE}/projects", headers=student_headers, json={
        "student_id": student.id, "title": "Desk Lamp", "station": "Electronics",
        "workflow_id": workflow["id"],
    })
    assert res.status_code == 201
    return res.get_json()


def _transition(client, headers, project_id, action):
    return client.post(f"{BASE}/projects/{project_id}/transition", headers=headers,
                       json={"action": action})


class TestHealth:
    def test_ready(self, client):
        res = client.get(f"{BASE}/health/ready")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live(self, client):
        res = client.get(f"{BASE}/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"


class TestMissionFlow:
    def test_full_mission(self, client, student, student_headers, instructor_headers, project):
        pid = project["id"]
        steps = project["steps"]
        assert [s["title"] for s in steps] == ["Design", "Build"]
        assert project["progress"]["total"] == 2

        client.post(f"{BASE}/badges", headers=instructor_headers, json={
            "name": "First Light", "criteria": {"type": "project_count", "target": "all", "count": 1},
        })

        assert _transition(client, student_headers, pid, "start_building").status_code == 200

        res = client.post(f"{BASE}/projects/{pid}/steps/{steps[0]['id']}/move",
                          headers=student_headers, json={"status": "done"})
        assert res.status_code == 428
        assert res.get_json()["code"] == "ERR_PROOF_REQUIRED"

        for step in steps:
            res = client.post(f"{BASE}/projects/{pid}/steps/{step['id']}/move",
                              headers=student_headers,
                              json={"status": "done", "proof_url": "https://img.example/p.png"})
            assert res.status_code == 200
            assert res.get_json()["step"]["proof_status"] == "pending"

        assert _transition(client, student_headers, pid, "submit").get_json()["new_status"] == "submitted"

        queue = client.get(f"{BASE}/reviews/queue", headers=instructor_headers).get_json()
        assert [p["id"] for p in queue["items"]] == [pid]

        res = client.post(f"{BASE}/projects/{pid}/review", headers=instructor_headers,
                          json={"decision": "approve", "feedback": "Bright work"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["new_status"] == "published"
        assert len(body["new_badge_ids"]) == 1

        badges = client.get(f"{BASE}/students/{student.id}/badges").get_json()
        assert [b["name"] for b in badges["items"]] == ["First Light"]

        notes = client.get(f"{BASE}/notifications", headers=student_headers).get_json()
        titles = {n["title"] for n in notes["items"]}
        assert {"Mission Accomplished!", "New Badge Earned!"} <= titles

        commits = client.get(f"{BASE}/projects/{pid}/commits").get_json()
        assert commits["total"] == 2


class TestErrorContract:
    def test_submit_incomplete_is_409(self, client, student_headers, project):
        pid = project["id"]
        _transition(client, student_headers, pid, "start_building")

        res = _transition(client, student_headers, pid, "submit")

        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_PRECONDITION_NOT_MET"
        assert body["error"] == "Finish all tasks before submitting"
        assert body["details"]["current_status"] == "building"

    def test_repeated_move_is_409(self, client, student_headers, project):
        pid = project["id"]
        sid = project["steps"][1]["id"]
        _transition(client, student_headers, pid, "start_building")
        url = f"{BASE}/projects/{pid}/steps/{sid}/move"

        assert client.post(url, headers=student_headers, json={"status": "doing"}).status_code == 200
        res = client.post(url, headers=student_headers, json={"status": "doing"})

        assert res.status_code == 409
        assert res.get_json()["error"] == "Step is already 'doing'"

    def test_unknown_project_is_404(self, client):
        res = client.get(f"{BASE}/projects/does-not-exist")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_unknown_action_is_422(self, client, student_headers, project):
        res = _transition(client, student_headers, project["id"], "teleport")
        assert res.status_code == 422

    def test_missing_action_is_400(self, client, student_headers, project):
        res = client.post(f"{BASE}/projects/{project['id']}/transition",
                          headers=student_headers, json={})
        assert res.status_code == 400

    def test_review_requires_instructor(self, client, student_headers, project):
        res = client.post(f"{BASE}/projects/{project['id']}/review", headers=student_headers,
                          json={"decision": "approve"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_catalogue_writes_require_instructor(self, client, student_headers):
        res = client.post(f"{BASE}/workflows", headers=student_headers, json={"name": "Mine"})
        assert res.status_code == 403

    def test_workflow_switch_needs_confirm(self, client, student_headers, instructor_headers, project):
        other = client.post(f"{BASE}/workflows", headers=instructor_headers,
                            json={"name": "Quick", "phases": ["Do it"]}).get_json()
        url = f"{BASE}/projects/{project['id']}/workflow"

        res = client.post(url, headers=student_headers, json={"workflow_id": other["id"]})
        assert res.status_code == 409

        res = client.post(url, headers=student_headers,
                          json={"workflow_id": other["id"], "confirm": True})
        assert res.status_code == 200
        assert [s["title"] for s in res.get_json()["steps"]] == ["Do it"]


class TestCatalogueApi:
    def test_default_switch(self, client, instructor_headers, workflow):
        other = client.post(f"{BASE}/workflows", headers=instructor_headers,
                            json={"name": "Other", "phases": ["X"]}).get_json()

        res = client.post(f"{BASE}/workflows/{other['id']}/default", headers=instructor_headers)
        assert res.status_code == 200

        items = client.get(f"{BASE}/workflows").get_json()["items"]
        assert [w["id"] for w in items if w["is_default"]] == [other["id"]]

    def test_planning_step_edits(self, client, student_headers, project):
        pid = project["id"]
        res = client.post(f"{BASE}/projects/{pid}/steps", headers=student_headers,
                          json={"title": "Polish"})
        assert res.status_code == 201
        step = res.get_json()
        assert step["is_locked"] is False

        res = client.put(f"{BASE}/projects/{pid}/steps/{step['id']}", headers=student_headers,
                         json={"title": "Sand and polish"})
        assert res.get_json()["title"] == "Sand and polish"

        res = client.delete(f"{BASE}/projects/{pid}/steps/{step['id']}", headers=student_headers)
        assert res.status_code == 200
        assert len(client.get(f"{BASE}/projects/{pid}").get_json()["steps"]) == 2

        locked = client.get(f"{BASE}/projects/{pid}").get_json()["steps"][0]
        res = client.delete(f"{BASE}/projects/{pid}/steps/{locked['id']}", headers=student_headers)
        assert res.status_code == 409
        assert res.get_json()["details"]["action"] == "delete_step"
