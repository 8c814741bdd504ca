"""Tests for projects API endpoints."""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from reelforge.web.backend.app import create_app
from reelforge.web.backend.config import WebConfig
from reelforge.web.backend.websocket.manager import WebSocketManager


def create(client: TestClient, title: str = "Coral reefs", user: str | None = None) -> dict[str, Any]:
    headers = {"X-User-Id": user} if user else {}
    response = client.post(
        "/api/v1/projects",
        json={"title": title, "description": "Why reefs bleach"},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestProjectsAPI:
    """Tests for /api/v1/projects endpoints."""

    def test_health(self, test_client: TestClient) -> None:
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_list_projects_empty(self, test_client: TestClient) -> None:
        response = test_client.get("/api/v1/projects")
        assert response.status_code == 200
        assert response.json() == []

    def test_create_project(self, test_client: TestClient) -> None:
        project = create(test_client)

        assert project["id"].startswith("proj_")
        assert project["title"] == "Coral reefs"
        assert project["status"] == "DRAFT"
        assert project["current_stage"] == "SCRIPT_GENERATION"
        assert project["user_id"] == "tester"
        assert project["segments"] == []
        assert project["version"] == 1

    def test_create_project_validation(self, test_client: TestClient) -> None:
        response = test_client.post("/api/v1/projects", json={"title": ""})
        assert response.status_code == 422

    def test_list_projects_filtered_by_user(self, test_client: TestClient) -> None:
        create(test_client, "Alice's film", user="alice")
        create(test_client, "Bob's film", user="bob")

        everyone = test_client.get("/api/v1/projects").json()
        alice = test_client.get("/api/v1/projects", headers={"X-User-Id": "alice"}).json()

        assert len(everyone) == 2
        assert [p["title"] for p in alice] == ["Alice's film"]
        assert alice[0]["segment_count"] == 0
        assert alice[0]["has_final_video"] is False

    def test_get_project_not_found(self, test_client: TestClient) -> None:
        response = test_client.get("/api/v1/projects/proj_missing")
        assert response.status_code == 404
        assert response.json()["detail"]["kind"] == "NotFound"

    def test_delete_project(self, test_client: TestClient) -> None:
        project = create(test_client)

        response = test_client.delete(f"/api/v1/projects/{project['id']}")
        assert response.status_code == 204
        assert test_client.get(f"/api/v1/projects/{project['id']}").status_code == 404
        assert test_client.delete(f"/api/v1/projects/{project['id']}").status_code == 404

    def test_generate_script(self, test_client: TestClient, wait_for_job) -> None:
        project = create(test_client)

        response = test_client.post(f"/api/v1/projects/{project['id']}/script", json={"segment_count": 3})
        assert response.status_code == 202
        body = response.json()
        assert body["job_id"]
        assert body["project"]["in_flight"]["kind"] == "SCRIPT"

        job = wait_for_job(body["job_id"])
        assert job.status.value == "completed"

        detail = test_client.get(f"/api/v1/projects/{project['id']}").json()
        assert detail["status"] == "IN_PROGRESS"
        assert detail["in_flight"] is None
        assert [s["order"] for s in detail["segments"]] == [0, 1, 2]
        assert all(s["script_status"] == "PENDING" for s in detail["segments"])
        assert detail["blocking_segments"] == [s["id"] for s in detail["segments"]]
        assert detail["estimated_duration"] > 0

    def test_generate_script_without_body_uses_default_count(self, test_client: TestClient, wait_for_job) -> None:
        project = create(test_client)

        response = test_client.post(f"/api/v1/projects/{project['id']}/script")
        assert response.status_code == 202
        wait_for_job(response.json()["job_id"])

        detail = test_client.get(f"/api/v1/projects/{project['id']}").json()
        assert len(detail["segments"]) == 3

    def test_generate_script_twice_conflicts(self, test_client: TestClient, scripted_project) -> None:
        response = test_client.post(f"/api/v1/projects/{scripted_project['id']}/script")
        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "InvalidTransition"

    def test_generate_script_rejects_bad_count(self, test_client: TestClient) -> None:
        project = create(test_client)
        response = test_client.post(f"/api/v1/projects/{project['id']}/script", json={"segment_count": 0})
        assert response.status_code == 422

    def test_retry_requires_failed_project(self, test_client: TestClient) -> None:
        project = create(test_client)
        response = test_client.post(f"/api/v1/projects/{project['id']}/retry")
        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "InvalidTransition"

    def test_cancel_without_in_flight_is_a_noop(self, test_client: TestClient) -> None:
        project = create(test_client)
        response = test_client.post(f"/api/v1/projects/{project['id']}/cancel")
        assert response.status_code == 200
        assert response.json()["project"]["status"] == "DRAFT"

    def test_create_project_with_story(self, test_client: TestClient) -> None:
        response = test_client.post("/api/v1/projects", json={"title": "Kelp", "story": "A forest under water."})

        assert response.status_code == 201
        assert response.json()["story"] == "A forest under water."

    def test_update_project(self, test_client: TestClient) -> None:
        project = create(test_client)

        response = test_client.patch(
            f"/api/v1/projects/{project['id']}",
            json={"title": "Reefs at night", "story": "The reef glows."},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Reefs at night"
        assert body["story"] == "The reef glows."
        assert body["description"] == "Why reefs bleach"
        assert body["version"] == project["version"] + 1

    def test_update_project_requires_a_field(self, test_client: TestClient) -> None:
        project = create(test_client)
        response = test_client.patch(f"/api/v1/projects/{project['id']}", json={})
        assert response.status_code == 422
        assert response.json()["detail"]["kind"] == "ValidationError"

    def test_update_missing_project(self, test_client: TestClient) -> None:
        response = test_client.patch("/api/v1/projects/proj_missing", json={"title": "Anything"})
        assert response.status_code == 404

    def test_writes_are_published_to_websocket_manager(
        self,
        test_client: TestClient,
        ws_manager: WebSocketManager,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        published = []
        monkeypatch.setattr(ws_manager, "publish_project", published.append)

        project = create(test_client)
        test_client.patch(f"/api/v1/projects/{project['id']}", json={"story": "Once upon a tide."})

        assert [p.id for p in published] == [project["id"], project["id"]]
        assert published[-1].story == "Once upon a tide."


class TestAppFactory:
    """Tests for create_app."""

    def test_request_id_header(self, test_config: WebConfig) -> None:
        client = TestClient(create_app(test_config))

        response = client.get("/health", headers={"X-Request-Id": "req-42"})
        assert response.headers["X-Request-Id"] == "req-42"

        generated = client.get("/health")
        assert generated.headers["X-Request-Id"]
