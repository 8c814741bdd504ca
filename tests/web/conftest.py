"""Test fixtures for web backend tests."""

from pathlib import Path
from typing import Any, Generator

import pytest
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.testclient import TestClient

from reelforge.config import Config, GatewayConfig, WorkflowConfig
from reelforge.gateway import MockGateway
from reelforge.web.backend import dependencies
from reelforge.web.backend.config import WebConfig
from reelforge.web.backend.dependencies import (
    get_app_config,
    get_config,
    get_gateway,
    get_job_manager,
    get_websocket_manager,
)
from reelforge.web.backend.routers import (
    ideas_router,
    jobs_router,
    projects_router,
    segments_router,
)
from reelforge.web.backend.websocket.manager import WebSocketManager
from reelforge.workflow.jobs import JobManager

JOB_TIMEOUT = 10


@pytest.fixture
def test_data_dir(tmp_path: Path) -> Path:
    """Create a temporary projects directory."""
    data_dir = tmp_path / "projects"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def test_config(test_data_dir: Path) -> WebConfig:
    """Create a test web configuration."""
    return WebConfig(
        host="127.0.0.1",
        port=8000,
        data_dir=test_data_dir,
        cors_origins=["*"],
        default_user_id="tester",
    )


@pytest.fixture
def app_config() -> Config:
    """Workflow configuration without retry delays."""
    return Config(
        workflow=WorkflowConfig(max_generation_attempts=2, retry_backoff_seconds=0.0),
        gateway=GatewayConfig(provider="mock", mock_segment_count=2),
    )


@pytest.fixture
def ws_manager() -> WebSocketManager:
    """Create a fresh WebSocket manager for testing."""
    return WebSocketManager()


@pytest.fixture
def test_app(
    test_config: WebConfig,
    app_config: Config,
    gateway: MockGateway,
    job_manager: JobManager,
    ws_manager: WebSocketManager,
) -> Generator[FastAPI, None, None]:
    """Create an app with mocked dependencies and no lifespan."""
    # Clear any cached dependencies
    dependencies.get_config.cache_clear()
    dependencies.get_app_config.cache_clear()
    dependencies.get_job_manager.cache_clear()
    dependencies.get_websocket_manager.cache_clear()
    dependencies.get_gateway.cache_clear()
    dependencies._store_for.cache_clear()

    job_manager.set_listener(ws_manager)

    app = FastAPI(title="ReelForge API - Test")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(projects_router, prefix="/api/v1")
    app.include_router(segments_router, prefix="/api/v1")
    app.include_router(jobs_router, prefix="/api/v1")
    app.include_router(ideas_router, prefix="/api/v1")

    @app.get("/health")
    def health_check() -> dict[str, str]:
        return {"status": "ok"}

    app.dependency_overrides[get_config] = lambda: test_config
    app.dependency_overrides[get_app_config] = lambda: app_config
    app.dependency_overrides[get_job_manager] = lambda: job_manager
    app.dependency_overrides[get_websocket_manager] = lambda: ws_manager
    app.dependency_overrides[get_gateway] = lambda: gateway

    yield app

    app.dependency_overrides.clear()
    dependencies._store_for.cache_clear()


@pytest.fixture
def test_client(test_app: FastAPI) -> Generator[TestClient, None, None]:
    """Create a test client for the mocked app."""
    with TestClient(test_app) as client:
        yield client


@pytest.fixture
def wait_for_job(job_manager: JobManager):
    """Block until a job finishes; returns the job."""

    def _wait(job_id: str) -> Any:
        job = job_manager.wait_for_job(job_id, timeout=JOB_TIMEOUT)
        assert job is not None, f"job {job_id} not found"
        return job

    return _wait


@pytest.fixture
def scripted_project(test_client: TestClient, wait_for_job) -> dict[str, Any]:
    """A project whose two-segment script has been generated."""
    response = test_client.post(
        "/api/v1/projects",
        json={"title": "Coral reefs", "description": "Why reefs bleach"},
    )
    project_id = response.json()["id"]
    response = test_client.post(f"/api/v1/projects/{project_id}/script", json={"segment_count": 2})
    wait_for_job(response.json()["job_id"])
    return test_client.get(f"/api/v1/projects/{project_id}").json()
