"""Shared test fixtures."""

from pathlib import Path
from typing import Generator

import pytest

from reelforge.config import Config, WorkflowConfig
from reelforge.gateway import MockGateway
from reelforge.workflow import ProjectStore
from reelforge.workflow.engine import WorkflowEngine
from reelforge.workflow.jobs import JobManager


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration."""
    return Config()


@pytest.fixture
def workflow_config() -> WorkflowConfig:
    """Workflow settings without retry delays."""
    return WorkflowConfig(max_generation_attempts=3, retry_backoff_seconds=0.0)


@pytest.fixture
def store(tmp_path: Path) -> ProjectStore:
    """Project store in a temporary directory."""
    return ProjectStore(tmp_path / "projects")


@pytest.fixture
def gateway() -> MockGateway:
    """Deterministic gateway producing two segments per script."""
    return MockGateway(segment_count=2)


@pytest.fixture
def job_manager() -> Generator[JobManager, None, None]:
    """Fresh job manager, shut down after the test."""
    manager = JobManager(max_workers=4)
    yield manager
    manager.shutdown(wait=True)


@pytest.fixture
def engine(
    store: ProjectStore,
    gateway: MockGateway,
    job_manager: JobManager,
    workflow_config: WorkflowConfig,
) -> WorkflowEngine:
    """Workflow engine wired to the mock gateway."""
    return WorkflowEngine(store, gateway, job_manager, workflow_config)
