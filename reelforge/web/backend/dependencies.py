"""Dependency injection for FastAPI."""

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends

from reelforge.config import Config, load_config
from reelforge.gateway import GenerationGateway, build_gateway
from reelforge.workflow import ProjectStore
from reelforge.workflow.engine import WorkflowEngine
from reelforge.workflow.jobs import JobManager

from .config import WebConfig
from .websocket.manager import WebSocketManager


@lru_cache
def get_config() -> WebConfig:
    """Get the web configuration (cached)."""
    return WebConfig()


@lru_cache
def get_app_config() -> Config:
    """Get the workflow/gateway/logging configuration (cached)."""
    return load_config(get_config().config_path)


@lru_cache
def get_websocket_manager() -> WebSocketManager:
    """Get the WebSocket manager (cached singleton)."""
    return WebSocketManager()


@lru_cache
def get_job_manager() -> JobManager:
    """Get the job manager (cached singleton)."""
    config = get_config()
    return JobManager(max_workers=config.job_workers, max_job_age_seconds=config.job_retention_seconds)


@lru_cache
def _store_for(data_dir: Path) -> ProjectStore:
    # One store per directory so its per-project write locks are shared
    return ProjectStore(data_dir)


def get_store(config: Annotated[WebConfig, Depends(get_config)]) -> ProjectStore:
    """Get the project store for the configured data directory."""
    return _store_for(config.data_dir)


@lru_cache
def get_gateway() -> GenerationGateway:
    """Get the generation gateway selected in configuration (cached)."""
    return build_gateway(get_app_config().gateway)


def get_engine(
    store: Annotated[ProjectStore, Depends(get_store)],
    gateway: Annotated[GenerationGateway, Depends(get_gateway)],
    job_manager: Annotated[JobManager, Depends(get_job_manager)],
    app_config: Annotated[Config, Depends(get_app_config)],
    ws_manager: Annotated[WebSocketManager, Depends(get_websocket_manager)],
) -> WorkflowEngine:
    """Get a workflow engine that publishes project snapshots over WebSocket."""
    return WorkflowEngine(store, gateway, job_manager, app_config.workflow, listener=ws_manager)


# Type aliases for cleaner router signatures
ConfigDep = Annotated[WebConfig, Depends(get_config)]
AppConfigDep = Annotated[Config, Depends(get_app_config)]
JobManagerDep = Annotated[JobManager, Depends(get_job_manager)]
WebSocketManagerDep = Annotated[WebSocketManager, Depends(get_websocket_manager)]
StoreDep = Annotated[ProjectStore, Depends(get_store)]
EngineDep = Annotated[WorkflowEngine, Depends(get_engine)]
