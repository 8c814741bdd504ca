"""Configuration for the web backend."""

from pathlib import Path

from pydantic import BaseModel


class WebConfig(BaseModel):
    """Web server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    data_dir: Path = Path("data/projects")
    config_path: Path | None = None  # config.yaml with workflow/gateway/logging sections
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    job_workers: int = 4
    job_retention_seconds: int = 3600  # finished jobs are forgotten after this
    default_user_id: str = "anonymous"
