"""Configuration loading and management."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


class WorkflowConfig(BaseModel):
    """Workflow engine behaviour."""

    max_generation_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0)
    default_segment_count: int = Field(default=3, ge=1, le=20)
    default_voice: str = "default"
    words_per_minute: int = Field(default=150, ge=1)
    min_segment_seconds: int = Field(default=5, ge=1)


class GatewayConfig(BaseModel):
    """Generation gateway selection and credentials."""

    provider: str = "mock"
    base_url: str = ""
    api_token: str = ""
    timeout_seconds: float = 60.0
    mock_segment_count: int = 3
    mock_candidates: int = 1

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        if value.strip().lower() not in {"mock", "http"}:
            raise ValueError("gateway.provider must be one of: mock, http")
        return value.strip().lower()


class LoggingConfig(BaseModel):
    """Structured logging configuration."""

    level: str = "INFO"
    json_logs: bool = False


class Config(BaseModel):
    """Top-level settings: one section per concern."""

    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "Config":
        """Read settings from YAML. A missing or empty file yields the defaults."""
        path = Path(path)
        if not path.is_file():
            return cls()
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    def to_yaml(self, path: Path | str) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, sort_keys=False)


DEFAULT_CONFIG_LOCATIONS = (
    Path("config.yaml"),
    Path(__file__).resolve().parent.parent / "config.yaml",
)


def load_config(config_path: Path | str | None = None) -> Config:
    """Load settings from `config_path`, else the first config.yaml found in
    the working directory or the repository root, else the defaults."""
    if config_path is not None:
        return Config.from_yaml(config_path)
    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.is_file():
            return Config.from_yaml(candidate)
    return Config()
