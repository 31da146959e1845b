"""Configuration management for Release Deployer."""

from pathlib import Path
from typing import Dict, Optional

import structlog
import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from release_deployer.core.exceptions import ConfigurationError
from release_deployer.core.models import ProjectDescriptor

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Process settings read from the environment (and ``.env``)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server configuration
    host: str = Field("0.0.0.0", description="Server host")
    port: int = Field(3000, description="Server port")
    workers: int = Field(1, description="Number of worker processes")
    reload: bool = Field(False, description="Enable auto-reload in development")

    # Project configuration file (JSON or YAML)
    config_path: str = Field("./config.json", description="Path to the project configuration file")

    # Values that override the configuration file when set
    base_dir: Optional[str] = Field(None, description="Root of the releases/current tree")
    webhook_secret: Optional[str] = Field(None, description="Shared webhook HMAC secret")
    github_token: Optional[str] = Field(None, description="Token for the release API")

    github_api_url: str = Field("https://api.github.com", description="Release API base URL")

    # Timeouts and limits
    request_timeout_seconds: float = Field(30.0, description="Release API request timeout")
    download_timeout_seconds: float = Field(300.0, description="Total download budget across retries")
    download_max_retries: int = Field(3, ge=1, description="Download attempts before giving up")
    download_backoff_base: float = Field(0.5, ge=0, description="Base delay for download retry backoff")
    max_asset_size_mb: int = Field(512, description="Maximum asset size in MB")
    hook_timeout_seconds: Optional[float] = Field(600.0, description="Per-command hook timeout")
    lock_timeout_seconds: Optional[float] = Field(
        None,
        description="How long a deployment waits for the project lock (None waits forever)",
    )

    # Behaviour
    prune_after_rollback: bool = Field(True, description="Run retention after a successful rollback")
    max_deployment_records: int = Field(200, ge=1, description="Deployment records kept in memory")

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")
    log_file: Optional[str] = Field(None, description="Also write logs to this file")
    metrics_enabled: bool = Field(True)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    @property
    def max_asset_size_bytes(self) -> int:
        return self.max_asset_size_mb * 1024 * 1024


class DeployerConfig(BaseModel):
    """Projects and shared credentials loaded from the configuration file."""

    projects: Dict[str, ProjectDescriptor] = Field(default_factory=dict)
    webhook_secret: str = Field(..., validation_alias=AliasChoices("webhook_secret", "webhookSecret"))
    github_token: Optional[str] = Field(None, validation_alias=AliasChoices("github_token", "githubToken"))
    base_dir: str = Field(..., validation_alias=AliasChoices("base_dir", "baseDir"))

    @field_validator("webhook_secret")
    @classmethod
    def validate_secret(cls, v: str) -> str:
        if not v:
            raise ValueError("webhookSecret must not be empty")
        return v

    def find_project(self, repository: str) -> Optional[ProjectDescriptor]:
        """Return the project deploying ``repository`` (owner/repo)."""
        for project in self.projects.values():
            if project.github_repo == repository:
                return project
        return None

    def get_project(self, name: str) -> Optional[ProjectDescriptor]:
        for project in self.projects.values():
            if project.name == name:
                return project
        return None


def load_config(settings: Settings) -> DeployerConfig:
    """Load the project configuration file named by ``settings.config_path``.

    JSON is a subset of YAML, so both formats go through ``yaml.safe_load``.
    Secrets and the base directory from the environment take precedence.
    """
    path = Path(settings.config_path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to load config", config_path=str(path), error=str(e))
        raise ConfigurationError(f"Failed to load config from {path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    overrides = {
        "webhook_secret": settings.webhook_secret,
        "github_token": settings.github_token,
        "base_dir": settings.base_dir,
    }
    for camel, snake in (("webhookSecret", "webhook_secret"), ("githubToken", "github_token"), ("baseDir", "base_dir")):
        if camel in raw:
            raw.setdefault(snake, raw.pop(camel))
    projects = raw.get("projects")
    if isinstance(projects, dict):
        for key, project in projects.items():
            if isinstance(project, dict):
                project.setdefault("name", key)

    for key, value in overrides.items():
        if value:
            raw[key] = value

    try:
        config = DeployerConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config in {path}: {e}")

    logger.info("Configuration loaded", config_path=str(path), projects=sorted(config.projects))
    return config
