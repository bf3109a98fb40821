"""Application settings using pydantic-settings.

Loads configuration from environment variables with .env file support.
"""

import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_workspace_root() -> Path:
    return Path(tempfile.gettempdir()) / "ofco-workspaces"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: Literal["development", "staging", "production", "testing"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API server
    api_host: str = Field(default="0.0.0.0", description="Host to bind the API server to")  # noqa: S104
    api_port: int = Field(default=4000, ge=1, le=65535, description="API server port")
    api_workers: int = Field(default=1, ge=1, le=32, description="Number of uvicorn workers")
    allowed_origins: str | None = Field(
        default=None,
        description="Comma-separated CORS origins (defaults depend on environment)",
    )
    max_source_bytes: int = Field(
        default=2 * 1024 * 1024,
        ge=1,
        description="Maximum size of submitted source code in bytes (UTF-8)",
    )

    # Workspaces
    workspace_root: Path = Field(
        default_factory=_default_workspace_root,
        description="Scratch root under which per-request workspaces are created",
        validation_alias=AliasChoices("workspace_root", "ofco_workspace_root"),
    )

    # Sandbox
    sandbox_enabled: bool = Field(
        default=True,
        description="Run submitted code inside the container engine",
    )
    container_engine: str = Field(
        default="podman",
        description="Container engine executable (podman or docker)",
        validation_alias=AliasChoices("container_engine", "sandbox_engine"),
    )
    sandbox_policy: str = Field(
        default="standard",
        description="Name of the predefined sandbox policy",
    )
    sandbox_timeout_seconds: float = Field(
        default=30,
        gt=0,
        le=300,
        description="Default wall-clock budget per execution",
    )
    sandbox_max_timeout_seconds: float = Field(
        default=120,
        gt=0,
        le=600,
        description="Largest caller-supplied timeout that is honoured",
    )
    sandbox_max_concurrency: int = Field(
        default=4,
        ge=1,
        le=256,
        description="Maximum number of executions running at once",
    )
    sandbox_max_output_bytes: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Bytes kept per output stream; the rest is read and discarded",
    )
    sandbox_python_image: str = Field(
        default="python:3.12-slim",
        description="Container image for python submissions",
    )
    sandbox_node_image: str = Field(
        default="node:20-alpine",
        description="Container image for javascript submissions",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()
