"""Pydantic schemas for API requests and responses."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RunRequest(BaseModel):
    """Body of ``POST /api/run``.

    Fields are optional so that missing values reach the coordinator and
    are reported with the service's own validation message.
    """

    model_config = ConfigDict(populate_by_name=True)

    language: str | None = Field(default=None, description="Language identifier")
    code: str | None = Field(default=None, description="Source code to execute")
    timeout_ms: float | None = Field(
        default=None,
        alias="timeoutMs",
        description="Optional timeout override in milliseconds",
    )


class RunResponse(BaseModel):
    """Successful execution without stderr output."""

    output: str
    exit_code: int = Field(..., serialization_alias="exitCode")


class ErrorResponse(BaseModel):
    """Execution or request failure."""

    error: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class ReadinessResponse(BaseModel):
    status: str
    runtime: dict[str, Any]
