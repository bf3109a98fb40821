"""Request and outcome models for sandboxed execution.

Every execution attempt ends in exactly one outcome variant. Callers
branch on ``kind`` (or ``isinstance``) instead of catching exceptions
for results that are part of normal operation: a timeout or a program
that writes to stderr is data, not a fault of the service.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class ExecutionRequest(BaseModel):
    """A single piece of source code to execute."""

    model_config = ConfigDict(frozen=True)

    language: str | None = Field(default=None, description="Language identifier, e.g. 'python'")
    source: str | None = Field(default=None, description="Source code, treated as opaque text")
    timeout_seconds: float | None = Field(
        default=None,
        description="Optional wall-clock budget override",
    )


class _Outcome(BaseModel):
    model_config = ConfigDict(frozen=True)


class Completed(_Outcome):
    """The process ran to completion. A non-zero exit code is still a completion."""

    kind: Literal["completed"] = "completed"
    stdout: str = ""
    stderr: str = ""
    exit_code: int
    duration_seconds: float = 0.0
    truncated: bool = Field(default=False, description="Output exceeded the capture limit")


class TimedOut(_Outcome):
    """The process exceeded its wall-clock budget and was killed."""

    kind: Literal["timed_out"] = "timed_out"
    timeout_seconds: float


class RunnerStartFailure(_Outcome):
    """The isolation runtime could not be started or supervised."""

    kind: Literal["runner_start_failure"] = "runner_start_failure"
    reason: str


class UnsupportedLanguage(_Outcome):
    """No execution profile is registered for the language."""

    kind: Literal["unsupported_language"] = "unsupported_language"
    language: str


ExecutionOutcome = Annotated[
    Completed | TimedOut | RunnerStartFailure | UnsupportedLanguage,
    Field(discriminator="kind"),
]


__all__ = [
    "Completed",
    "ExecutionOutcome",
    "ExecutionRequest",
    "RunnerStartFailure",
    "TimedOut",
    "UnsupportedLanguage",
]
