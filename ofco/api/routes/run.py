"""Code execution endpoint.

``POST /api/run`` takes ``{language, code, timeoutMs?}`` and answers with
``{output, exitCode}`` when the program finished without writing to
stderr, or ``{error}`` otherwise. A program that wrote to stderr is
reported as an error even when it exited 0.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ofco.api.deps import get_app_settings, get_execution_coordinator
from ofco.api.schemas import ErrorResponse, RunRequest, RunResponse
from ofco.sandbox.coordinator import ExecutionCoordinator
from ofco.sandbox.outcomes import (
    Completed,
    ExecutionOutcome,
    ExecutionRequest,
    RunnerStartFailure,
    TimedOut,
    UnsupportedLanguage,
)
from ofco.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Execution"])


def render_outcome(outcome: ExecutionOutcome) -> tuple[int, dict]:
    """Map an execution outcome to an HTTP status code and JSON body."""
    if isinstance(outcome, Completed):
        if outcome.stderr:
            return 200, ErrorResponse(error=outcome.stderr).model_dump()
        body = RunResponse(output=outcome.stdout.strip(), exit_code=outcome.exit_code)
        return 200, body.model_dump(by_alias=True)
    if isinstance(outcome, UnsupportedLanguage):
        return 400, ErrorResponse(error=f"Unsupported language: {outcome.language}").model_dump()
    if isinstance(outcome, TimedOut):
        message = f"Execution timed out after {outcome.timeout_seconds:g}s"
        return 408, ErrorResponse(error=message).model_dump()
    if isinstance(outcome, RunnerStartFailure):
        message = f"Failed to start runner: {outcome.reason}"
        return 500, ErrorResponse(error=message).model_dump()
    raise TypeError(f"Unknown execution outcome: {outcome!r}")


@router.post(
    "/run",
    summary="Run code in the sandbox",
    responses={
        400: {"model": ErrorResponse},
        408: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def run_code(
    body: RunRequest,
    coordinator: ExecutionCoordinator = Depends(get_execution_coordinator),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    """Execute submitted code and return its output.

    Validation errors and workspace failures propagate to the
    application's exception handlers.
    """
    if body.code is not None:
        try:
            code_size = len(body.code.encode("utf-8"))
        except UnicodeEncodeError:
            return JSONResponse(
                status_code=400,
                content=ErrorResponse(error="Code must be valid UTF-8 text").model_dump(),
            )
    else:
        code_size = 0

    if code_size > settings.max_source_bytes:
        return JSONResponse(
            status_code=413,
            content=ErrorResponse(
                error=f"Code too large. Maximum size is {settings.max_source_bytes} bytes."
            ).model_dump(),
        )

    request = ExecutionRequest(
        language=body.language,
        source=body.code,
        timeout_seconds=body.timeout_ms / 1000 if body.timeout_ms is not None else None,
    )
    outcome = await coordinator.execute(request)

    status_code, content = render_outcome(outcome)
    if status_code >= 500:
        logger.error("Execution failed: %s", content["error"])
    return JSONResponse(status_code=status_code, content=content)
