"""System health endpoints.

Endpoints:
- /health: Liveness probe (no dependency checks)
- /ready: Readiness probe (checks the container engine)
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ofco import __version__
from ofco.api.deps import get_execution_coordinator
from ofco.api.schemas import HealthResponse, ReadinessResponse
from ofco.sandbox.coordinator import ExecutionCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check (Liveness)",
)
async def health_check() -> HealthResponse:
    """Return ok while the process is serving requests."""
    return HealthResponse(status="ok", version=__version__)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness Probe",
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(
    coordinator: ExecutionCoordinator = Depends(get_execution_coordinator),
) -> JSONResponse:
    """Report whether the container engine can run submissions.

    Returns 503 when the sandbox is enabled but the engine is missing.
    Host execution (sandbox disabled) is always ready.
    """
    images = [coordinator.registry.resolve(lang).image for lang in coordinator.registry.languages()]
    runtime = await coordinator.runner.check_runtime(images)

    ready = not runtime["isolated"] or runtime["engine_available"]
    if not ready:
        logger.warning("Not ready: %s", "; ".join(runtime["errors"]))

    body = ReadinessResponse(status="ready" if ready else "unavailable", runtime=runtime)
    return JSONResponse(status_code=200 if ready else 503, content=body.model_dump())
