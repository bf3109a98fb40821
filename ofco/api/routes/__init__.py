"""API route registration."""

from fastapi import APIRouter

from ofco.api.routes.run import router as run_router
from ofco.api.routes.system import router as system_router

# Routes under /api
api_router = APIRouter()
api_router.include_router(run_router)

__all__ = ["api_router", "system_router"]
