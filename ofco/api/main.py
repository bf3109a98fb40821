"""FastAPI application configuration and setup.

Main entry point for the HTTP API with CORS, correlation IDs and
exception handlers.
"""

import uuid
from contextvars import ContextVar
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ofco import __version__
from ofco.api.routes import api_router, system_router
from ofco.exceptions import (
    ConfigurationError,
    OfcoError,
    UnsupportedLanguageError,
    ValidationError,
    WorkspaceError,
)
from ofco.logging_config import configure_logging
from ofco.settings import Settings, get_settings

# Context variable for correlation ID (async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Singleton app instance
_app: FastAPI | None = None


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional settings override (uses get_settings() if not provided)

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="ofco",
        description="Sandboxed code execution service",
        version=__version__,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_get_allowed_origins(settings),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID"],
    )

    app.middleware("http")(_correlation_middleware)

    app.include_router(system_router)
    app.include_router(api_router, prefix="/api")

    _register_exception_handlers(app, settings)

    return app


def _get_allowed_origins(settings: Settings) -> list[str]:
    """Get allowed CORS origins based on environment.

    Priority:
    1. Explicit ALLOWED_ORIGINS env var (comma-separated)
    2. Environment-based defaults
    """
    if settings.allowed_origins:
        return [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]

    if settings.environment in ("development", "testing"):
        return ["*"]
    # The editor frontend's dev server
    return ["http://localhost:5173"]


async def _correlation_middleware(request: Request, call_next):
    """Middleware to generate and propagate correlation IDs.

    Args:
        request: FastAPI request object
        call_next: Next middleware/handler in the chain

    Returns:
        Response with X-Correlation-ID header
    """
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    _correlation_id.set(correlation_id)

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


def get_correlation_id() -> str | None:
    """Get the current request's correlation ID from context."""
    return _correlation_id.get()


def _error_response(status_code: int, message: str, correlation_id: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, **extra},
        headers={"X-Correlation-ID": correlation_id},
    )


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Register custom exception handlers.

    Args:
        app: FastAPI application
        settings: Settings controlling message sanitization
    """
    logger = structlog.get_logger()

    @app.exception_handler(OfcoError)
    async def ofco_error_handler(request: Request, exc: OfcoError) -> JSONResponse:
        """Handle ofco application errors with correlation ID."""
        correlation_id = get_correlation_id() or exc.correlation_id
        error_type = exc.__class__.__name__

        if isinstance(exc, (ValidationError, UnsupportedLanguageError)):
            logger.info("Rejected request", error_type=error_type, correlation_id=correlation_id)
            return _error_response(400, str(exc), correlation_id)

        logger.error(
            "ofco error",
            error_type=error_type,
            correlation_id=correlation_id,
            exc_info=exc,
        )
        if isinstance(exc, (WorkspaceError, ConfigurationError)) and not settings.debug:
            message = f"Execution environment unavailable. Correlation ID: {correlation_id}"
        else:
            message = str(exc)
        return _error_response(500, message, correlation_id)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Answer malformed bodies with 400 instead of FastAPI's 422."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        return _error_response(
            400,
            "Invalid request body",
            correlation_id,
            details=jsonable_encoder(exc.errors()),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        logger.exception("Unhandled exception", correlation_id=correlation_id, exc_info=exc)

        detail = str(exc) if settings.debug else "Internal server error"
        return _error_response(500, detail, correlation_id)


def get_app() -> FastAPI:
    """Get or create the singleton FastAPI application."""
    global _app
    if _app is None:
        configure_logging()
        _app = create_app()
    return _app


# For uvicorn: use "ofco.api.main:get_app" with --factory flag,
# or "ofco.api.main:app" which lazily initializes on first access.
def __getattr__(name: str) -> Any:
    """Module-level __getattr__ for lazy app initialization."""
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
