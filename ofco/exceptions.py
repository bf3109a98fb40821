"""ofco exception hierarchy.

Base exceptions for all application layers with correlation ID support.

Usage:
    from ofco.exceptions import ValidationError, WorkspaceError

    try:
        outcome = await coordinator.execute(request)
    except WorkspaceError as e:
        logger.error("Scratch storage unavailable (correlation_id=%s)", e.correlation_id)
"""

import uuid


class OfcoError(Exception):
    """Base exception for all ofco application errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class ValidationError(OfcoError):
    """A request is missing required fields or carries empty values."""

    pass


class UnsupportedLanguageError(OfcoError):
    """No execution profile is registered for the requested language."""

    def __init__(self, language: str, **kwargs):
        self.language = language
        super().__init__(f"Unsupported language: {language}", **kwargs)


class WorkspaceError(OfcoError):
    """Scratch storage could not be created or written."""

    def __init__(self, message: str, *, path: str | None = None, **kwargs):
        self.path = path
        super().__init__(message, **kwargs)


class ConfigurationError(OfcoError):
    """Errors from application configuration."""

    pass
