"""Shared FastAPI dependencies.

Provides common dependency callables used across route modules.
"""

from ofco.sandbox.coordinator import ExecutionCoordinator, get_coordinator
from ofco.settings import Settings, get_settings


def get_execution_coordinator() -> ExecutionCoordinator:
    """Provide the process-wide execution coordinator."""
    return get_coordinator()


def get_app_settings() -> Settings:
    """Provide application settings."""
    return get_settings()
