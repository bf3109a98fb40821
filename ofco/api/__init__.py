"""HTTP API for submitting code to the sandbox."""

from ofco.api.main import create_app, get_app

__all__ = ["create_app", "get_app"]
