"""ofco: sandboxed code execution service."""

__version__ = "0.1.0"
