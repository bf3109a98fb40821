"""Command-line interface for ofco."""
