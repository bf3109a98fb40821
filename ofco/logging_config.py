"""Logging configuration for ofco.

Provides plain console logging with appropriate levels for application
code vs third-party libraries.
"""

import logging
import sys
from typing import Literal

from ofco.settings import get_settings

# List of noisy third-party loggers to suppress
NOISY_LOGGERS = [
    "asyncio",
    "httpcore",
    "httpx",
    "uvicorn.access",
    "multipart",
]

# Per-logger levels for noisy libraries
NOISY_LOGGER_LEVELS = {
    "uvicorn.access": logging.WARNING,
}


def suppress_noisy_loggers() -> None:
    """Suppress noisy third-party loggers.

    Call this after importing libraries that configure their own logging.
    """
    for logger_name in NOISY_LOGGERS:
        logger = logging.getLogger(logger_name)
        level = NOISY_LOGGER_LEVELS.get(logger_name, logging.WARNING)
        logger.setLevel(level)


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
) -> None:
    """Configure application logging.

    Sets up logging with:
    - Application logs at configured level
    - Third-party library logs suppressed to WARNING+
    - Clean console output format

    Args:
        level: Override log level (defaults to settings.log_level)
    """
    settings = get_settings()
    log_level = level or settings.log_level

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level))
    console_handler.setFormatter(
        logging.Formatter(
            "%(levelname)s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root_logger.addHandler(console_handler)

    logging.getLogger("ofco").setLevel(getattr(logging, log_level))

    suppress_noisy_loggers()
