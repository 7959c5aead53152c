"""Logging setup for the surfaceshift CLI and library."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "surfaceshift"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_handlers: list[logging.Handler] = []


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
) -> None:
    """Route surfaceshift logs to stderr and optionally to a file.

    Calling this again replaces the handlers installed by the previous
    call, so the CLI can be invoked repeatedly in one process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Also write records to this file at DEBUG level.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in _handlers:
        package_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        # Messages carry user paths and patterns with square brackets.
        markup=False,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.setLevel(level.upper())
    _handlers.append(console_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        _handlers.append(file_handler)

    for handler in _handlers:
        package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if log_file is not None else level.upper())
    package_logger.propagate = False


def set_console_level(level: str) -> None:
    """Change the stderr threshold without touching a log file handler."""
    for handler in _handlers:
        if isinstance(handler, RichHandler):
            handler.setLevel(level.upper())
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if not any(isinstance(handler, logging.FileHandler) for handler in _handlers):
        package_logger.setLevel(level.upper())


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given module name.

    Args:
        name: Module name (typically __name__).

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
