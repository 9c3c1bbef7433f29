"""Logging setup and verbosity levels."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from enum import IntEnum
from typing import Generator

from rich.console import Console
from rich.logging import RichHandler

# Global console for log output (stdout stays free for command results)
console = Console(stderr=True)

LOGGER_NAME = "codebase_context"

_TRUTHY = ("1", "true", "yes")


class Verbosity(IntEnum):
    """Verbosity levels."""

    QUIET = 0  # Only errors
    NORMAL = 1  # Info + warnings
    VERBOSE = 2  # Debug info
    DEBUG = 3  # Debug info with source paths and traceback locals


def get_verbosity() -> Verbosity:
    """Get current verbosity level from environment."""
    if os.environ.get("CONTEXT_DEBUG", "").lower() in _TRUTHY:
        return Verbosity.DEBUG
    if os.environ.get("CONTEXT_VERBOSE", "").lower() in _TRUTHY:
        return Verbosity.VERBOSE
    if os.environ.get("CONTEXT_QUIET", "").lower() in _TRUTHY:
        return Verbosity.QUIET
    return Verbosity.NORMAL


def is_verbose() -> bool:
    return get_verbosity() >= Verbosity.VERBOSE


_LEVELS = {
    Verbosity.QUIET: logging.ERROR,
    Verbosity.NORMAL: logging.WARNING,
    Verbosity.VERBOSE: logging.INFO,
    Verbosity.DEBUG: logging.DEBUG,
}


def setup_logging(
    verbosity: Verbosity | None = None,
    rich_tracebacks: bool = True,
) -> logging.Logger:
    """
    Setup logging with rich formatting.

    Args:
        verbosity: Overrides the CONTEXT_* environment variables
        rich_tracebacks: Use rich for exception formatting

    Returns:
        The configured package logger
    """
    if verbosity is None:
        verbosity = get_verbosity()
    level = _LEVELS[verbosity]

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = RichHandler(
        console=console,
        show_time=verbosity >= Verbosity.VERBOSE,
        show_path=verbosity >= Verbosity.DEBUG,
        rich_tracebacks=rich_tracebacks,
        tracebacks_show_locals=verbosity >= Verbosity.DEBUG,
    )
    handler.setLevel(level)
    logger.addHandler(handler)

    return logger


@contextmanager
def timer(name: str, log: bool = True) -> Generator[dict[str, float], None, None]:
    """
    Time a block of code, logging the elapsed time at DEBUG.

    Usage:
        with timer("embed batch") as t:
            do_something()
        print(f"Took {t['elapsed']:.2f}s")
    """
    result: dict[str, float] = {"start": time.perf_counter(), "end": 0, "elapsed": 0}

    try:
        yield result
    finally:
        result["end"] = time.perf_counter()
        result["elapsed"] = result["end"] - result["start"]

        if log:
            logging.getLogger(LOGGER_NAME).debug("%s: %.3fs", name, result["elapsed"])


__all__ = [
    "Verbosity",
    "get_verbosity",
    "is_verbose",
    "setup_logging",
    "timer",
    "console",
    "LOGGER_NAME",
]
