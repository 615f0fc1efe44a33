"""Logging configuration for pkgstats.

All modules log through the "pkgstats" logger. The CLI attaches a single
stderr handler to it; library use leaves handler setup to the caller.
"""

import logging
import sys
from typing import TextIO

logger = logging.getLogger("pkgstats")

# Plain messages for normal use, level-prefixed ones when debugging
DEFAULT_FORMAT = "%(message)s"
VERBOSE_FORMAT = "%(levelname)s [%(module)s]: %(message)s"


def _level(verbose: bool, quiet: bool) -> int:
    if quiet:
        return logging.WARNING
    if verbose:
        return logging.DEBUG
    return logging.INFO


def setup_logging(
    verbose: bool = False, quiet: bool = False, stream: TextIO | None = None
) -> logging.Handler:
    """Configure the pkgstats logger for console output.

    Replaces any handler installed by an earlier call.

    Args:
        verbose: Show DEBUG messages (computed ranges, trimmed buckets)
            prefixed with level and module.
        quiet: Only show warnings and errors. Wins over verbose.
        stream: Stream to write to (default: sys.stderr).

    Returns:
        The installed handler.
    """
    level = _level(verbose, quiet)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT))

    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler


def get_logger() -> logging.Logger:
    """Get the pkgstats logger."""
    return logger
