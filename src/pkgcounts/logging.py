"""Logging configuration for pkgcounts.

Every module logs through a child of the ``pkgcounts`` logger obtained with
``get_logger``, so ``setup_logging`` controls the engine, the store and the
CLI at once.
"""

import logging
import sys
from typing import TextIO

LOGGER_NAME = "pkgcounts"

DEFAULT_FORMAT = "%(message)s"
VERBOSE_FORMAT = "%(levelname)s [%(name)s]: %(message)s"


def get_logger(module: str | None = None) -> logging.Logger:
    """Get the pkgcounts logger, or its child for ``module``."""
    root = logging.getLogger(LOGGER_NAME)
    if module is None:
        return root
    return root.getChild(module)


def setup_logging(
    verbose: bool = False, quiet: bool = False, stream: TextIO | None = None
) -> logging.Handler:
    """Configure console logging for the CLI.

    Args:
        verbose: Show DEBUG records, which include every dropped version,
            dropped bucket and evicted range, prefixed with level and module.
        quiet: Only show WARNING and above. Takes precedence over ``verbose``.
        stream: Where to write records (default: stderr).

    Returns:
        The installed handler. Calling again replaces it.
    """
    logger = get_logger()
    logger.handlers.clear()

    level = logging.WARNING if quiet else logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
