"""Logging setup for perfcompete.

Every module logs through a child of the ``perfcompete`` logger. Competition
messages are mirrored there too (see :mod:`perfcompete.competition.state`),
so a log file holds the full message history of an invocation, including
the limits annotation blocks that a later run can import.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TextIO

_ROOT = "perfcompete"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_CONSOLE_FORMAT = "%(levelname)-8s %(message)s"


def _console_level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Install the console (and optional file) handlers.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        verbose: If True, set the console level to DEBUG.
        quiet: If True, set the console level to WARNING. Ignored if *verbose* is True.
        log_file: If provided, add a DEBUG file handler writing to this path.
        stream: Console stream; defaults to ``sys.stderr``.

    Returns:
        The configured ``perfcompete`` logger.
    """
    logger = logging.getLogger(_ROOT)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream)
    console.setLevel(_console_level(verbose, quiet))
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a named child logger under the perfcompete namespace.

    Args:
        name: The logger name (will be prefixed with ``perfcompete.``).

    Returns:
        The ``perfcompete.<name>`` logger.
    """
    return logging.getLogger(f"{_ROOT}.{name}")
