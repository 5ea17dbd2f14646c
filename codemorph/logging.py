"""Logging setup shared by the CLI, the service, and library code."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

ROOT_LOGGER = "codemorph"
CONSOLE_FORMAT = "[codemorph] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``codemorph.<name>`` (or the package logger when ``name`` is empty)."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def configure_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    quiet: Iterable[str] = (),
) -> logging.Logger:
    """Install console (and optional file) handlers on the package logger.

    Loggers named in ``quiet`` (relative to ``codemorph``) only report
    warnings and above unless ``verbose`` is set. The CLI uses this for
    ``events``, whose entries it already prints itself.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = get_logger()
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(level)
        sink.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(sink)

    for name in quiet:
        get_logger(name).setLevel(logging.NOTSET if verbose else logging.WARNING)

    return logger


__all__ = ["configure_logging", "get_logger"]
