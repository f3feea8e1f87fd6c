"""Logging setup shared by the ``ledger_import`` package.

Only entrypoints (the Typer CLI, or a host application embedding the import
pipeline) call :func:`configure_logging`. Library modules obtain loggers via
:func:`get_logger` and never attach handlers themselves, so importing the
package stays silent until someone opts in.

The level is resolved from the explicit argument, then the
``LEDGER_IMPORT_LOG_LEVEL`` environment variable, then ``INFO``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "ledger_import"
LEVEL_ENV_VAR = "LEDGER_IMPORT_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_configured_handler: logging.Handler | None = None


def resolve_level(level: int | str | None = None) -> int:
    """Translate ``level`` (or the environment) into a numeric logging level.

    Unknown names fall back to ``INFO`` rather than raising: a typo in an
    environment variable should not stop an import run.
    """

    if level is None:
        level = os.getenv(LEVEL_ENV_VAR)
    if isinstance(level, int):
        return level
    if isinstance(level, str) and level.strip():
        name = level.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = logging.getLevelName(name)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
    force: bool = False,
) -> logging.Logger:
    """Attach one ``StreamHandler`` to the package logger.

    Parameters
    ----------
    level:
        ``int`` or level name. ``None`` defers to ``LEDGER_IMPORT_LOG_LEVEL``.
    fmt:
        Format string for the handler (defaults to :data:`DEFAULT_FORMAT`).
    stream:
        Destination stream; ``sys.stderr`` when omitted.
    force:
        Replace a handler installed by an earlier call instead of keeping it.
        Repeated calls without ``force`` are no-ops.
    """

    global _configured_handler
    logger = logging.getLogger(PACKAGE_LOGGER)
    if _configured_handler is not None:
        if not force:
            return logger
        logger.removeHandler(_configured_handler)
        _configured_handler = None

    for existing in list(logger.handlers):
        if isinstance(existing, logging.NullHandler):
            logger.removeHandler(existing)

    numeric = resolve_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(numeric)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(numeric)
    logger.propagate = False

    _configured_handler = handler
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)`` with a ``NullHandler`` safety net."""

    root = logging.getLogger(PACKAGE_LOGGER)
    if _configured_handler is None and not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "DEFAULT_FORMAT",
    "LEVEL_ENV_VAR",
    "PACKAGE_LOGGER",
    "configure_logging",
    "get_logger",
    "resolve_level",
]
