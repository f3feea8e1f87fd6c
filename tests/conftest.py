"""Pytest configuration for test isolation.

The package reads its knobs (``DATABASE_URL``, ``LEDGER_IMPORT_*``) from the
environment, and the SQL client keeps one process-wide engine. A developer's
shell or ``.env`` must not leak into tests, and an engine bound to one test's
SQLite file must not survive into the next test.

CLI tests call ``configure_logging``, which stops the package logger from
propagating; the logger is restored afterwards so ``caplog`` keeps working.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator

import pytest

from ledger_import import logging_setup
from ledger_import.db.client import dispose_engine


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Clear package settings and drop the shared engine after each test."""

    for name in list(os.environ):
        if name.startswith("LEDGER_IMPORT_") or name == "DATABASE_URL":
            monkeypatch.delenv(name, raising=False)
    yield
    dispose_engine()


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger(logging_setup.PACKAGE_LOGGER)
    if logging_setup._configured_handler is not None:
        logger.removeHandler(logging_setup._configured_handler)
        logging_setup._configured_handler = None
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
