"""One process-wide database binding for the SQL ledger and profile store.

Usage
-----
from ledger_import.db.client import session_scope

with session_scope(database_url=url) as s:
    ledger = SqlLedger(s)
    ...

The URL comes from the ``database_url`` argument or ``DATABASE_URL``. The
first URL used binds the process until :func:`dispose_engine` releases it.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..logging_setup import get_logger

logger = get_logger("ledger_import.db")


@dataclass(frozen=True, slots=True)
class _Binding:
    url: str
    engine: Engine
    sessions: sessionmaker[Session]


_BINDING: _Binding | None = None


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; pass --database-url or set it in .env")
    return url


def _binding(database_url: str | None) -> _Binding:
    global _BINDING
    url = _database_url(database_url)
    if _BINDING is None:
        engine = create_engine(url, pool_pre_ping=True)
        _BINDING = _Binding(
            url=url,
            engine=engine,
            sessions=sessionmaker(bind=engine, expire_on_commit=False, class_=Session),
        )
        logger.debug("bound to %s", engine.url.render_as_string(hide_password=True))
    elif url != _BINDING.url:
        raise RuntimeError(
            "ledger database is already bound to another URL; "
            "dispose_engine() releases it"
        )
    return _BINDING


def get_engine(*, database_url: str | None = None) -> Engine:
    """The bound engine, created on first use (for schema creation and raw SQL)."""

    return _binding(database_url).engine


def dispose_engine() -> None:
    """Close pooled connections and unbind, so the next call may use any URL."""

    global _BINDING
    if _BINDING is not None:
        _BINDING.engine.dispose()
        logger.debug("released %s", _BINDING.engine.url.render_as_string(hide_password=True))
    _BINDING = None


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """One unit of work: commit when the block succeeds, otherwise roll back.

    The session is closed either way; objects loaded in it stay readable
    afterwards (``expire_on_commit=False``).
    """

    session = _binding(database_url).sessions()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "dispose_engine",
    "get_engine",
    "session_scope",
]
