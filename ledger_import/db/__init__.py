"""SQL storage for the ledger and import profiles (SQLAlchemy 2.0).

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ORM models ``LiAccount``, ``LiTransaction``, ``LiImportProfile``
- :func:`create_schema` to create every table on an engine
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from .models import Base, LiAccount, LiImportProfile, LiTransaction

metadata = Base.metadata


def create_schema(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "LiAccount",
    "LiImportProfile",
    "LiTransaction",
    "create_schema",
    "metadata",
]
