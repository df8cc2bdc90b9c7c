"""Dialect-specific INSERT constructs for ON CONFLICT upserts."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(db: AsyncSession, model: Any) -> Any:  # noqa: ANN401
    """Return an ``INSERT`` for ``model`` supporting ``on_conflict_do_*``.

    PostgreSQL and SQLite share the same ``on_conflict_do_update`` /
    ``on_conflict_do_nothing`` API, including ``where=`` guards.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    msg = f"Upserts are not supported on dialect '{dialect}'"
    raise NotImplementedError(msg)
