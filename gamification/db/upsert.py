"""Dialect-specific ``INSERT .. ON CONFLICT`` constructors.

Atomic increments and insert-if-absent writes need the native upsert of the
backing database. PostgreSQL is the production target; SQLite is used by the
test suite and for local runs.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(db: AsyncSession, table):
    """Return an ``Insert`` for ``table`` supporting ``on_conflict_do_*``."""
    dialect = db.get_bind().dialect.name
    try:
        insert = _INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"Upserts are not supported on {dialect!r}") from None
    return insert(table)
