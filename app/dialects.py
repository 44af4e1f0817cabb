"""Dialect-specific statement builders.

Edge tables (follows, favorites) and the tag table are written with
``INSERT ... ON CONFLICT DO NOTHING`` so that concurrent duplicate writes
converge on one row instead of failing the request.  Only PostgreSQL and
SQLite are supported.
"""
from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Insert


class UnsupportedDialect(Exception):
    """Raised when the session is bound to a database we cannot target."""


def insert_ignore(db: AsyncSession, table: Table, values: dict) -> Insert:
    """Build an insert of *values* into *table* that skips existing rows."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(table).values(**values).on_conflict_do_nothing()
    if dialect == "sqlite":
        return sqlite_insert(table).values(**values).on_conflict_do_nothing()
    raise UnsupportedDialect(f"Unsupported dialect: {dialect!r}")
