"""Database dialects: one class per engine (SQLite, MySQL, PostgreSQL, SQL Server, Oracle)."""

import urllib.parse

from .base import ABSTRACT_TYPES, ColumnType, Dialect
from .sqlite import SqliteDialect
from .mysql import MysqlDialect
from .postgres import PostgresDialect
from .sqlserver import SqlserverDialect
from .oracle import OracleDialect

_DIALECT_CLASSES: tuple[type[Dialect], ...] = (
    SqliteDialect,
    MysqlDialect,
    PostgresDialect,
    SqlserverDialect,
    OracleDialect,
)


def get_dialect_for_scheme(scheme: str) -> Dialect:
    """Return a Dialect instance for the given URL scheme (e.g. 'sqlite', 'mysql')."""
    normalized = (scheme or "").split("+")[0].lower()
    for dialect_cls in _DIALECT_CLASSES:
        if normalized in dialect_cls.SUPPORTED_SCHEMA:
            return dialect_cls()
    raise ValueError(f"Unsupported database scheme: {scheme}")


def get_dialect_for_url(url: str) -> Dialect:
    """Return a Dialect instance for a database URL (e.g. 'sqlite:////tmp/db.sqlite3')."""
    return get_dialect_for_scheme(urllib.parse.urlparse(url).scheme)


__all__ = [
    "ABSTRACT_TYPES",
    "ColumnType",
    "Dialect",
    "SqliteDialect",
    "MysqlDialect",
    "PostgresDialect",
    "SqlserverDialect",
    "OracleDialect",
    "get_dialect_for_scheme",
    "get_dialect_for_url",
]
