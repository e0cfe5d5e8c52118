"""SQLite dialect."""

import datetime
import logging
import urllib.parse
from typing import Any, ClassVar, Optional

from .base import ColumnType, Dialect

logger = logging.getLogger(__name__)


class SqliteDialect(Dialect):
    """Dialect for SQLite (scheme sqlite)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("sqlite",)

    # no ALTER TABLE ... ADD CONSTRAINT
    INLINE_FOREIGN_KEYS: ClassVar[bool] = True

    COLUMN_TYPES: ClassVar[dict[str, ColumnType]] = {
        "integer": ColumnType(sql_type="INTEGER"),
        "long": ColumnType(sql_type="INTEGER"),
        "short": ColumnType(sql_type="INTEGER"),
        "float": ColumnType(sql_type="REAL"),
        "double": ColumnType(sql_type="REAL"),
        "character": ColumnType(sql_type="CHAR", length=1),
        "string": ColumnType(sql_type="VARCHAR", length=4000),
        "byte": ColumnType(sql_type="INTEGER"),
        "boolean": ColumnType(sql_type="INTEGER"),
        "date": ColumnType(sql_type="DATE"),
        "time": ColumnType(sql_type="TIME"),
        "timestamp": ColumnType(sql_type="TIMESTAMP"),
        "binary": ColumnType(sql_type="BLOB"),
        "text": ColumnType(sql_type="TEXT"),
    }

    def connect(self, url: str):
        import sqlite3
        parsed = urllib.parse.urlparse(url)
        path = (parsed.path or "")[1:] or parsed.hostname or ":memory:"
        logger.debug("Connecting to SQLite database %s", path)
        # pooled connections are handed across threads
        conn = sqlite3.connect(path, check_same_thread=False)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def integrity_errors(self):
        import sqlite3
        return (sqlite3.IntegrityError,)

    def to_db(self, abstract_type: str, value: Any) -> Any:
        # no native temporal types: stored as ISO 8601 text
        if isinstance(value, (datetime.date, datetime.time)):
            return value.isoformat()
        return super().to_db(abstract_type, value)

    def bind_value(self, value: Any) -> Any:
        if isinstance(value, (datetime.date, datetime.time)):
            return value.isoformat()
        return super().bind_value(value)

    def sql_offset(self, sql: str, offset: int) -> str:
        return f"{sql} LIMIT -1 OFFSET {offset}"

    def sql_id_column(self, column: str, uses_sequence: bool) -> str:
        return f"{self.quote(column)} INTEGER PRIMARY KEY AUTOINCREMENT"

    def default_schema(self, connection) -> Optional[str]:
        return "main"

    def table_exists(self, connection, table: str, schema: Optional[str] = None) -> bool:
        master = f"{self.quote(schema)}.sqlite_master" if schema else "sqlite_master"
        sql = f"SELECT 1 FROM {master} WHERE type = 'table' AND name = ?"
        return self._fetch_scalar(connection, sql, (table,)) is not None
