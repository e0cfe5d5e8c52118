"""SQL Server dialect."""

import re
import urllib.parse
from typing import Any, ClassVar, Optional

from .base import ColumnType, Dialect

_ORDER_BY = re.compile(r"\bORDER\s+BY\b", re.IGNORECASE)


class SqlserverDialect(Dialect):
    """Dialect for SQL Server (schemes mssql, sqlserver)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("mssql", "sqlserver")

    QUOTE_CHARACTERS: ClassVar[tuple[str, str]] = ("[", "]")

    COLUMN_TYPES: ClassVar[dict[str, ColumnType]] = {
        "integer": ColumnType(sql_type="int"),
        "long": ColumnType(sql_type="bigint"),
        "short": ColumnType(sql_type="smallint"),
        "float": ColumnType(sql_type="real"),
        "double": ColumnType(sql_type="float"),
        "character": ColumnType(sql_type="nchar", length=1),
        "string": ColumnType(sql_type="nvarchar", length=4000),
        "byte": ColumnType(sql_type="tinyint"),
        "boolean": ColumnType(sql_type="bit"),
        "date": ColumnType(sql_type="date"),
        "time": ColumnType(sql_type="time"),
        "timestamp": ColumnType(sql_type="datetime2"),
        "binary": ColumnType(sql_type="varbinary(max)"),
        "text": ColumnType(sql_type="nvarchar(max)"),
    }

    def connect(self, url: str):
        import pyodbc  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        database = (parsed.path or "").lstrip("/") or None
        port = parsed.port or 1433
        server = parsed.hostname or "localhost"
        if port and port != 1433:
            server = f"{server},{port}"
        conn_str = (
            f"DRIVER={{ODBC Driver 17 for SQL Server}};"
            f"SERVER={server};"
            f"DATABASE={database or ''};"
            f"UID={parsed.username or ''};"
            f"PWD={parsed.password or ''}"
        )
        return pyodbc.connect(conn_str)

    def integrity_errors(self):
        import pyodbc  # pylint: disable=import-outside-toplevel,import-error
        return (pyodbc.IntegrityError,)

    @staticmethod
    def _ordered(sql: str) -> str:
        # OFFSET/FETCH is only valid after an ORDER BY clause
        if _ORDER_BY.search(sql):
            return sql
        return f"{sql} ORDER BY (SELECT NULL)"

    def sql_limit(self, sql: str, limit: int) -> str:
        return f"{self._ordered(sql)} OFFSET 0 ROWS FETCH NEXT {limit} ROWS ONLY"

    def sql_offset(self, sql: str, offset: int) -> str:
        return f"{self._ordered(sql)} OFFSET {offset} ROWS"

    def sql_range(self, sql: str, offset: int, limit: int) -> str:
        return f"{self._ordered(sql)} OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"

    def sql_id_column(self, column: str, uses_sequence: bool) -> str:
        return f"{self.quote(column)} BIGINT IDENTITY(1,1) PRIMARY KEY"

    def generated_id(self, cursor: Any, column: str) -> Any:
        cursor.execute("SELECT @@IDENTITY")
        return int(cursor.fetchone()[0])

    def default_schema(self, connection) -> Optional[str]:
        return self._fetch_scalar(connection, "SELECT SCHEMA_NAME()")
