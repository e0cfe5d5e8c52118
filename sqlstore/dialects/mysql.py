"""MySQL dialect."""

import urllib.parse
from typing import ClassVar, Optional

from .base import ColumnType, Dialect


class MysqlDialect(Dialect):
    """Dialect for MySQL (scheme mysql)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("mysql",)

    PARAMSTYLE: ClassVar[str] = "format"

    QUOTE_CHARACTERS: ClassVar[tuple[str, str]] = ("`", "`")

    COLUMN_TYPES: ClassVar[dict[str, ColumnType]] = {
        "integer": ColumnType(sql_type="int"),
        "long": ColumnType(sql_type="bigint"),
        "short": ColumnType(sql_type="smallint"),
        "float": ColumnType(sql_type="float"),
        "double": ColumnType(sql_type="double"),
        "character": ColumnType(sql_type="char", length=1),
        "string": ColumnType(sql_type="varchar", length=4000),
        "byte": ColumnType(sql_type="tinyint"),
        "boolean": ColumnType(sql_type="tinyint(1)"),
        "date": ColumnType(sql_type="date"),
        "time": ColumnType(sql_type="time"),
        "timestamp": ColumnType(sql_type="datetime"),
        "binary": ColumnType(sql_type="longblob"),
        "text": ColumnType(sql_type="longtext"),
    }

    def connect(self, url: str):
        import pymysql  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        return pymysql.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port or 3306,
        )

    def integrity_errors(self):
        import pymysql  # pylint: disable=import-outside-toplevel,import-error
        return (pymysql.err.IntegrityError,)

    def sql_insert(self, table: str, columns: list[str]) -> str:
        if not columns:
            return f"INSERT INTO {table} () VALUES ()"
        return super().sql_insert(table, columns)

    def sql_offset(self, sql: str, offset: int) -> str:
        # MySQL has no OFFSET without LIMIT
        return f"{sql} LIMIT 18446744073709551615 OFFSET {offset}"

    def sql_id_column(self, column: str, uses_sequence: bool) -> str:
        return f"{self.quote(column)} BIGINT NOT NULL AUTO_INCREMENT PRIMARY KEY"

    def default_schema(self, connection) -> Optional[str]:
        return self._fetch_scalar(connection, "SELECT DATABASE()")
