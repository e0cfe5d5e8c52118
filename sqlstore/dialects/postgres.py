"""PostgreSQL dialect."""

import urllib.parse
from typing import Any, ClassVar, Optional

from .base import ColumnType, Dialect


class PostgresDialect(Dialect):
    """Dialect for PostgreSQL (scheme postgresql)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("postgresql", "postgres")

    PARAMSTYLE: ClassVar[str] = "format"

    COLUMN_TYPES: ClassVar[dict[str, ColumnType]] = {
        "integer": ColumnType(sql_type="integer"),
        "long": ColumnType(sql_type="bigint"),
        "short": ColumnType(sql_type="smallint"),
        "float": ColumnType(sql_type="real"),
        "double": ColumnType(sql_type="double precision"),
        "character": ColumnType(sql_type="char", length=1),
        "string": ColumnType(sql_type="varchar", length=4000),
        "byte": ColumnType(sql_type="smallint"),
        "boolean": ColumnType(sql_type="boolean"),
        "date": ColumnType(sql_type="date"),
        "time": ColumnType(sql_type="time"),
        "timestamp": ColumnType(sql_type="timestamp"),
        "binary": ColumnType(sql_type="bytea"),
        "text": ColumnType(sql_type="text"),
    }

    def connect(self, url: str):
        import psycopg2  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        return psycopg2.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port,
        )

    def integrity_errors(self):
        import psycopg2  # pylint: disable=import-outside-toplevel,import-error
        return (psycopg2.IntegrityError,)

    def boolean_value(self, value: Any) -> Any:
        return None if value is None else bool(value)

    def has_sequence_support(self) -> bool:
        return True

    def sql_next_sequence_value(self, sequence: str, schema: Optional[str] = None) -> str:
        name = self.qualified_table(sequence, schema).replace("'", "''")
        return f"SELECT nextval('{name}')"

    def sql_create_sequence(self, sequence: str, schema: Optional[str] = None) -> str:
        return f"CREATE SEQUENCE {self.qualified_table(sequence, schema)}"

    def sql_id_column(self, column: str, uses_sequence: bool) -> str:
        if uses_sequence:
            return f"{self.quote(column)} BIGINT PRIMARY KEY"
        return f"{self.quote(column)} BIGSERIAL PRIMARY KEY"

    def sql_insert_returning(self, column: str) -> str:
        return f" RETURNING {self.quote(column)}"

    def generated_id(self, cursor: Any, column: str) -> Any:
        return cursor.fetchone()[0]

    def default_schema(self, connection) -> Optional[str]:
        return self._fetch_scalar(connection, "SELECT current_schema()")

    def sequence_exists(self, connection, sequence: str, schema: Optional[str] = None) -> bool:
        schema = schema or self.default_schema(connection)
        sql = (
            "SELECT 1 FROM information_schema.sequences "
            "WHERE sequence_name = %s AND sequence_schema = %s"
        )
        return self._fetch_scalar(connection, sql, (sequence, schema)) is not None
