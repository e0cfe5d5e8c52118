"""Oracle dialect."""

import urllib.parse
from typing import ClassVar, Optional

from .base import ColumnType, Dialect


class OracleDialect(Dialect):
    """Dialect for Oracle (scheme oracle).

    Oracle has no LIMIT/OFFSET clause usable on every version, so pagination
    wraps the whole statement and filters on ROWNUM. Ids come from sequences.
    """

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("oracle",)

    PARAMSTYLE: ClassVar[str] = "numeric"

    validation_query: ClassVar[str] = "SELECT 1 FROM DUAL"

    COLUMN_TYPES: ClassVar[dict[str, ColumnType]] = {
        "integer": ColumnType(sql_type="number(10,0)"),
        "long": ColumnType(sql_type="number(19,0)"),
        "short": ColumnType(sql_type="number(5,0)"),
        "float": ColumnType(sql_type="float"),
        "double": ColumnType(sql_type="double precision"),
        "character": ColumnType(sql_type="char(1 char)"),
        "string": ColumnType(sql_type="varchar2", length=4000),
        "byte": ColumnType(sql_type="number(3,0)"),
        "boolean": ColumnType(sql_type="number(1,0)"),
        "date": ColumnType(sql_type="date"),
        "time": ColumnType(sql_type="date"),
        "timestamp": ColumnType(sql_type="timestamp"),
        "binary": ColumnType(sql_type="blob"),
        "text": ColumnType(sql_type="clob"),
    }

    def connect(self, url: str):
        import oracledb  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        service = (parsed.path or "").lstrip("/")
        dsn = f"{parsed.hostname or 'localhost'}:{parsed.port or 1521}/{service}"
        return oracledb.connect(user=parsed.username, password=parsed.password, dsn=dsn)

    def integrity_errors(self):
        import oracledb  # pylint: disable=import-outside-toplevel,import-error
        return (oracledb.IntegrityError,)

    def sql_limit(self, sql: str, limit: int) -> str:
        return f"SELECT * FROM ( {sql}) WHERE ROWNUM <= {limit}"

    def sql_offset(self, sql: str, offset: int) -> str:
        return f"SELECT * FROM (SELECT r.*, ROWNUM rnum FROM ({sql}) r ) WHERE rnum > {offset}"

    def sql_range(self, sql: str, offset: int, limit: int) -> str:
        return (
            f"SELECT * FROM (SELECT r.*, ROWNUM rnum FROM ({sql}) r "
            f"WHERE ROWNUM <= {offset + limit}) WHERE rnum > {offset}"
        )

    def has_sequence_support(self) -> bool:
        return True

    def default_sequence_name(self, table: str, column: str) -> str:
        return f"{table}_{column}_seq"

    def sql_next_sequence_value(self, sequence: str, schema: Optional[str] = None) -> str:
        return f"SELECT {self.qualified_table(sequence, schema)}.NEXTVAL FROM DUAL"

    def sql_create_sequence(self, sequence: str, schema: Optional[str] = None) -> str:
        return f"CREATE SEQUENCE {self.qualified_table(sequence, schema)}"

    def sql_id_column(self, column: str, uses_sequence: bool) -> str:
        return f"{self.quote(column)} number(19,0) PRIMARY KEY"

    def default_schema(self, connection) -> Optional[str]:
        return self._fetch_scalar(connection, "SELECT USER FROM DUAL")

    def table_exists(self, connection, table: str, schema: Optional[str] = None) -> bool:
        schema = schema or self.default_schema(connection)
        sql = "SELECT 1 FROM all_tables WHERE table_name = :1 AND owner = :2"
        return self._fetch_scalar(connection, sql, (table, schema)) is not None

    def sequence_exists(self, connection, sequence: str, schema: Optional[str] = None) -> bool:
        schema = schema or self.default_schema(connection)
        sql = "SELECT 1 FROM all_sequences WHERE sequence_name = :1 AND sequence_owner = :2"
        return self._fetch_scalar(connection, sql, (sequence, schema)) is not None
