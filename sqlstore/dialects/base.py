"""Base Dialect type: the contract every database backend implements.

All SQL text produced by a Store goes through exactly one Dialect instance,
which keeps the rest of the engine free of backend-specific syntax.
"""

import datetime
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict

from ..errors import MappingError

ABSTRACT_TYPES: tuple[str, ...] = (
    "integer",
    "long",
    "short",
    "float",
    "double",
    "character",
    "string",
    "byte",
    "boolean",
    "date",
    "time",
    "timestamp",
    "binary",
    "text",
)
"""Abstract scalar property types understood by mappings."""

_INTEGER_TYPES = frozenset(("integer", "long", "short", "byte"))
_FLOAT_TYPES = frozenset(("float", "double"))
_STRING_TYPES = frozenset(("character", "string", "text"))


class ColumnType(BaseModel):
    """Native column type for one abstract type."""

    model_config = ConfigDict(frozen=True)

    sql_type: str
    """Native type name used in DDL (e.g. ``varchar``, ``number(10,0)``)."""
    length: Optional[int] = None
    """Default length; types with a length render as ``sql_type(length)``."""

    def render(self, length: Optional[int] = None) -> str:
        """DDL fragment for this type, using the given length or the default one."""
        if self.length is None:
            return self.sql_type
        return f"{self.sql_type}({length or self.length})"


class Dialect(BaseModel, ABC):
    """Base for database dialects; subclasses describe one engine."""

    model_config = {"arbitrary_types_allowed": True}

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ()
    """URL schemes this dialect handles (e.g. ('sqlite',), ('mssql', 'sqlserver'))."""

    COLUMN_TYPES: ClassVar[dict[str, ColumnType]] = {}
    """Abstract type name -> native column type."""

    PARAMSTYLE: ClassVar[str] = "qmark"
    """DB-API paramstyle of the driver: ``qmark``, ``format`` or ``numeric``."""

    QUOTE_CHARACTERS: ClassVar[tuple[str, str]] = ('"', '"')

    validation_query: ClassVar[str] = "SELECT 1"
    """Cheap statement used to check that a connection is alive."""

    INLINE_FOREIGN_KEYS: ClassVar[bool] = False
    """Declare foreign keys inside CREATE TABLE instead of with ALTER TABLE afterwards."""

    @abstractmethod
    def connect(self, url: str) -> Any:
        """Return a new raw driver connection for the given URL.

        The return value is engine-specific (e.g. sqlite3.Connection, pymysql.Connection).
        """
        ...  # pylint: disable=unnecessary-ellipsis

    def integrity_errors(self) -> tuple[type[BaseException], ...]:
        """Driver exception classes that signal a constraint violation."""
        return ()

    def __str__(self) -> str:
        return f"[Dialect {type(self).__name__.removesuffix('Dialect')}]"

    # types

    def column_type(self, abstract_type: str) -> ColumnType:
        try:
            return self.COLUMN_TYPES[abstract_type]
        except KeyError as error:
            raise MappingError(
                f"{self} has no column type for abstract type `{abstract_type}`"
            ) from error

    def sql_column_type(self, abstract_type: str, length: Optional[int] = None) -> str:
        """Native DDL type for an abstract type (e.g. ``string`` -> ``varchar(4000)``)."""
        return self.column_type(abstract_type).render(length)

    # identifiers and placeholders

    def quote(self, identifier: str) -> str:
        """Quote an identifier (table, column, sequence or alias name)."""
        opening, closing = self.QUOTE_CHARACTERS
        return opening + identifier.replace(closing, closing * 2) + closing

    def qualified_table(self, table: str, schema: Optional[str] = None) -> str:
        if schema:
            return f"{self.quote(schema)}.{self.quote(table)}"
        return self.quote(table)

    def placeholder(self, position: int) -> str:
        """Placeholder for the bound value at the given (0-based) position."""
        if self.PARAMSTYLE == "format":
            return "%s"
        if self.PARAMSTYLE == "numeric":
            return f":{position + 1}"
        return "?"

    def placeholders(self, count: int, start: int = 0) -> list[str]:
        return [self.placeholder(start + i) for i in range(count)]

    # values

    def boolean_value(self, value: Any) -> Any:
        """Value stored for a boolean; 0/1 where the engine has no native boolean."""
        if value is None:
            return None
        return 1 if value else 0

    def to_db(self, abstract_type: str, value: Any) -> Any:
        """Convert a Python value to what the driver expects for the given type."""
        if value is None:
            return None
        if abstract_type == "boolean":
            return self.boolean_value(value)
        if abstract_type == "binary":
            return bytes(value)
        return value

    def from_db(self, abstract_type: str, value: Any) -> Any:
        """Convert a value read from the driver to the Python type of the abstract type."""
        if value is None:
            return None
        if abstract_type in _INTEGER_TYPES:
            return int(value)
        if abstract_type in _FLOAT_TYPES:
            return float(value)
        if abstract_type == "boolean":
            return bool(value)
        if abstract_type in _STRING_TYPES:
            if hasattr(value, "read"):
                value = value.read()
            return str(value)
        if abstract_type == "binary":
            if hasattr(value, "read"):
                value = value.read()
            return bytes(value)
        if abstract_type == "date":
            if isinstance(value, datetime.datetime):
                return value.date()
            if isinstance(value, str):
                return datetime.date.fromisoformat(value[:10])
            return value
        if abstract_type == "time":
            if isinstance(value, datetime.datetime):
                return value.time()
            if isinstance(value, datetime.timedelta):
                return (datetime.datetime.min + value).time()
            if isinstance(value, str):
                return datetime.time.fromisoformat(value)
            return value
        if abstract_type == "timestamp":
            if isinstance(value, str):
                return datetime.datetime.fromisoformat(value)
            if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
                return datetime.datetime.combine(value, datetime.time())
            return value
        raise MappingError(f"Unknown abstract type `{abstract_type}`")

    def bind_value(self, value: Any) -> Any:
        """Convert an untyped query parameter for binding."""
        if isinstance(value, bool):
            return self.boolean_value(value)
        return value

    # pagination

    def sql_limit(self, sql: str, limit: int) -> str:
        return f"{sql} LIMIT {limit}"

    def sql_offset(self, sql: str, offset: int) -> str:
        return f"{sql} OFFSET {offset}"

    def sql_range(self, sql: str, offset: int, limit: int) -> str:
        return f"{sql} LIMIT {limit} OFFSET {offset}"

    def paginate(self, sql: str, limit: Optional[int] = None, offset: Optional[int] = None) -> str:
        """Restrict a compiled SELECT to a window of rows."""
        for name, value in (("limit", limit), ("offset", offset)):
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        if not offset:
            offset = None
        if limit is None and offset is None:
            return sql
        if offset is None:
            return self.sql_limit(sql, limit)
        if limit is None:
            return self.sql_offset(sql, offset)
        return self.sql_range(sql, offset, limit)

    # statements

    def sql_insert(self, table: str, columns: list[str]) -> str:
        """INSERT statement for the given columns, with one placeholder per column."""
        if not columns:
            return f"INSERT INTO {table} DEFAULT VALUES"
        names = ", ".join(self.quote(column) for column in columns)
        values = ", ".join(self.placeholders(len(columns)))
        return f"INSERT INTO {table} ({names}) VALUES ({values})"

    def sql_foreign_key(self, column: str, target_table: str, target_column: str) -> str:
        return (
            f"FOREIGN KEY ({self.quote(column)}) "
            f"REFERENCES {target_table} ({self.quote(target_column)})"
        )

    # sequences and generated ids

    def has_sequence_support(self) -> bool:
        return False

    def default_sequence_name(self, table: str, column: str) -> Optional[str]:
        """Sequence used for a mapping that declares none (engines without identity columns)."""
        return None

    def sql_next_sequence_value(self, sequence: str, schema: Optional[str] = None) -> Optional[str]:
        """SELECT statement returning the next value of a sequence; None without sequence support."""
        return None

    def sql_create_sequence(self, sequence: str, schema: Optional[str] = None) -> Optional[str]:
        return None

    @abstractmethod
    def sql_id_column(self, column: str, uses_sequence: bool) -> str:
        """DDL fragment declaring the primary key column."""
        ...  # pylint: disable=unnecessary-ellipsis

    def sql_insert_returning(self, column: str) -> str:
        """Suffix appended to INSERT statements so the generated id can be read back."""
        return ""

    def generated_id(self, cursor: Any, column: str) -> Any:
        """Read the id generated by the INSERT just executed on cursor."""
        return cursor.lastrowid

    # schema introspection

    def _fetch_scalar(self, connection: Any, sql: str, parameters: tuple = ()) -> Any:
        cursor = connection.cursor()
        try:
            cursor.execute(sql, parameters)
            row = cursor.fetchone()
        finally:
            cursor.close()
        return row[0] if row else None

    def default_schema(self, connection: Any) -> Optional[str]:
        """Name of the schema tables land in when a mapping declares none."""
        return None

    def table_exists(self, connection: Any, table: str, schema: Optional[str] = None) -> bool:
        schema = schema or self.default_schema(connection)
        p0, p1 = self.placeholders(2)
        sql = (
            "SELECT 1 FROM information_schema.tables "
            f"WHERE table_name = {p0} AND table_schema = {p1}"
        )
        return self._fetch_scalar(connection, sql, (table, schema)) is not None

    def sequence_exists(self, connection: Any, sequence: str, schema: Optional[str] = None) -> bool:
        return False
