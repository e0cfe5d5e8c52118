"""Exception hierarchy raised by sqlstore."""


class SqlstoreError(Exception):
    """Base class for every error raised by sqlstore."""


class MappingError(SqlstoreError):
    """Invalid entity mapping, raised when the entity type is defined."""


class TypeMismatchError(SqlstoreError):
    """A relation property holds a value of the wrong kind (raised at save time)."""

    def __init__(self, entity_name: str, property_name: str, expected: str, value):
        self.entity_name = entity_name
        self.property_name = property_name
        self.expected = expected
        self.value = value
        super().__init__(
            f"{entity_name}.{property_name} expects an instance of {expected}, "
            f"got {type(value).__name__}"
        )


class IntegrityError(SqlstoreError):
    """Unresolvable foreign key cycle or database constraint violation."""


class PoolError(SqlstoreError):
    """Base class for connection pool errors."""


class PoolExhaustedError(PoolError):
    """No connection became available before the acquire timeout."""


class PoolClosedError(PoolError):
    """The pool has been shut down."""


class NotFoundError(SqlstoreError):
    """The row backing an entity does not exist (anymore)."""


class QueryError(SqlstoreError):
    """Base class for query language errors."""


class QueryParseError(QueryError):
    """Query text does not follow the grammar."""

    def __init__(self, message: str, position: int | None = None):
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)


class QueryReferenceError(QueryError):
    """Query refers to an unknown entity or property."""


class ParameterError(QueryError):
    """Supplied parameters do not match the placeholders of a query."""


class ImmutableKeyError(SqlstoreError):
    """Attempt to change the id of a key that already has one."""


class TransactionError(SqlstoreError):
    """Transaction boundaries used incorrectly."""


class InvalidStateError(SqlstoreError):
    """Operation not allowed in the entity's current lifecycle state."""


__all__ = [
    "SqlstoreError",
    "MappingError",
    "TypeMismatchError",
    "IntegrityError",
    "PoolError",
    "PoolExhaustedError",
    "PoolClosedError",
    "NotFoundError",
    "QueryError",
    "QueryParseError",
    "QueryReferenceError",
    "ParameterError",
    "ImmutableKeyError",
    "TransactionError",
    "InvalidStateError",
]
