"""sqlstore: declarative entity persistence on relational databases."""

from .cache import Cache
from .config import PoolConfig
from .dialects import Dialect, get_dialect_for_scheme, get_dialect_for_url
from .entity import Entity, EntityState
from .errors import (
    ImmutableKeyError,
    IntegrityError,
    InvalidStateError,
    MappingError,
    NotFoundError,
    ParameterError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
    QueryError,
    QueryParseError,
    QueryReferenceError,
    SqlstoreError,
    TransactionError,
    TypeMismatchError,
)
from .key import Key
from .mapping import Mapping, build_mapping
from .pool import ConnectionPool, PooledConnection
from .query import Query
from .store import Store

__all__ = [
    "Cache",
    "ConnectionPool",
    "Dialect",
    "Entity",
    "EntityState",
    "ImmutableKeyError",
    "IntegrityError",
    "InvalidStateError",
    "Key",
    "Mapping",
    "MappingError",
    "NotFoundError",
    "ParameterError",
    "PoolClosedError",
    "PoolConfig",
    "PoolError",
    "PoolExhaustedError",
    "PooledConnection",
    "Query",
    "QueryError",
    "QueryParseError",
    "QueryReferenceError",
    "SqlstoreError",
    "Store",
    "TransactionError",
    "TypeMismatchError",
    "build_mapping",
    "get_dialect_for_scheme",
    "get_dialect_for_url",
]
