"""The Store: entity registry, transactions and the glue between pool, cache and dialect."""

from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional

from .cache import Cache
from .config import PoolConfig
from .dialects import Dialect
from .entity import Entity, make_entity_type
from .errors import IntegrityError, MappingError, QueryError
from .key import Key
from .mapping import Mapping, build_mapping
from .pool import ConnectionPool, PooledConnection
from .query import Query, parse
from .transaction import Transaction, TransactionManager

logger = logging.getLogger("sqlstore")


class Store:
    """Persistence engine bound to one database.

    Entity types are registered per Store, so several stores (even on the same
    database) can coexist in one process.

        store = Store.from_url("sqlite:///app.sqlite3")
        Author = store.define_entity("Author", {"properties": {"name": "string"}})
        store.sync_tables()
    """

    def __init__(self, pool: ConnectionPool, cache: Optional[Cache] = None, dialect: Optional[Dialect] = None):
        self.pool = pool
        self.dialect = dialect or pool.dialect
        if self.dialect is None:
            raise ValueError("Store needs a dialect (pass one, or use a pool built with ConnectionPool.from_url)")
        self.cache = cache if cache is not None else Cache()
        self._entity_types: dict[str, type[Entity]] = {}
        self._queries: dict[str, Query] = {}
        self._lock = threading.RLock()
        # (entity name, id) -> entities holding cached collections
        self._collection_owners: dict[tuple[str, Any], weakref.WeakSet] = {}
        self._owners_lock = threading.Lock()
        self._transactions = TransactionManager(self.pool.acquire, on_rollback=self._forget_rows)
        self._closed = False
        self.pool.start_maintenance()

    @classmethod
    def from_url(
        cls,
        url: str,
        cache: Optional[Cache] = None,
        config: Optional[PoolConfig] = None,
        **pool_options: Any,
    ) -> Store:
        """Store on the database at ``url``; ``pool_options`` override PoolConfig fields."""
        return cls(ConnectionPool.from_url(url, config=config, **pool_options), cache=cache)

    def __repr__(self) -> str:
        return f"<Store {self.dialect} entities={sorted(self._entity_types)}>"

    # entity types

    def define_entity(self, name: str, spec: Optional[dict] = None) -> type[Entity]:
        """Register one entity type and return its class.

        Relations may target already registered types or the type itself; use
        ``define_entities`` for types referencing each other.

        Raises:
            MappingError: invalid mapping, or name already defined.
        """
        return self.define_entities({name: spec})[name]

    def define_entities(self, specs: dict[str, Optional[dict]]) -> dict[str, type[Entity]]:
        """Register several entity types at once; all of them or none.

        Relations may target any type of the group or of the registry.
        """
        with self._lock:
            for name in specs:
                if name in self._entity_types:
                    raise MappingError(f"Entity type `{name}` is already defined")
            known = set(self._entity_types) | set(specs)
            mappings = {name: build_mapping(name, spec, known) for name, spec in specs.items()}

            def lookup(entity_name: str) -> Optional[Mapping]:
                if entity_name in mappings:
                    return mappings[entity_name]
                return self.get_mapping(entity_name)

            for mapping in mappings.values():
                for prop in mapping.collection_properties:
                    try:
                        parse(prop.query, lookup)
                    except QueryError as error:
                        raise MappingError(
                            f"{mapping.entity_name}.{prop.name}: invalid collection query: {error}"
                        ) from error
            entity_types = {name: make_entity_type(self, mapping) for name, mapping in mappings.items()}
            self._entity_types.update(entity_types)
        return entity_types

    def get_entity_type(self, name: str) -> type[Entity]:
        try:
            return self._entity_types[name]
        except KeyError:
            raise KeyError(f"Entity type `{name}` is not defined in {self!r}") from None

    def get_mapping(self, name: str) -> Optional[Mapping]:
        entity_type = self._entity_types.get(name)
        return None if entity_type is None else entity_type.mapping

    @property
    def entities(self) -> dict[str, type[Entity]]:
        return dict(self._entity_types)

    def sync_tables(self) -> list[str]:
        """Create the tables (and sequences) of all entity types that do not exist yet.

        Returns:
            Names of the tables created.
        """
        from .schema import sync_tables  # pylint: disable=import-outside-toplevel
        return sync_tables(self)

    # transactions

    def begin_transaction(self) -> Transaction:
        """Open an explicit transaction for the current thread.

        Raises:
            TransactionError: a transaction is already open in this thread.
        """
        return self._transactions.begin()

    def commit_transaction(self) -> None:
        self._transactions.commit()

    def rollback_transaction(self) -> None:
        self._transactions.rollback()

    def has_transaction(self) -> bool:
        return self._transactions.current() is not None

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self._transactions.transaction() as transaction:
            yield transaction

    # connections and queries

    def get_connection(self, timeout: Optional[float] = None) -> PooledConnection:
        """Check a connection out of the pool; the caller must release it."""
        return self.pool.acquire(timeout)

    def query(self, text: str) -> Query:
        """Parsed and compiled query for ``text`` (built once per text)."""
        with self._lock:
            query = self._queries.get(text)
        if query is None:
            query = Query(self, text)
            with self._lock:
                query = self._queries.setdefault(text, query)
        return query

    def close(self) -> None:
        """Roll back this thread's open transaction, then shut the pool down. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self.has_transaction():
            self._transactions.rollback()
        self.pool.shutdown()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> Store:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # execution

    def _execute(self, target, sql: str, parameters: Iterable[Any] = ()):
        """Run one statement on a transaction or connection and return the cursor."""
        parameters = list(parameters)
        logger.debug("%s %r", sql, parameters)
        try:
            return target.execute(sql, parameters)
        except self.dialect.integrity_errors() as error:
            raise IntegrityError(str(error)) from error

    def _fetch_rows(self, sql: str, parameters: Iterable[Any] = ()) -> list[tuple]:
        with self._transactions.unit() as transaction:
            cursor = self._execute(transaction, sql, parameters)
            try:
                return list(cursor.fetchall())
            finally:
                cursor.close()

    def _id_value(self, value: Any) -> Any:
        return self.dialect.from_db("long", value)

    def _sequence_for(self, mapping: Mapping) -> Optional[str]:
        """Sequence providing ids for mapping, or None when the database generates them."""
        if not self.dialect.has_sequence_support():
            return None
        return mapping.id.sequence or self.dialect.default_sequence_name(
            mapping.table_name, mapping.id.column
        )

    # rows and cache

    def _load_row(self, mapping: Mapping, id: Any) -> Optional[dict[str, Any]]:
        """Row of the entity with the given id, from the cache or the database."""
        key = Key(mapping.entity_name, id)
        transaction = self._transactions.current()
        if transaction is None or key not in transaction.written:
            row = self.cache.get(key)
            if row is not None:
                return dict(row)
        dialect = self.dialect
        columns = ", ".join(dialect.quote(column) for column in mapping.columns)
        table = dialect.qualified_table(mapping.table_name, mapping.schema_name)
        sql = (
            f"SELECT {columns} FROM {table} "
            f"WHERE {dialect.quote(mapping.id.column)} = {dialect.placeholder(0)}"
        )
        rows = self._fetch_rows(sql, [dialect.bind_value(id)])
        if not rows:
            return None
        row = dict(zip(mapping.columns, rows[0]))
        self._remember_row(key, row)
        return row

    def _remember_row(self, key: Key, row: dict[str, Any]) -> None:
        """Cache a row just read, unless it holds uncommitted writes of this thread."""
        transaction = self._transactions.current()
        if transaction is not None:
            if key in transaction.written:
                return
            transaction.loaded_keys.add(key)
        self.cache.put(key, row)

    def _forget_rows(self, transaction: Transaction) -> None:
        for key in transaction.loaded_keys | transaction.written:
            self.cache.invalidate(key)

    # collection owners

    def _register_collection_owner(self, entity: Entity) -> None:
        token = (entity.mapping.entity_name, entity.id)
        with self._owners_lock:
            # owners that were garbage-collected leave empty sets behind
            for stale in [key for key, owners in self._collection_owners.items() if not owners]:
                del self._collection_owners[stale]
            self._collection_owners.setdefault(token, weakref.WeakSet()).add(entity)

    def _invalidate_collections(self, tokens: Iterable[tuple[str, Any]]) -> None:
        """Drop cached collections of the entities identified by ``(entity name, id)`` tokens."""
        owners = []
        with self._owners_lock:
            for token in tokens:
                entities = self._collection_owners.pop(token, None)
                if entities is not None:
                    owners.extend(entities)
        for owner in owners:
            owner.refresh_collections()
