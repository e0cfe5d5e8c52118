"""Saving and removing entities.

``save(root)`` writes the whole graph of new and changed entities reachable
from ``root`` through object relations, in one transaction:

1. collect the graph depth first, once per instance, checking relation values;
2. order the inserts so referenced entities get their ids first; a cycle is
   broken by inserting one nullable foreign key as NULL and patching it with
   an UPDATE once its target exists (non-nullable cycles raise IntegrityError);
3. insert new entities, then patch the deferred foreign keys;
4. update changed entities, writing only the columns whose value changed;
5. publish ids and cache rows when the transaction commits, and restore
   every touched instance if it rolls back.
"""

import logging
from typing import Any, Optional

from .entity import Entity, EntityState
from .errors import IntegrityError, InvalidStateError, TypeMismatchError
from .key import Key
from .mapping import ObjectProperty

logger = logging.getLogger(__name__)


def _snapshot(entity: Entity):
    state = (
        entity._state,
        entity._row,
        dict(entity._values),
        dict(entity._related),
        entity._pending_id,
    )

    def restore():
        (
            entity._state,
            entity._row,
            entity._values,
            entity._related,
            entity._pending_id,
        ) = state

    return restore


class SaveUnit:
    """One invocation of the save algorithm inside ``transaction``."""

    def __init__(self, store, transaction):
        self.store = store
        self.dialect = store.dialect
        self.transaction = transaction
        # (entity, property) pairs inserted as NULL, patched after all inserts
        self.deferred: list[tuple[Entity, ObjectProperty]] = []
        # owner tokens whose cached collections may have changed
        self.owners: set[tuple[str, Any]] = set()

    # graph

    def _relation_value(self, entity: Entity, prop: ObjectProperty) -> Optional[Entity]:
        """Current target of a relation; only assigned values are type checked."""
        if prop.name not in entity._values:
            target = entity._related.get(prop.name)
            if target is not None and target._state is EntityState.REMOVED:
                return None
            return target
        value = entity._values[prop.name]
        if value is None:
            return None
        if (
            not isinstance(value, Entity)
            or value.mapping.entity_name != prop.entity
            or value.store is not self.store
        ):
            raise TypeMismatchError(entity.mapping.entity_name, prop.name, prop.entity, value)
        if value._state is EntityState.REMOVED:
            raise InvalidStateError(
                f"{entity.mapping.entity_name}.{prop.name} refers to a removed {prop.entity}"
            )
        return value

    def collect(self, root: Entity) -> list[Entity]:
        """Entities reachable from root, each once, in depth-first order."""
        visited: set[int] = set()
        found: list[Entity] = []
        stack = [root]
        while stack:
            entity = stack.pop()
            if id(entity) in visited:
                continue
            visited.add(id(entity))
            found.append(entity)
            for prop in reversed(entity.mapping.object_properties):
                target = self._relation_value(entity, prop)
                if target is not None:
                    stack.append(target)
        return found

    def _order_inserts(self, new: list[Entity]) -> list[Entity]:
        """Order new entities so each one comes after the new entities it references."""
        pending = {id(entity): entity for entity in new}
        dependencies: dict[int, dict[str, Entity]] = {}
        for entity in new:
            dependencies[id(entity)] = {
                prop.name: target
                for prop in entity.mapping.object_properties
                if (target := self._relation_value(entity, prop)) is not None
                and id(target) in pending
                and target is not entity
            }
            # a self reference is known once the row exists
            for prop in entity.mapping.object_properties:
                if self._relation_value(entity, prop) is entity:
                    self._defer(entity, prop)

        ordered: list[Entity] = []
        while pending:
            ready = [
                entity for key, entity in pending.items()
                if all(id(target) not in pending for target in dependencies[key].values())
            ]
            if not ready:
                entity, prop = self._find_breakable_edge(pending, dependencies)
                del dependencies[id(entity)][prop.name]
                self._defer(entity, prop)
                continue
            for entity in ready:
                ordered.append(entity)
                del pending[id(entity)]
        return ordered

    def _defer(self, entity: Entity, prop: ObjectProperty) -> None:
        if not prop.nullable:
            raise IntegrityError(
                f"Cannot save {entity.mapping.entity_name}: non-nullable relation "
                f"`{prop.name}` is part of a reference cycle between new entities"
            )
        self.deferred.append((entity, prop))

    def _find_breakable_edge(self, pending, dependencies) -> tuple[Entity, ObjectProperty]:
        def reaches(start: Entity, goal: Entity) -> bool:
            seen = set()
            stack = [start]
            while stack:
                current = stack.pop()
                if current is goal:
                    return True
                if id(current) in seen or id(current) not in pending:
                    continue
                seen.add(id(current))
                stack.extend(dependencies[id(current)].values())
            return False

        cycle_members = []
        for entity in pending.values():
            for name, target in dependencies[id(entity)].items():
                if id(target) not in pending or not reaches(target, entity):
                    continue
                prop = entity.mapping.get_property(name)
                if prop.nullable:
                    return entity, prop
                cycle_members.append(f"{entity.mapping.entity_name}.{name}")
        raise IntegrityError(
            "Cannot resolve reference cycle between new entities: "
            f"foreign keys {', '.join(sorted(set(cycle_members)))} are not nullable"
        )

    # statements

    def _execute(self, sql: str, values: list):
        return self.store._execute(self.transaction, sql, values)

    def _table(self, entity: Entity) -> str:
        mapping = entity.mapping
        return self.dialect.qualified_table(mapping.table_name, mapping.schema_name)

    def _foreign_key(self, entity: Entity, prop: ObjectProperty) -> Any:
        if (entity, prop) in self.deferred:
            return None
        target = self._relation_value(entity, prop)
        return None if target is None else target.id

    def insert(self, entity: Entity) -> None:
        mapping = entity.mapping
        row: dict[str, Any] = {}
        for prop in mapping.properties:
            if isinstance(prop, ObjectProperty):
                row[prop.column] = self._foreign_key(entity, prop)
                if row[prop.column] is not None:
                    self.owners.add((prop.entity, row[prop.column]))
            elif prop.kind == "scalar":
                value = entity._values.get(prop.name, prop.default)
                row[prop.column] = prop.serialize(value, self.dialect)

        sequence = self.store._sequence_for(mapping)
        if sequence:
            sql = self.dialect.sql_next_sequence_value(sequence, mapping.schema_name)
            cursor = self._execute(sql, [])
            try:
                new_id = self.store._id_value(cursor.fetchone()[0])
            finally:
                cursor.close()
            row = {mapping.id.column: new_id, **row}
            sql = self.dialect.sql_insert(self._table(entity), list(row))
            self._execute(sql, list(row.values())).close()
        else:
            sql = self.dialect.sql_insert(self._table(entity), list(row))
            sql += self.dialect.sql_insert_returning(mapping.id.column)
            cursor = self._execute(sql, list(row.values()))
            try:
                new_id = self.store._id_value(self.dialect.generated_id(cursor, mapping.id.column))
            finally:
                cursor.close()
            row = {mapping.id.column: new_id, **row}
        entity._pending_id = new_id
        entity._row = row

    def patch_deferred(self) -> None:
        for entity, prop in self.deferred:
            target = self._relation_value(entity, prop)
            mapping = entity.mapping
            p0, p1 = self.dialect.placeholders(2)
            sql = (
                f"UPDATE {self._table(entity)} SET {self.dialect.quote(prop.column)} = {p0} "
                f"WHERE {self.dialect.quote(mapping.id.column)} = {p1}"
            )
            self._execute(sql, [target.id, entity.id]).close()
            entity._row[prop.column] = target.id
            self.owners.add((prop.entity, target.id))

    def update(self, entity: Entity) -> None:
        """Write the columns whose value differs from the last known row."""
        row = entity._load()
        changes: dict[str, Any] = {}
        for name, value in entity._values.items():
            prop = entity.mapping.get_property(name)
            if isinstance(prop, ObjectProperty):
                target = self._relation_value(entity, prop)
                value = None if target is None else target.id
                if row[prop.column] is not None:
                    self.owners.add((prop.entity, self.store._id_value(row[prop.column])))
                if value is not None:
                    self.owners.add((prop.entity, value))
            else:
                value = prop.serialize(value, self.dialect)
            if row[prop.column] != value:
                changes[prop.column] = value
        if not changes:
            logger.debug("%s unchanged, no UPDATE", entity.key)
            return
        mapping = entity.mapping
        placeholders = self.dialect.placeholders(len(changes) + 1)
        assignments = ", ".join(
            f"{self.dialect.quote(column)} = {placeholder}"
            for column, placeholder in zip(changes, placeholders)
        )
        sql = (
            f"UPDATE {self._table(entity)} SET {assignments} "
            f"WHERE {self.dialect.quote(mapping.id.column)} = {placeholders[-1]}"
        )
        self._execute(sql, [*changes.values(), entity.id]).close()
        entity._row = {**row, **changes}

    # algorithm

    def run(self, root: Entity) -> None:
        if root._state is EntityState.REMOVED:
            root._check_usable()
        graph = self.collect(root)
        new = [entity for entity in graph if entity._state is EntityState.TRANSIENT]
        changed = [entity for entity in graph if entity._state is EntityState.DIRTY]
        touched = new + changed
        if not touched:
            return

        for entity in touched:
            self.transaction.on_rollback(_snapshot(entity))

        for entity in self._order_inserts(new):
            self.insert(entity)
        self.patch_deferred()
        for entity in changed:
            self.update(entity)

        for entity in touched:
            self._finish(entity, is_new=entity._state is EntityState.TRANSIENT)
        self.store._invalidate_collections(self.owners)
        owners = set(self.owners)
        self.transaction.on_commit(lambda: self.store._invalidate_collections(owners))
        self.transaction.on_rollback(lambda: self.store._invalidate_collections(owners))

    def _finish(self, entity: Entity, is_new: bool) -> None:
        for prop in entity.mapping.object_properties:
            if prop.name in entity._values:
                entity._related[prop.name] = self._relation_value(entity, prop)
        entity._values = {}
        entity._state = EntityState.CLEAN
        self.owners.add((entity.mapping.entity_name, entity.id))
        self.transaction.written.add(Key(entity.mapping.entity_name, entity.id))

        row = dict(entity._row)
        store = self.store

        def publish():
            if is_new and not entity._key.has_id():
                entity._key.with_id(entity._pending_id)
                entity._pending_id = None
            store.cache.put(entity._key, row)

        self.transaction.on_commit(publish)


def save(entity: Entity) -> None:
    """Save entity and the new or changed entities it references, atomically."""
    store = entity.store
    with store._transactions.unit() as transaction:
        SaveUnit(store, transaction).run(entity)


def remove(entity: Entity) -> None:
    """Delete entity's row; the row's cache entry is evicted on commit."""
    entity._check_usable()
    if entity._state is EntityState.TRANSIENT:
        entity._state = EntityState.REMOVED
        return
    store = entity.store
    dialect = store.dialect
    mapping = entity.mapping
    with store._transactions.unit() as transaction:
        row = entity._load()
        transaction.on_rollback(_snapshot(entity))
        table = dialect.qualified_table(mapping.table_name, mapping.schema_name)
        sql = f"DELETE FROM {table} WHERE {dialect.quote(mapping.id.column)} = {dialect.placeholder(0)}"
        store._execute(transaction, sql, [entity.id]).close()
        entity._state = EntityState.REMOVED

        owners = {(mapping.entity_name, entity.id)}
        for prop in mapping.object_properties:
            if row[prop.column] is not None:
                owners.add((prop.entity, store._id_value(row[prop.column])))
        transaction.written.add(Key(mapping.entity_name, entity.id))
        store._invalidate_collections(owners)
        key = entity.key

        def evict():
            store.cache.invalidate(key)
            store._invalidate_collections(owners)

        transaction.on_commit(evict)
        transaction.on_rollback(lambda: store._invalidate_collections(owners))
