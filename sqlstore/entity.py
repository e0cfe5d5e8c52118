"""Entity instances and the classes generated for each defined entity type.

    Author = store.define_entity("Author", {"properties": {"name": "string"}})
    author = Author(name="Jane")
    author.save()
    Author.get(author.id).name  # loaded lazily, through the cache

An entity obtained with ``get`` or ``reference`` or through a relation holds
its Key; its row is read on first access to a scalar property.
"""

from __future__ import annotations

import enum
from typing import Any, ClassVar, Optional

from .errors import InvalidStateError, NotFoundError
from .key import Key
from .mapping import CollectionProperty, Mapping, ObjectProperty, ScalarProperty


class EntityState(enum.Enum):
    TRANSIENT = "transient"
    """Never saved; has no id."""
    CLEAN = "clean"
    DIRTY = "dirty"
    """Saved, with property changes not written yet."""
    REMOVED = "removed"
    """Deleted (or found missing); no further use is possible."""


class PropertyAccessor:
    """Data descriptor giving attribute access to one mapped property."""

    def __init__(self, prop: ScalarProperty | ObjectProperty | CollectionProperty):
        self.prop = prop

    def __get__(self, instance: Optional[Entity], owner: type) -> Any:
        if instance is None:
            return self
        return instance._get_property(self.prop)

    def __set__(self, instance: Entity, value: Any) -> None:
        instance._set_property(self.prop, value)

    def __repr__(self) -> str:
        return f"<PropertyAccessor {self.prop.kind} {self.prop.name}>"


class Entity:
    """Base class of every generated entity type."""

    mapping: ClassVar[Mapping]
    store: ClassVar[Any]

    def __init__(self, **values: Any):
        self._init_instance(Key(self.mapping.entity_name), EntityState.TRANSIENT)
        for name, value in values.items():
            if self.mapping.find_property(name) is None:
                raise TypeError(f"{type(self).__name__}() got an unexpected keyword argument '{name}'")
            setattr(self, name, value)

    def _init_instance(self, key: Key, state: EntityState) -> None:
        self._key = key
        self._state = state
        # column -> value as stored; None until loaded
        self._row: Optional[dict[str, Any]] = None
        # property name -> value assigned since the last save
        self._values: dict[str, Any] = {}
        # object property name -> loaded target entity (or None)
        self._related: dict[str, Any] = {}
        # collection property name -> cached result
        self._collections: dict[str, list] = {}
        # id assigned inside a transaction that has not been committed yet
        self._pending_id: Any = None
        self._vanished = False

    # identity and state

    @property
    def key(self) -> Key:
        return self._key

    @property
    def id(self) -> Any:
        if self._key.has_id():
            return self._key.id
        return self._pending_id

    @property
    def state(self) -> EntityState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        """True once the row behind this entity has been read (or written)."""
        return self._row is not None

    def __repr__(self) -> str:
        identity = self.id if self.id is not None else "new"
        return f"<{type(self).__name__}#{identity} {self._state.value}>"

    # lifecycle

    def save(self) -> None:
        """Insert or update this entity and every new or changed entity it references."""
        from .persistence import save  # pylint: disable=import-outside-toplevel
        save(self)

    def remove(self) -> None:
        """Delete this entity's row. The instance is unusable afterwards."""
        from .persistence import remove  # pylint: disable=import-outside-toplevel
        remove(self)

    def refresh_collections(self) -> None:
        """Forget cached collection results; they are queried again on next access."""
        self._collections.clear()

    # property access

    def _check_usable(self) -> None:
        if self._vanished:
            raise NotFoundError(f"{self._key} no longer exists")
        if self._state is EntityState.REMOVED:
            raise InvalidStateError(f"{type(self).__name__} has been removed")

    def _load(self) -> dict[str, Any]:
        if self._row is None:
            row = self.store._load_row(self.mapping, self.id)
            if row is None:
                self._state = EntityState.REMOVED
                self._vanished = True
                raise NotFoundError(f"{self._key} no longer exists")
            self._row = row
        return self._row

    def _get_property(self, prop) -> Any:
        self._check_usable()
        if isinstance(prop, CollectionProperty):
            return self._get_collection(prop)
        if prop.name in self._values:
            return self._values[prop.name]
        if isinstance(prop, ObjectProperty):
            if prop.name in self._related:
                return self._related[prop.name]
            if self._state is EntityState.TRANSIENT:
                return None
            foreign_key = self._load()[prop.column]
            target = None
            if foreign_key is not None:
                target_type = self.store.get_entity_type(prop.entity)
                target = target_type.reference(self.store._id_value(foreign_key))
            self._related[prop.name] = target
            return target
        if self._state is EntityState.TRANSIENT:
            return prop.default
        return prop.parse(self._load()[prop.column], self.store.dialect)

    def _get_collection(self, prop: CollectionProperty) -> list:
        if prop.name not in self._collections:
            if self.id is None:
                return []
            query = self.store.query(prop.query)
            self._collections[prop.name] = query.select({prop.placeholder: self.id})
            self.store._register_collection_owner(self)
        return list(self._collections[prop.name])

    def _set_property(self, prop, value: Any) -> None:
        if isinstance(prop, CollectionProperty):
            raise AttributeError(f"{type(self).__name__}.{prop.name} is a read-only collection")
        self._check_usable()
        self._values[prop.name] = value
        if self._state is EntityState.CLEAN:
            self._state = EntityState.DIRTY

    # type-level operations

    @classmethod
    def get(cls, id: Any) -> Optional[Entity]:
        """Load the entity with the given id, or None when there is no such row."""
        row = cls.store._load_row(cls.mapping, id)
        if row is None:
            return None
        entity = cls.reference(id)
        entity._row = row
        return entity

    @classmethod
    def reference(cls, id: Any) -> Entity:
        """Unloaded handle on the entity with the given id; nothing is read yet."""
        if id is None:
            raise ValueError(f"{cls.__name__}.reference() requires an id")
        entity = cls.__new__(cls)
        entity._init_instance(Key(cls.mapping.entity_name, id), EntityState.CLEAN)
        return entity

    @classmethod
    def all(cls) -> list:
        name = cls.mapping.entity_name
        return cls.store.query(f"from {name} order by {name}.id").select()

    @classmethod
    def query(cls, where: Optional[str] = None):
        """Query over this entity type, e.g. ``Book.query("Book.pages > :min")``."""
        text = f"from {cls.mapping.entity_name}"
        if where:
            text = f"{text} where {where}"
        return cls.store.query(text)

    @classmethod
    def _from_row(cls, row: dict[str, Any]) -> Entity:
        """Entity for a row selected from this type's table; the row is cached."""
        entity = cls.reference(cls.store._id_value(row[cls.mapping.id.column]))
        entity._row = row
        cls.store._remember_row(entity.key, row)
        return entity


def make_entity_type(store: Any, mapping: Mapping) -> type[Entity]:
    """Create the Entity subclass for a mapping, bound to a store."""
    namespace: dict[str, Any] = {
        "mapping": mapping,
        "store": store,
        "__module__": __name__,
        "__doc__": f"Entity type {mapping.entity_name} (table {mapping.table_name}).",
    }
    for prop in mapping.properties:
        namespace[prop.name] = PropertyAccessor(prop)
    return type(mapping.entity_name, (Entity,), namespace)
