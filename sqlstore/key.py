"""Entity identity: entity type name plus primary key value."""

from typing import Any

from .errors import ImmutableKeyError


class Key:
    """Identity of an entity. The id can be assigned once, never changed.

    Equality and hashing include the id, so a key without an id must not be
    used in a set or as a dict key before ``with_id``: it would no longer be
    found afterwards.
    """

    __slots__ = ("_entity_type", "_id")

    def __init__(self, entity_type: str, id: Any = None):
        self._entity_type = entity_type
        self._id = id

    @property
    def entity_type(self) -> str:
        return self._entity_type

    @property
    def id(self) -> Any:
        return self._id

    @id.setter
    def id(self, value: Any) -> None:
        self.with_id(value)

    def has_id(self) -> bool:
        return self._id is not None

    def with_id(self, id: Any) -> "Key":
        """Assign the id of an unsaved key and return the key.

        Raises:
            ImmutableKeyError: the key already has an id.
        """
        if self._id is not None:
            raise ImmutableKeyError(
                f"Cannot change id of {self} to {id!r}: keys are immutable once assigned"
            )
        if id is None:
            raise ValueError("Cannot assign None as a key id")
        self._id = id
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return (self._entity_type, self._id) == (other._entity_type, other._id)

    def __hash__(self) -> int:
        return hash((self._entity_type, self._id))

    def __str__(self) -> str:
        return f"{self._entity_type}#{self._id}"

    def __repr__(self) -> str:
        return f"Key({self._entity_type!r}, {self._id!r})"
