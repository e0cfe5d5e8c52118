"""Declarative entity mappings.

A mapping specification is a plain dict (or the equivalent pydantic models)
describing the table, id column and properties of one entity type:

    {
        "table": "book",
        "id": {"column": "book_id", "sequence": "book_id_seq"},
        "properties": {
            "title": "string",
            "pages": {"type": "integer", "nullable": False},
            "author": {"type": "object", "entity": "Author", "column": "author_id"},
            "chapters": {"type": "collection", "query": "from Chapter where Chapter.book = :id"},
        },
    }

``build_mapping`` validates it once, at definition time, and returns an
immutable ``Mapping`` whose properties are one of three tagged descriptor
kinds: ``ScalarProperty``, ``ObjectProperty`` and ``CollectionProperty``.
"""

from __future__ import annotations

import keyword
from typing import Annotated, Any, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .dialects.base import ABSTRACT_TYPES
from .errors import MappingError, QueryParseError
from .query.lexer import has_positional_parameters, named_parameters

RELATION_TYPES = ("object", "collection")

RESERVED_NAMES = frozenset((
    "id", "key", "state", "save", "remove", "get", "all", "reference", "query",
    "mapping", "store", "is_loaded", "refresh_collections",
))
"""Names taken by the entity API; properties cannot use them."""


# mapping input

class IdSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    column: str = "id"
    sequence: Optional[str] = None


class PropertySpec(BaseModel):
    """One property of a mapping specification."""

    model_config = ConfigDict(extra="forbid")

    type: str
    """Abstract scalar type, ``object`` or ``collection``."""
    column: Optional[str] = None
    nullable: bool = True
    length: Optional[int] = Field(default=None, gt=0)
    default: Any = None
    entity: Optional[str] = None
    """Target entity type of an ``object`` relation."""
    query: Optional[str] = None
    """Query of a ``collection`` relation, with one ``:name`` placeholder for the owner id."""


class MappingSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    table: Optional[str] = None
    schema_name: Optional[str] = Field(default=None, alias="schema")
    id: IdSpec = Field(default_factory=IdSpec)
    properties: dict[str, Union[str, PropertySpec]] = Field(default_factory=dict)


# descriptors (output)

class ScalarProperty(BaseModel):
    """Property stored as a single column of an abstract type."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["scalar"] = "scalar"
    name: str
    type: str
    column: str
    nullable: bool = True
    length: Optional[int] = None
    default: Any = None

    def serialize(self, value: Any, dialect) -> Any:
        """Python value -> value bound to the driver."""
        return dialect.to_db(self.type, value)

    def parse(self, value: Any, dialect) -> Any:
        """Value read from the driver -> Python value."""
        return dialect.from_db(self.type, value)


class ObjectProperty(BaseModel):
    """Reference to one entity of another (or the same) type, through a foreign key column."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["object"] = "object"
    name: str
    column: str
    entity: str
    nullable: bool = True


class CollectionProperty(BaseModel):
    """Read-only list of entities returned by a query bound to the owner's id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["collection"] = "collection"
    name: str
    query: str
    placeholder: str


PropertyDescriptor = Annotated[
    Union[ScalarProperty, ObjectProperty, CollectionProperty],
    Field(discriminator="kind"),
]


class IdMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str = "id"
    sequence: Optional[str] = None


class Mapping(BaseModel):
    """Immutable, validated schema of one entity type."""

    model_config = ConfigDict(frozen=True)

    entity_name: str
    table_name: str
    schema_name: Optional[str] = None
    id: IdMapping = IdMapping()
    properties: tuple[PropertyDescriptor, ...] = ()

    def find_property(self, name: str) -> Optional[ScalarProperty | ObjectProperty | CollectionProperty]:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def get_property(self, name: str) -> ScalarProperty | ObjectProperty | CollectionProperty:
        prop = self.find_property(name)
        if prop is None:
            raise KeyError(f"{self.entity_name} has no property `{name}`")
        return prop

    @property
    def scalar_properties(self) -> tuple[ScalarProperty, ...]:
        return tuple(p for p in self.properties if isinstance(p, ScalarProperty))

    @property
    def object_properties(self) -> tuple[ObjectProperty, ...]:
        return tuple(p for p in self.properties if isinstance(p, ObjectProperty))

    @property
    def collection_properties(self) -> tuple[CollectionProperty, ...]:
        return tuple(p for p in self.properties if isinstance(p, CollectionProperty))

    @property
    def columns(self) -> tuple[str, ...]:
        """Id column first, then the columns of scalar and object properties in declaration order."""
        return (self.id.column,) + tuple(
            p.column for p in self.properties if not isinstance(p, CollectionProperty)
        )


def _validation_message(error: ValidationError) -> str:
    messages = []
    for details in error.errors():
        location = ".".join(str(part) for part in details["loc"])
        messages.append(f"{location}: {details['msg']}" if location else details["msg"])
    return "; ".join(messages)


def _check_name(entity_name: str, name: str) -> None:
    if not name.isidentifier() or keyword.iskeyword(name):
        raise MappingError(f"{entity_name}: `{name}` is not a valid property name")
    if name.startswith("_"):
        raise MappingError(f"{entity_name}.{name}: property names cannot start with an underscore")
    if name in RESERVED_NAMES:
        raise MappingError(f"{entity_name}.{name}: `{name}` is reserved by the entity API")


def _build_property(entity_name: str, name: str, spec: PropertySpec, known_entities: Iterable[str]):
    if spec.type == "object":
        if not spec.entity:
            raise MappingError(f"{entity_name}.{name}: object relations require an `entity`")
        if spec.entity not in known_entities:
            raise MappingError(f"{entity_name}.{name}: unknown entity type `{spec.entity}`")
        return ObjectProperty(
            name=name,
            column=spec.column or name,
            entity=spec.entity,
            nullable=spec.nullable,
        )
    if spec.type == "collection":
        if not spec.query:
            raise MappingError(f"{entity_name}.{name}: collection relations require a `query`")
        try:
            placeholders = named_parameters(spec.query)
            positional = has_positional_parameters(spec.query)
        except QueryParseError as error:
            raise MappingError(f"{entity_name}.{name}: invalid query: {error}") from error
        if positional or len(placeholders) != 1:
            raise MappingError(
                f"{entity_name}.{name}: collection query must declare exactly one "
                f"named placeholder for the owner id, found {placeholders or 'none'}"
            )
        return CollectionProperty(name=name, query=spec.query, placeholder=placeholders[0])
    if spec.type not in ABSTRACT_TYPES:
        raise MappingError(
            f"{entity_name}.{name}: unknown type `{spec.type}` "
            f"(expected one of {', '.join(ABSTRACT_TYPES + RELATION_TYPES)})"
        )
    if spec.entity or spec.query:
        raise MappingError(f"{entity_name}.{name}: `entity` and `query` only apply to relations")
    return ScalarProperty(
        name=name,
        type=spec.type,
        column=spec.column or name,
        nullable=spec.nullable,
        length=spec.length,
        default=spec.default,
    )


def build_mapping(entity_name: str, spec: dict | MappingSpec, known_entities: Iterable[str] = ()) -> Mapping:
    """Validate a mapping specification and build its Mapping.

    Args:
        entity_name: Name of the entity type being defined.
        spec: Mapping specification (dict or MappingSpec).
        known_entities: Entity names object relations may target, besides
            ``entity_name`` itself.

    Raises:
        MappingError: on any invalid or inconsistent part of the mapping.
    """
    if not entity_name or not entity_name.isidentifier():
        raise MappingError(f"`{entity_name}` is not a valid entity name")
    if spec is None:
        spec = {}
    if not isinstance(spec, MappingSpec):
        try:
            spec = MappingSpec.model_validate(spec)
        except ValidationError as error:
            raise MappingError(f"{entity_name}: {_validation_message(error)}") from error
    known_entities = set(known_entities) | {entity_name}

    properties = []
    seen_names: dict[str, str] = {}
    seen_columns = {spec.id.column.lower(): "id"}
    for name, property_spec in spec.properties.items():
        _check_name(entity_name, name)
        if name.lower() in seen_names:
            raise MappingError(
                f"{entity_name}: property `{name}` duplicates `{seen_names[name.lower()]}`"
            )
        seen_names[name.lower()] = name
        if isinstance(property_spec, str):
            property_spec = PropertySpec(type=property_spec)
        prop = _build_property(entity_name, name, property_spec, known_entities)
        if not isinstance(prop, CollectionProperty):
            column = prop.column.lower()
            if column in seen_columns:
                raise MappingError(
                    f"{entity_name}.{name}: column `{prop.column}` is already "
                    f"used by `{seen_columns[column]}`"
                )
            seen_columns[column] = name
        properties.append(prop)

    return Mapping(
        entity_name=entity_name,
        table_name=spec.table or entity_name.lower(),
        schema_name=spec.schema_name,
        id=IdMapping(column=spec.id.column, sequence=spec.id.sequence),
        properties=tuple(properties),
    )
