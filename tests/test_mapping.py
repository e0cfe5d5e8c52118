"""Tests for sqlstore.mapping: building and validating mappings."""

import pytest

from sqlstore import MappingError, build_mapping
from sqlstore.mapping import CollectionProperty, ObjectProperty, ScalarProperty
from sqlstore.dialects import SqliteDialect


def test_defaults_derived_from_names():
    mapping = build_mapping("Author", {"properties": {"name": "string"}})
    assert mapping.entity_name == "Author"
    assert mapping.table_name == "author"
    assert mapping.schema_name is None
    assert mapping.id.column == "id"
    assert mapping.id.sequence is None
    name = mapping.get_property("name")
    assert isinstance(name, ScalarProperty)
    assert name.column == "name"
    assert name.type == "string"
    assert name.nullable is True


def test_full_specification():
    mapping = build_mapping("Book", {
        "table": "T_BOOK",
        "schema": "library",
        "id": {"column": "BOOK_ID", "sequence": "BOOK_ID_SEQ"},
        "properties": {
            "title": {"type": "string", "column": "BOOK_TITLE", "length": 200, "nullable": False},
            "available": {"type": "boolean", "default": True},
            "author": {"type": "object", "entity": "Author", "column": "BOOK_F_AUTHOR"},
            "reviews": {"type": "collection", "query": "from Review where Review.book = :book"},
        },
    }, known_entities={"Author", "Review"})
    assert mapping.table_name == "T_BOOK"
    assert mapping.schema_name == "library"
    assert mapping.id.column == "BOOK_ID"
    assert mapping.id.sequence == "BOOK_ID_SEQ"
    title = mapping.get_property("title")
    assert (title.column, title.length, title.nullable) == ("BOOK_TITLE", 200, False)
    assert mapping.get_property("available").default is True
    author = mapping.get_property("author")
    assert isinstance(author, ObjectProperty)
    assert (author.entity, author.column) == ("Author", "BOOK_F_AUTHOR")
    reviews = mapping.get_property("reviews")
    assert isinstance(reviews, CollectionProperty)
    assert reviews.placeholder == "book"
    assert mapping.columns == ("BOOK_ID", "BOOK_TITLE", "available", "BOOK_F_AUTHOR")
    assert [p.name for p in mapping.scalar_properties] == ["title", "available"]
    assert [p.name for p in mapping.object_properties] == ["author"]
    assert [p.name for p in mapping.collection_properties] == ["reviews"]


def test_mapping_is_immutable():
    mapping = build_mapping("Author", {"properties": {"name": "string"}})
    with pytest.raises(Exception):
        mapping.table_name = "other"
    with pytest.raises(Exception):
        mapping.get_property("name").column = "other"


def test_self_reference_is_allowed():
    mapping = build_mapping("Person", {"properties": {"parent": {"type": "object", "entity": "Person"}}})
    assert mapping.get_property("parent").entity == "Person"


def test_missing_property():
    mapping = build_mapping("Author", {})
    assert mapping.find_property("name") is None
    with pytest.raises(KeyError):
        mapping.get_property("name")


@pytest.mark.parametrize("spec,message", [
    ({"properties": {"name": "strin"}}, "unknown type `strin`"),
    ({"properties": {"author": {"type": "object"}}}, "require an `entity`"),
    ({"properties": {"author": {"type": "object", "entity": "Nobody"}}}, "unknown entity type `Nobody`"),
    ({"properties": {"books": {"type": "collection"}}}, "require a `query`"),
    ({"properties": {"books": {"type": "collection", "query": "from Book"}}}, "exactly one"),
    ({"properties": {"books": {"type": "collection", "query": "from Book where Book.a = :a and Book.b = :b"}}}, "exactly one"),
    ({"properties": {"books": {"type": "collection", "query": "from Book where Book.a = ?"}}}, "exactly one"),
    ({"properties": {"books": {"type": "collection", "query": "from Book where Book.a = #"}}}, "invalid query"),
    ({"properties": {"id": "integer"}}, "reserved"),
    ({"properties": {"save": "string"}}, "reserved"),
    ({"properties": {"_secret": "string"}}, "underscore"),
    ({"properties": {"not valid": "string"}}, "not a valid property name"),
    ({"properties": {"name": "string", "Name": "string"}}, "duplicates"),
    ({"properties": {"a": "string", "b": {"type": "string", "column": "a"}}}, "already used"),
    ({"properties": {"a": {"type": "string", "column": "id"}}}, "already used"),
    ({"properties": {"name": {"type": "string", "length": 0}}}, "length"),
    ({"properties": {"name": {"type": "string", "entity": "Author"}}}, "only apply to relations"),
    ({"tabel": "author"}, "tabel"),
    ({"properties": {"name": {"column": "x"}}}, "type"),
])
def test_invalid_specifications(spec, message):
    with pytest.raises(MappingError, match=message):
        build_mapping("Author", spec)


def test_invalid_entity_name():
    with pytest.raises(MappingError):
        build_mapping("not valid", {})


def test_scalar_serialize_and_parse():
    mapping = build_mapping("Flag", {"properties": {"on": "boolean"}})
    prop = mapping.get_property("on")
    dialect = SqliteDialect()
    assert prop.serialize(True, dialect) == 1
    assert prop.parse(0, dialect) is False
    assert prop.parse(None, dialect) is None
