import pytest

from sqlstore import build_mapping

MAPPINGS = {
    "Author": build_mapping("Author", {"properties": {
        "name": "string",
        "latest_book": {"type": "object", "entity": "Book", "column": "latest_book_id"},
        "books": {"type": "collection", "query": "from Book where Book.author = :author"},
    }}, known_entities={"Book"}),
    "Book": build_mapping("Book", {"properties": {
        "title": "string",
        "pages": "integer",
        "author": {"type": "object", "entity": "Author", "column": "author_id"},
    }}, known_entities={"Author"}),
    "Relation": build_mapping("Relation", {"table": "author_book", "schema": "library", "properties": {
        "author": {"type": "object", "entity": "Author"},
        "book": {"type": "object", "entity": "Book"},
    }}, known_entities={"Author", "Book"}),
    "Order": build_mapping("Order", {"properties": {
        "total": "integer",
        "buyer": {"type": "object", "entity": "Author"},
    }}, known_entities={"Author"}),
}


@pytest.fixture
def lookup():
    """Entity name -> Mapping, without any Store."""
    return MAPPINGS.get
