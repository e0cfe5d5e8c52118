from types import SimpleNamespace

import pytest

from sqlstore import Store


@pytest.fixture(scope="function")
def store(tmp_path):
    """Store on a fresh SQLite file, closed after the test."""
    store = Store.from_url(f"sqlite:///{tmp_path / 'test.sqlite3'}")
    yield store
    store.close()


@pytest.fixture(scope="function")
def library(store):
    """Author and Book types referencing each other, with their tables created."""
    types = store.define_entities({
        "Author": {
            "properties": {
                "name": "string",
                "latest_book": {"type": "object", "entity": "Book", "column": "latest_book_id"},
                "books": {
                    "type": "collection",
                    "query": "from Book where Book.author = :author order by Book.id",
                },
            },
        },
        "Book": {
            "properties": {
                "title": "string",
                "pages": {"type": "integer", "default": 0},
                "author": {"type": "object", "entity": "Author", "column": "author_id"},
            },
        },
    })
    store.sync_tables()
    return SimpleNamespace(store=store, **types)
