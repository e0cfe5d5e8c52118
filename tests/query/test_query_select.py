"""Running queries against a SQLite store."""

import logging

import pytest

from sqlstore import ParameterError, QueryParseError, QueryReferenceError
from tests.helpers import logged_statements


@pytest.fixture
def shelf(library):
    """Three authors, one without books, and four books; all committed."""
    jane, john, nobody = (library.Author(name=name) for name in ("Jane", "John", "Nobody"))
    for author in (jane, john, nobody):
        author.save()
    for title, pages, author in (
        ("Dune", 412, jane),
        ("Emma", 474, jane),
        ("Ubik", 202, john),
        ("Kim", 368, john),
    ):
        library.Book(title=title, pages=pages, author=author).save()
    return library


def titles(books):
    return [book.title for book in books]


def test_select_named_parameters(shelf):
    query = shelf.store.query("from Book where Book.pages > :min order by Book.pages desc")
    assert titles(query.select({"min": 300})) == ["Emma", "Dune", "Kim"]
    assert titles(query.select({"min": 450})) == ["Emma"]


def test_select_positional_parameters(shelf):
    query = shelf.store.query("from Book where pages > ? and pages < ? order by title")
    assert titles(query.select([300, 450])) == ["Dune", "Kim"]


def test_select_returns_entities_of_the_root_type(shelf):
    books = shelf.store.query("from Book where title = 'Dune'").select()
    assert len(books) == 1
    assert isinstance(books[0], shelf.Book)
    assert books[0].is_loaded
    assert books[0].author.name == "Jane"


def test_selected_rows_are_cached(shelf, caplog):
    shelf.store.cache.clear()
    book = shelf.store.query("from Book where title = 'Kim'").first()
    caplog.set_level(logging.DEBUG, logger="sqlstore")
    assert shelf.Book.get(book.id).title == "Kim"
    assert logged_statements(caplog) == []


def test_entity_parameter_binds_its_id(shelf):
    john = shelf.Author.get(2)
    query = shelf.store.query("from Book where Book.author = :author order by Book.title")
    assert titles(query.select({"author": john})) == ["Kim", "Ubik"]
    assert titles(query.select({"author": 2})) == ["Kim", "Ubik"]


def test_unsaved_entity_parameter(shelf):
    query = shelf.store.query("from Book where Book.author = :author")
    with pytest.raises(ParameterError, match="unsaved Author"):
        query.select({"author": shelf.Author(name="New")})


def test_inner_join(shelf):
    query = shelf.store.query(
        "from Book inner join Author on Book.author = Author.id "
        "where Author.name like :name order by Book.title"
    )
    assert titles(query.select({"name": "Ja%"})) == ["Dune", "Emma"]


def test_outer_join(shelf):
    query = shelf.store.query(
        "from Author left outer join Book on Book.author = Author.id where Book.id is null"
    )
    assert [author.name for author in query.select()] == ["Nobody"]


def test_null_relation(shelf):
    shelf.Book(title="Anonymous").save()
    assert titles(shelf.store.query("from Book where author is null").select()) == ["Anonymous"]
    assert len(shelf.store.query("from Book where not (author is null)").select()) == 4


def test_pagination(shelf):
    query = shelf.store.query("from Book order by Book.title")
    assert titles(query.select(limit=2)) == ["Dune", "Emma"]
    assert titles(query.select(limit=2, offset=1)) == ["Emma", "Kim"]
    assert titles(query.select(offset=3)) == ["Ubik"]
    assert titles(query.select(limit=0)) == []
    with pytest.raises(ValueError, match="limit must be a non-negative integer"):
        query.select(limit=-1)


def test_first(shelf):
    query = shelf.store.query("from Book where pages > :min order by pages")
    assert query.first({"min": 300}).title == "Kim"
    assert query.first({"min": 1000}) is None


def test_entity_query_helper(shelf):
    assert titles(shelf.Book.query("Book.pages < :max").select({"max": 300})) == ["Ubik"]
    assert len(shelf.Book.query().select()) == 4
    assert shelf.Book.query().sql.startswith('SELECT "Book"."id"')


def test_all(shelf):
    assert [author.name for author in shelf.Author.all()] == ["Jane", "John", "Nobody"]


def test_store_caches_queries(shelf):
    text = "from Book where title = :title"
    query = shelf.store.query(text)
    assert shelf.store.query(text) is query
    assert query.entity_type is shelf.Book
    assert shelf.store.query(text + " ") is not query


def test_malformed_queries_fail_at_construction(library):
    with pytest.raises(QueryParseError):
        library.store.query("from Book where")
    with pytest.raises(QueryReferenceError):
        library.store.query("from Magazine")


def test_parameter_error_rolls_back_transaction(shelf):
    shelf.store.begin_transaction()
    book = shelf.Book(title="Draft")
    book.save()
    with pytest.raises(ParameterError):
        shelf.store.query("from Book where title = :title").select({})
    assert not shelf.store.has_transaction()
    assert book.id is None
    assert len(shelf.Book.all()) == 4


def test_select_sees_uncommitted_writes_of_the_transaction(shelf):
    with shelf.store.transaction():
        shelf.Book(title="Draft", pages=1).save()
        assert titles(shelf.store.query("from Book where pages < 10").select()) == ["Draft"]
    assert titles(shelf.store.query("from Book where pages < 10").select()) == ["Draft"]
