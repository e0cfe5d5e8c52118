"""Explicit transactions around entity saves and removals."""

import threading

import pytest

from sqlstore import EntityState, TransactionError, TypeMismatchError
from tests.helpers import count_rows


def test_commit_fixes_ids(library):
    transaction = library.store.begin_transaction()
    assert library.store.has_transaction()
    author = library.Author(name="Jane")
    author.save()
    assert author.state is EntityState.CLEAN
    assert author.id == 1
    assert not author.key.has_id()
    assert author.key not in library.store.cache
    library.store.commit_transaction()
    assert not transaction.active
    assert not library.store.has_transaction()
    assert author.key.has_id()
    assert author.key.id == 1
    assert library.store.cache.get(author.key)["name"] == "Jane"


def test_saves_share_one_transaction(library):
    with library.store.transaction():
        author = library.Author(name="Jane")
        author.save()
        library.Book(title="Book 1", author=author).save()
        assert library.Book.get(1).author.id == author.id
    assert count_rows(library.store, "book") == 1


def test_rollback_restores_new_entities(library):
    library.store.begin_transaction()
    author = library.Author(name="Jane")
    book = library.Book(title="Book 1", author=author)
    book.save()
    assert book.id is not None
    library.store.rollback_transaction()
    assert book.state is EntityState.TRANSIENT
    assert author.state is EntityState.TRANSIENT
    assert book.id is None
    assert author.id is None
    assert count_rows(library.store, "book") == 0
    assert len(library.store.cache) == 0
    book.save()
    assert book.id is not None
    assert author.id is not None


def test_rollback_restores_changed_entities(library):
    author = library.Author(name="Jane")
    author.save()
    library.store.begin_transaction()
    author.name = "Joan"
    author.save()
    assert library.Author.get(author.id).name == "Joan"
    library.store.rollback_transaction()
    assert author.state is EntityState.DIRTY
    assert author.name == "Joan"
    library.store.cache.clear()
    assert library.Author.get(author.id).name == "Jane"


def test_rollback_restores_removed_entity(library):
    author = library.Author(name="Jane")
    author.save()
    library.store.begin_transaction()
    author.remove()
    assert library.Author.get(author.id) is None
    library.store.rollback_transaction()
    assert author.state is EntityState.CLEAN
    assert library.Author.get(author.id).name == "Jane"


def test_failed_save_rolls_back_the_whole_transaction(library):
    library.store.begin_transaction()
    library.Author(name="Jane").save()
    book = library.Book(title="Book 1", author="not an author")
    with pytest.raises(TypeMismatchError):
        book.save()
    assert not library.store.has_transaction()
    assert count_rows(library.store, "author") == 0
    with pytest.raises(TransactionError):
        library.store.commit_transaction()


def test_context_manager_rolls_back_on_error(library):
    with pytest.raises(RuntimeError):
        with library.store.transaction():
            library.Author(name="Jane").save()
            raise RuntimeError("boom")
    assert not library.store.has_transaction()
    assert count_rows(library.store, "author") == 0


def test_nested_begin_is_rejected(library):
    library.store.begin_transaction()
    with pytest.raises(TransactionError):
        library.store.begin_transaction()
    library.store.rollback_transaction()


def test_commit_and_rollback_without_transaction(library):
    with pytest.raises(TransactionError):
        library.store.commit_transaction()
    with pytest.raises(TransactionError):
        library.store.rollback_transaction()


def test_transactions_are_per_thread(library):
    library.store.begin_transaction()
    seen = {}

    def other_thread():
        seen["has_transaction"] = library.store.has_transaction()

    thread = threading.Thread(target=other_thread)
    thread.start()
    thread.join()
    library.store.rollback_transaction()
    assert seen["has_transaction"] is False


def test_close_rolls_back_open_transaction(library):
    library.store.begin_transaction()
    library.Author(name="Jane").save()
    library.store.close()
    assert library.store.closed
    assert library.store.pool.closed
    library.store.close()
