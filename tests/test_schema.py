"""Table creation: generated DDL per dialect and sync_tables against a database."""

import logging
import sqlite3

import pytest

from sqlstore import ConnectionPool, Store
from sqlstore.dialects import OracleDialect, PostgresDialect
from sqlstore.schema import create_table_sql

LIBRARY = {
    "Author": {"properties": {
        "name": {"type": "string", "nullable": False, "length": 200},
        "latest_book": {"type": "object", "entity": "Book", "column": "latest_book_id"},
    }},
    "Book": {
        "id": {"sequence": "book_seq"},
        "properties": {
            "title": "string",
            "pages": {"type": "integer", "default": 0},
            "author": {"type": "object", "entity": "Author", "column": "author_id", "nullable": False},
        },
    },
}


class RecordingCursor:
    def __init__(self, connection):
        self.connection = connection
        self.lastrowid = None

    def execute(self, sql, parameters=()):
        self.connection.statements.append(sql)

    def fetchone(self):
        return None

    def fetchall(self):
        return []

    def close(self):
        pass


class RecordingConnection:
    """Driver connection on an empty database: nothing exists, every statement succeeds."""

    def __init__(self):
        self.statements = []

    def cursor(self):
        return RecordingCursor(self)

    def commit(self):
        pass

    def rollback(self):
        pass

    def close(self):
        pass


@pytest.fixture
def make_store():
    stores = []

    def make(dialect, connection_factory=lambda: None):
        store = Store(ConnectionPool(connection_factory, dialect=dialect))
        store.define_entities(LIBRARY)
        stores.append(store)
        return store

    yield make
    for store in stores:
        store.close()


def test_sync_tables_creates_missing_tables(library):
    store = library.store
    assert store.sync_tables() == []
    store.define_entity("Publisher", {"properties": {"name": "string"}})
    assert store.sync_tables() == ["publisher"]
    assert store.sync_tables() == []


def test_sync_tables_logs_created_tables(store, caplog):
    store.define_entity("Author", {"properties": {"name": "string"}})
    with caplog.at_level(logging.INFO, logger="sqlstore.schema"):
        store.sync_tables()
    assert "Created table author" in caplog.messages


def test_sync_tables_leaves_existing_tables_alone(store):
    connection = store.get_connection()
    try:
        connection.execute('CREATE TABLE "author" ("id" INTEGER PRIMARY KEY, "name" TEXT, "legacy" TEXT)')
        connection.commit()
    finally:
        connection.release()
    Author = store.define_entity("Author", {"properties": {"name": "string"}})
    assert store.sync_tables() == []
    author = Author(name="Jane")
    author.save()
    assert Author.get(author.id).name == "Jane"


def test_sqlite_ddl(store):
    store.define_entities(LIBRARY)
    assert create_table_sql(store, store.get_mapping("Book")) == (
        'CREATE TABLE "book" (\n'
        '  "id" INTEGER PRIMARY KEY AUTOINCREMENT,\n'
        '  "title" VARCHAR(4000),\n'
        '  "pages" INTEGER,\n'
        '  "author_id" INTEGER NOT NULL,\n'
        '  FOREIGN KEY ("author_id") REFERENCES "author" ("id")\n'
        ")"
    )
    assert create_table_sql(store, store.get_mapping("Author")) == (
        'CREATE TABLE "author" (\n'
        '  "id" INTEGER PRIMARY KEY AUTOINCREMENT,\n'
        '  "name" VARCHAR(200) NOT NULL,\n'
        '  "latest_book_id" INTEGER,\n'
        '  FOREIGN KEY ("latest_book_id") REFERENCES "book" ("id")\n'
        ")"
    )


def test_sqlite_schema_enforces_not_null(store):
    store.define_entities(LIBRARY)
    store.sync_tables()
    connection = store.get_connection()
    try:
        with pytest.raises(sqlite3.IntegrityError, match="NOT NULL"):
            connection.execute(
                'INSERT INTO "book" ("title", "pages", "author_id") VALUES (?, ?, ?)', ("T", 1, None)
            )
        connection.rollback()
    finally:
        connection.release()


def test_postgres_ddl(make_store):
    store = make_store(PostgresDialect())
    assert create_table_sql(store, store.get_mapping("Author")) == (
        'CREATE TABLE "author" (\n'
        '  "id" BIGSERIAL PRIMARY KEY,\n'
        '  "name" varchar(200) NOT NULL,\n'
        '  "latest_book_id" bigint\n'
        ")"
    )
    assert create_table_sql(store, store.get_mapping("Book")) == (
        'CREATE TABLE "book" (\n'
        '  "id" BIGINT PRIMARY KEY,\n'
        '  "title" varchar(4000),\n'
        '  "pages" integer,\n'
        '  "author_id" bigint NOT NULL\n'
        ")"
    )


def test_oracle_ddl(make_store):
    store = make_store(OracleDialect())
    assert store._sequence_for(store.get_mapping("Author")) == "author_id_seq"
    assert store._sequence_for(store.get_mapping("Book")) == "book_seq"
    assert create_table_sql(store, store.get_mapping("Book")) == (
        'CREATE TABLE "book" (\n'
        '  "id" number(19,0) PRIMARY KEY,\n'
        '  "title" varchar2(4000),\n'
        '  "pages" number(10,0),\n'
        '  "author_id" number(19,0) NOT NULL\n'
        ")"
    )


def test_postgres_sync_adds_foreign_keys_after_tables(make_store):
    connection = RecordingConnection()
    store = make_store(PostgresDialect(), lambda: connection)
    assert sorted(store.sync_tables()) == ["author", "book"]

    ddl = [sql for sql in connection.statements if sql.startswith(("CREATE", "ALTER"))]
    assert ddl[0] == 'CREATE SEQUENCE "book_seq"'
    assert sorted(sql.split(" (")[0] for sql in ddl[1:3]) == ['CREATE TABLE "author"', 'CREATE TABLE "book"']
    assert sorted(ddl[3:]) == [
        'ALTER TABLE "author" ADD CONSTRAINT "fk_author_latest_book_id" '
        'FOREIGN KEY ("latest_book_id") REFERENCES "book" ("id")',
        'ALTER TABLE "book" ADD CONSTRAINT "fk_book_author_id" '
        'FOREIGN KEY ("author_id") REFERENCES "author" ("id")',
    ]
