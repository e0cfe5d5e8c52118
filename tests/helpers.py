"""Shared test helpers."""

import logging

from sqlstore import Entity


def assert_entity(entity, expected: dict):
    """Assert every mapped (non-collection) property of an entity matches expected.

    For relations, pass the expected entity (compared by id) or None.
    """
    for prop in entity.mapping.properties:
        if prop.kind == "collection":
            continue
        assert prop.name in expected, f"Test must assert {prop.name}"
        actual = getattr(entity, prop.name)
        exp = expected[prop.name]
        if isinstance(exp, Entity):
            assert isinstance(actual, Entity), f"{prop.name}: expected entity, got {actual!r}"
            assert actual.id == exp.id, f"{prop.name}: expected id {exp.id}, got {actual.id}"
        else:
            assert actual == exp, f"{prop.name}: got {actual!r}, expected {exp!r}"


def logged_statements(caplog) -> list[str]:
    """SQL statements logged by the store so far (requires caplog at DEBUG)."""
    return [
        record.getMessage()
        for record in caplog.records
        if record.name == "sqlstore" and record.levelno == logging.DEBUG
    ]


def count_rows(store, table: str) -> int:
    connection = store.get_connection()
    try:
        cursor = connection.execute(f'SELECT COUNT(*) FROM "{table}"')
        return cursor.fetchone()[0]
    finally:
        connection.release()


def fetch_row(store, table: str, id) -> tuple:
    connection = store.get_connection()
    try:
        cursor = connection.execute(f'SELECT * FROM "{table}" WHERE "id" = ?', (id,))
        return cursor.fetchone()
    finally:
        connection.release()
