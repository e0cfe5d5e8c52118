"""Table creation for the entity types of a Store.

Only missing tables and sequences are created; existing tables are left
untouched even when they differ from their mapping.
"""

import logging

from .mapping import Mapping

logger = logging.getLogger(__name__)


def _ordered(mappings: list[Mapping]) -> list[Mapping]:
    """Mappings sorted so referenced tables come first where the references allow it."""
    by_name = {mapping.entity_name: mapping for mapping in mappings}
    ordered: list[Mapping] = []
    visiting: set[str] = set()

    def visit(mapping: Mapping) -> None:
        if mapping in ordered or mapping.entity_name in visiting:
            return
        visiting.add(mapping.entity_name)
        for prop in mapping.object_properties:
            if prop.entity in by_name:
                visit(by_name[prop.entity])
        ordered.append(mapping)

    for mapping in mappings:
        visit(mapping)
    return ordered


def create_table_sql(store, mapping: Mapping) -> str:
    """CREATE TABLE statement for a mapping, in the store's dialect."""
    dialect = store.dialect
    definitions = [dialect.sql_id_column(mapping.id.column, store._sequence_for(mapping) is not None)]
    for prop in mapping.scalar_properties:
        not_null = "" if prop.nullable else " NOT NULL"
        column_type = dialect.sql_column_type(prop.type, prop.length)
        definitions.append(f"{dialect.quote(prop.column)} {column_type}{not_null}")
    for prop in mapping.object_properties:
        not_null = "" if prop.nullable else " NOT NULL"
        definitions.append(f"{dialect.quote(prop.column)} {dialect.sql_column_type('long')}{not_null}")
    if dialect.INLINE_FOREIGN_KEYS:
        definitions.extend(_foreign_keys(store, mapping))
    table = dialect.qualified_table(mapping.table_name, mapping.schema_name)
    return f"CREATE TABLE {table} (\n  " + ",\n  ".join(definitions) + "\n)"


def _foreign_keys(store, mapping: Mapping) -> list[str]:
    dialect = store.dialect
    constraints = []
    for prop in mapping.object_properties:
        target = store.get_mapping(prop.entity)
        target_table = dialect.qualified_table(target.table_name, target.schema_name)
        constraints.append(dialect.sql_foreign_key(prop.column, target_table, target.id.column))
    return constraints


def sync_tables(store) -> list[str]:
    """Create the missing sequences and tables of every entity type of ``store``.

    Foreign key constraints are declared inline where the dialect requires it,
    otherwise added once all new tables exist so that cyclic references work.

    Returns:
        Names of the tables created.
    """
    dialect = store.dialect
    created: list[Mapping] = []
    with store._transactions.unit() as transaction:
        connection = transaction.connection.native
        for mapping in _ordered([entity.mapping for entity in store.entities.values()]):
            sequence = store._sequence_for(mapping)
            if sequence and not dialect.sequence_exists(connection, sequence, mapping.schema_name):
                store._execute(transaction, dialect.sql_create_sequence(sequence, mapping.schema_name)).close()
                logger.info("Created sequence %s", sequence)
            if dialect.table_exists(connection, mapping.table_name, mapping.schema_name):
                logger.debug("Table %s already exists", mapping.table_name)
                continue
            store._execute(transaction, create_table_sql(store, mapping)).close()
            logger.info("Created table %s", mapping.table_name)
            created.append(mapping)
        if not dialect.INLINE_FOREIGN_KEYS:
            for mapping in created:
                table = dialect.qualified_table(mapping.table_name, mapping.schema_name)
                for prop, constraint in zip(mapping.object_properties, _foreign_keys(store, mapping)):
                    name = dialect.quote(f"fk_{mapping.table_name}_{prop.column}")
                    store._execute(transaction, f"ALTER TABLE {table} ADD CONSTRAINT {name} {constraint}").close()
    return [mapping.table_name for mapping in created]
