"""Executable queries.

A Query is built once per query text (``Store.query(text)``), parsed and
compiled eagerly so that malformed text fails immediately, and can then be
run any number of times with different parameters and pagination windows.
"""

from __future__ import annotations

import logging
from functools import cached_property
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from .compiler import CompiledQuery, Compiler
from .expressions import SelectStatement
from .parser import parse

logger = logging.getLogger(__name__)


class Query(BaseModel):
    """Query text bound to a Store.

        >>> store.query("from Book where Book.author = :author order by Book.title") \\
        ...     .select({"author": author}, limit=10)
    """

    model_config = {"arbitrary_types_allowed": True}

    store: Any
    """Store whose mappings resolve references and whose connections run the query."""
    text: str

    def __init__(self, store: Any, text: str, **kwargs: Any):
        super().__init__(store=store, text=text, **kwargs)

    def model_post_init(self, __context: Any) -> None:
        # fail on bad text at construction, not at first execution
        _ = self.compiled

    @cached_property
    def ast(self) -> SelectStatement:
        return parse(self.text, self.store.get_mapping)

    @cached_property
    def compiled(self) -> CompiledQuery:
        return Compiler(self.store.dialect, self.store.get_mapping).compile(self.ast)

    @property
    def sql(self) -> str:
        """SQL sent to the database when no pagination applies."""
        return self.compiled.sql

    @property
    def entity_type(self) -> type:
        return self.store.get_entity_type(self.compiled.entity)

    def select(
        self,
        parameters: Union[Mapping[str, Any], Sequence[Any], None] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list:
        """Run the query and return the matching entities, in database row order.

        Args:
            parameters: Values for ``:name`` placeholders (a mapping) or for
                ``?`` placeholders (a sequence). Entities bind their id.
            limit: Maximum number of entities to return.
            offset: Number of leading rows to skip.

        Raises:
            ParameterError: parameters do not match the placeholders.
        """
        dialect = self.store.dialect
        compiled = self.compiled
        # binding errors roll back the enclosing transaction too
        with self.store._transactions.unit():
            values = compiled.bind(parameters, dialect)
            sql = dialect.paginate(compiled.sql, limit=limit, offset=offset)
            rows = self.store._fetch_rows(sql, values)
        entity_type = self.entity_type
        return [
            entity_type._from_row(dict(zip(compiled.columns, row)))
            for row in rows
        ]

    def first(self, parameters: Union[Mapping[str, Any], Sequence[Any], None] = None):
        """First matching entity, or None."""
        result = self.select(parameters, limit=1)
        return result[0] if result else None
