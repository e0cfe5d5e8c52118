"""Lower a parsed SelectStatement to SQL for one dialect."""

from collections.abc import Mapping as MappingType, Sequence
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict

from ..errors import ParameterError
from .expressions import (
    LiteralExpression,
    ParameterExpression,
    PropertyExpression,
    SelectStatement,
)


class Slot(BaseModel):
    """One bound value of a compiled statement: a literal, or a parameter to look up."""

    model_config = ConfigDict(frozen=True)

    literal: Any = None
    name: Optional[str] = None
    position: Optional[int] = None

    @property
    def is_parameter(self) -> bool:
        return self.name is not None or self.position is not None


class CompiledQuery(BaseModel):
    """SQL text with dialect placeholders, plus what to bind to each of them."""

    model_config = ConfigDict(frozen=True)

    sql: str
    slots: tuple[Slot, ...] = ()
    entity: str
    """Entity type the selected rows belong to."""
    columns: tuple[str, ...] = ()
    """Selected columns, in the order they appear in each row."""
    parameter_names: tuple[str, ...] = ()
    positional_count: int = 0

    def bind(self, parameters: Union[MappingType[str, Any], Sequence[Any], None], dialect) -> list[Any]:
        """Values to pass to the driver, in placeholder order.

        Raises:
            ParameterError: a named parameter is missing or unused, or the
                number of positional values does not match.
        """
        from ..entity import Entity  # pylint: disable=import-outside-toplevel

        if parameters is None:
            parameters = () if self.positional_count else {}
        if self.positional_count:
            if isinstance(parameters, (str, bytes)) or isinstance(parameters, MappingType):
                raise ParameterError("Query expects positional parameters as a sequence")
            parameters = list(parameters)
            if len(parameters) != self.positional_count:
                raise ParameterError(
                    f"Query expects {self.positional_count} positional parameter(s), "
                    f"got {len(parameters)}"
                )
        else:
            if not isinstance(parameters, MappingType):
                if len(parameters) == 0:
                    parameters = {}
                else:
                    raise ParameterError("Query expects named parameters as a mapping")
            missing = [name for name in self.parameter_names if name not in parameters]
            if missing:
                raise ParameterError(f"Missing value for parameter(s): {', '.join(missing)}")
            unused = [name for name in parameters if name not in self.parameter_names]
            if unused:
                raise ParameterError(f"Unused parameter(s): {', '.join(map(str, unused))}")

        values = []
        for slot in self.slots:
            if not slot.is_parameter:
                values.append(dialect.bind_value(slot.literal))
                continue
            name = slot.name if slot.name is not None else slot.position
            value = parameters[name]
            if isinstance(value, Entity):
                if value.id is None:
                    raise ParameterError(f"Parameter {name!r} is an unsaved {type(value).__name__}")
                value = value.id
            values.append(dialect.bind_value(value))
        return values


class Compiler:
    """Render statements for ``dialect``; ``lookup`` maps entity names to Mappings."""

    def __init__(self, dialect, lookup: Callable[[str], Any]):
        self.dialect = dialect
        self.lookup = lookup
        self._slots: list[Slot] = []

    def _placeholder(self, slot: Slot) -> str:
        self._slots.append(slot)
        return self.dialect.placeholder(len(self._slots) - 1)

    # expression callbacks

    def sql_property(self, expression: PropertyExpression) -> str:
        return f"{self.dialect.quote(expression.entity)}.{self.dialect.quote(expression.column)}"

    def sql_literal(self, expression: LiteralExpression) -> str:
        if expression.value is None:
            return "NULL"
        return self._placeholder(Slot(literal=expression.value))

    def sql_parameter(self, expression: ParameterExpression) -> str:
        return self._placeholder(Slot(name=expression.name, position=expression.position))

    def sql_table(self, entity: str) -> str:
        mapping = self.lookup(entity)
        table = self.dialect.qualified_table(mapping.table_name, mapping.schema_name)
        return f"{table} {self.dialect.quote(entity)}"

    # statements

    def compile(self, statement: SelectStatement) -> CompiledQuery:
        self._slots = []
        mapping = self.lookup(statement.entity)
        alias = self.dialect.quote(statement.entity)
        columns = mapping.columns
        selected = ", ".join(f"{alias}.{self.dialect.quote(column)}" for column in columns)
        parts = [f"SELECT {selected} FROM {self.sql_table(statement.entity)}"]
        for join in statement.joins:
            keyword = "INNER JOIN" if join.kind == "inner" else "LEFT OUTER JOIN"
            parts.append(f"{keyword} {self.sql_table(join.entity)} ON {join.condition.to_sql(self)}")
        if statement.where is not None:
            parts.append(f"WHERE {statement.where.to_sql(self)}")
        if statement.order_by:
            items = ", ".join(
                f"{self.sql_property(order.property)} {'DESC' if order.desc else 'ASC'}"
                for order in statement.order_by
            )
            parts.append(f"ORDER BY {items}")

        names: list[str] = []
        positional_count = 0
        for parameter in statement.parameters():
            if parameter.is_named:
                if parameter.name not in names:
                    names.append(parameter.name)
            else:
                positional_count += 1
        return CompiledQuery(
            sql=" ".join(parts),
            slots=tuple(self._slots),
            entity=statement.entity,
            columns=columns,
            parameter_names=tuple(names),
            positional_count=positional_count,
        )
