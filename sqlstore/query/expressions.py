"""Query syntax tree.

The parser produces a ``SelectStatement`` whose conditions are trees of
expression nodes. Every node renders itself through ``to_sql(compiler)``:
property references become qualified columns, literals and parameters become
placeholders whose values the compiler records in order.
"""

from __future__ import annotations

from typing import Any, Iterator, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Expression(BaseModel):
    """Base type for all condition nodes."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def to_sql(self, compiler) -> str:
        """SQL fragment for this expression, with placeholders for bound values."""
        raise NotImplementedError("Subclasses must implement `to_sql`")

    def walk(self) -> Iterator[Expression]:
        """Yield this node and all nested nodes, depth first."""
        yield self


class PropertyExpression(Expression):
    """Reference to a mapped property (or the id) of an entity in scope."""

    entity: str
    """Entity name, which is also the table alias in the compiled SQL."""
    name: str
    """Property name; ``id`` for the primary key."""
    column: str
    """Column the property is stored in (foreign key column for relations)."""
    is_relation: bool = False

    @property
    def path_str(self) -> str:
        return f"{self.entity}.{self.name}"

    def to_sql(self, compiler) -> str:
        return compiler.sql_property(self)


class LiteralExpression(Expression):
    """Literal written in the query text (number, string, boolean or null)."""

    value: Any = None

    def to_sql(self, compiler) -> str:
        return compiler.sql_literal(self)


class ParameterExpression(Expression):
    """``:name`` or ``?`` placeholder whose value is supplied at execution."""

    name: Optional[str] = None
    position: Optional[int] = None
    """0-based index among the positional parameters of the query."""

    @property
    def is_named(self) -> bool:
        return self.name is not None

    def to_sql(self, compiler) -> str:
        return compiler.sql_parameter(self)


class NaryOperatorExpression(Expression):
    """N-argument operator (e.g. ``=``, ``AND``, ``LIKE``)."""

    symbol: str
    arguments: Tuple[Expression, ...] = Field(default_factory=tuple)

    def to_sql(self, compiler) -> str:
        if not self.arguments:
            raise ValueError("NaryOperatorExpression must have at least one argument")
        parts = [argument.to_sql(compiler) for argument in self.arguments]
        return "(" + f" {self.symbol} ".join(parts) + ")"

    def walk(self) -> Iterator[Expression]:
        yield self
        for argument in self.arguments:
            yield from argument.walk()


class UnaryOperatorExpression(Expression):
    """Prefix (``NOT``) or postfix (``IS NULL``) operator."""

    symbol: str
    argument: Expression
    postfix: bool = False

    def to_sql(self, compiler) -> str:
        inner = self.argument.to_sql(compiler)
        if self.postfix:
            return f"({inner} {self.symbol})"
        return f"({self.symbol} {inner})"

    def walk(self) -> Iterator[Expression]:
        yield self
        yield from self.argument.walk()


class OrderExpression(BaseModel):
    """ORDER BY item: one property, ascending or descending."""

    model_config = ConfigDict(frozen=True)

    property: PropertyExpression
    desc: bool = False


class JoinExpression(BaseModel):
    """``inner join`` / ``outer join`` of an entity on a condition."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal["inner", "outer"]
    entity: str
    condition: Expression


class SelectStatement(BaseModel):
    """Root of a parsed query."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    entity: str
    joins: Tuple[JoinExpression, ...] = ()
    where: Optional[Expression] = None
    order_by: Tuple[OrderExpression, ...] = ()

    def expressions(self) -> Iterator[Expression]:
        """All condition nodes, in the order they are rendered."""
        for join in self.joins:
            yield from join.condition.walk()
        if self.where is not None:
            yield from self.where.walk()
        for order in self.order_by:
            yield order.property

    def parameters(self) -> list[ParameterExpression]:
        return [e for e in self.expressions() if isinstance(e, ParameterExpression)]
