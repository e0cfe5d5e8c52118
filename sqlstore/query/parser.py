"""Recursive-descent parser for the query language.

    query      := "from" Entity join* ["where" condition] ["order" "by" order ("," order)*]
    join       := ("inner" | "outer" | "left" ["outer"]) "join" Entity "on" condition
    condition  := and_expr ("or" and_expr)*
    and_expr   := not_expr ("and" not_expr)*
    not_expr   := "not" not_expr | comparison
    comparison := operand [(op operand) | ("like" operand) | ("is" ["not"] "null")]
    operand    := property | literal | parameter | "(" condition ")"
    order      := property ["asc" | "desc"]

Every entity and property reference is resolved against the registered
mappings while parsing, so the resulting tree only holds valid references.
"""

from typing import Callable, Optional

from ..errors import QueryParseError, QueryReferenceError
from .expressions import (
    Expression,
    JoinExpression,
    LiteralExpression,
    NaryOperatorExpression,
    OrderExpression,
    ParameterExpression,
    PropertyExpression,
    SelectStatement,
    UnaryOperatorExpression,
)
from .lexer import Token, tokenize

COMPARISON_OPERATORS = {"=": "=", "!=": "<>", "<>": "<>", "<": "<", "<=": "<=", ">": ">", ">=": ">="}


class Parser:
    """Parse one query text.

    ``lookup`` maps an entity name to its Mapping, or None when the name is
    not registered.
    """

    def __init__(self, text: str, lookup: Callable[[str], Optional[object]]):
        self.text = text
        self.lookup = lookup
        self.tokens = tokenize(text)
        self.index = 0
        self.scope: dict[str, object] = {}
        self.root: Optional[str] = None
        self.named = False
        self.positional_count = 0

    # token helpers

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != "END":
            self.index += 1
        return token

    def at_keyword(self, *words: str) -> bool:
        return self.current.kind == "KEYWORD" and self.current.value in words

    def accept_keyword(self, *words: str) -> Optional[str]:
        if self.at_keyword(*words):
            return self.advance().value
        return None

    def expect_keyword(self, word: str) -> None:
        if not self.accept_keyword(word):
            self.fail(f"Expected `{word}`")

    def expect(self, kind: str, description: str) -> Token:
        if self.current.kind != kind:
            self.fail(f"Expected {description}")
        return self.advance()

    def expect_entity_name(self) -> Token:
        """Entity names may spell a keyword, as in `from Order`."""
        token = self.current
        if token.kind == "KEYWORD":
            self.advance()
            original = self.text[token.position:token.position + len(token.value)]
            return Token("NAME", original, token.position)
        return self.expect("NAME", "an entity name")

    def fail(self, message: str):
        token = self.current
        found = "end of query" if token.kind == "END" else f"`{token.value}`"
        raise QueryParseError(f"{message}, found {found}", token.position)

    # references

    def resolve_entity(self, token: Token) -> str:
        if "." in token.value:
            raise QueryParseError(
                f"Expected an entity name, found `{token.value}`",
                token.position,
            )
        mapping = self.lookup(token.value)
        if mapping is None:
            raise QueryReferenceError(f"Unknown entity `{token.value}`")
        if token.value in self.scope:
            raise QueryReferenceError(f"Entity `{token.value}` appears twice in the query")
        self.scope[token.value] = mapping
        return token.value

    def resolve_property(self, token: Token) -> PropertyExpression:
        if "." in token.value:
            entity, name = token.value.split(".", 1)
            if entity not in self.scope:
                if self.lookup(entity) is None:
                    raise QueryReferenceError(f"Unknown entity `{entity}`")
                raise QueryReferenceError(f"Entity `{entity}` is not part of the query")
        else:
            entity, name = self.root, token.value
        mapping = self.scope[entity]
        if name == "id":
            return PropertyExpression(entity=entity, name="id", column=mapping.id.column)
        prop = mapping.find_property(name)
        if prop is None:
            raise QueryReferenceError(f"Unknown property `{entity}.{name}`")
        if prop.kind == "collection":
            raise QueryReferenceError(f"Collection property `{entity}.{name}` cannot be used in a query")
        return PropertyExpression(
            entity=entity, name=name, column=prop.column, is_relation=prop.kind == "object"
        )

    # grammar

    def parse(self) -> SelectStatement:
        self.expect_keyword("from")
        self.root = self.resolve_entity(self.expect_entity_name())
        joins = []
        while self.at_keyword("inner", "outer", "left"):
            joins.append(self.parse_join())
        where = None
        if self.accept_keyword("where"):
            where = self.parse_condition()
        order_by = []
        if self.accept_keyword("order"):
            self.expect_keyword("by")
            order_by.append(self.parse_order())
            while self.current.kind == "COMMA":
                self.advance()
                order_by.append(self.parse_order())
        if self.current.kind != "END":
            self.fail("Unexpected token")
        return SelectStatement(entity=self.root, joins=tuple(joins), where=where, order_by=tuple(order_by))

    def parse_join(self) -> JoinExpression:
        word = self.advance().value
        kind = "inner" if word == "inner" else "outer"
        if word == "left":
            self.accept_keyword("outer")
        self.expect_keyword("join")
        entity = self.resolve_entity(self.expect_entity_name())
        self.expect_keyword("on")
        return JoinExpression(kind=kind, entity=entity, condition=self.parse_condition())

    def parse_order(self) -> OrderExpression:
        prop = self.resolve_property(self.expect("NAME", "a property reference"))
        desc = self.accept_keyword("asc", "desc") == "desc"
        return OrderExpression(property=prop, desc=desc)

    def parse_condition(self) -> Expression:
        arguments = [self.parse_and()]
        while self.accept_keyword("or"):
            arguments.append(self.parse_and())
        if len(arguments) == 1:
            return arguments[0]
        return NaryOperatorExpression(symbol="OR", arguments=tuple(arguments))

    def parse_and(self) -> Expression:
        arguments = [self.parse_not()]
        while self.accept_keyword("and"):
            arguments.append(self.parse_not())
        if len(arguments) == 1:
            return arguments[0]
        return NaryOperatorExpression(symbol="AND", arguments=tuple(arguments))

    def parse_not(self) -> Expression:
        if self.accept_keyword("not"):
            return UnaryOperatorExpression(symbol="NOT", argument=self.parse_not())
        return self.parse_comparison()

    def parse_comparison(self) -> Expression:
        left = self.parse_operand()
        if self.current.kind == "OPERATOR":
            symbol = COMPARISON_OPERATORS[self.advance().value]
            return NaryOperatorExpression(symbol=symbol, arguments=(left, self.parse_operand()))
        if self.accept_keyword("like"):
            return NaryOperatorExpression(symbol="LIKE", arguments=(left, self.parse_operand()))
        if self.accept_keyword("is"):
            symbol = "IS NOT NULL" if self.accept_keyword("not") else "IS NULL"
            self.expect_keyword("null")
            return UnaryOperatorExpression(symbol=symbol, argument=left, postfix=True)
        return left

    def parse_operand(self) -> Expression:
        token = self.current
        if token.kind == "LPAREN":
            self.advance()
            inner = self.parse_condition()
            self.expect("RPAREN", "`)`")
            return inner
        if token.kind == "NAME":
            return self.resolve_property(self.advance())
        if token.kind == "NUMBER":
            self.advance()
            value = float(token.value) if "." in token.value else int(token.value)
            return LiteralExpression(value=value)
        if token.kind == "STRING":
            self.advance()
            return LiteralExpression(value=token.value[1:-1].replace("''", "'"))
        if self.at_keyword("true", "false"):
            return LiteralExpression(value=self.advance().value == "true")
        if self.at_keyword("null"):
            self.advance()
            return LiteralExpression(value=None)
        if token.kind == "NAMED_PARAMETER":
            self.check_parameter_style(named=True)
            self.advance()
            return ParameterExpression(name=token.value[1:])
        if token.kind == "POSITIONAL_PARAMETER":
            self.check_parameter_style(named=False)
            self.advance()
            self.positional_count += 1
            return ParameterExpression(position=self.positional_count - 1)
        self.fail("Expected a property, literal or parameter")

    def check_parameter_style(self, named: bool) -> None:
        if (named and self.positional_count) or (not named and self.named):
            self.fail("Named and positional parameters cannot be mixed")
        self.named = named


def parse(text: str, lookup: Callable[[str], Optional[object]]) -> SelectStatement:
    """Parse query text into a SelectStatement, resolving references through ``lookup``."""
    return Parser(text, lookup).parse()
