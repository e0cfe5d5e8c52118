"""Query language: tokenizer, parser, compiler and executable Query."""

from .compiler import CompiledQuery, Compiler
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
from .parser import Parser, parse
from .query import Query

__all__ = [
    "CompiledQuery",
    "Compiler",
    "Expression",
    "JoinExpression",
    "LiteralExpression",
    "NaryOperatorExpression",
    "OrderExpression",
    "ParameterExpression",
    "PropertyExpression",
    "SelectStatement",
    "UnaryOperatorExpression",
    "Token",
    "tokenize",
    "Parser",
    "parse",
    "Query",
]
