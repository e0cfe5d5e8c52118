"""Tokenizer for the query language."""

import re
from typing import NamedTuple

from ..errors import QueryParseError

KEYWORDS = frozenset((
    "from", "inner", "outer", "left", "join", "on", "where", "order", "by",
    "asc", "desc", "and", "or", "not", "is", "null", "like", "true", "false",
))

_TOKEN_PATTERNS = (
    ("WHITESPACE", r"\s+"),
    ("NUMBER", r"-?\d+(?:\.\d+)?"),
    ("STRING", r"'(?:[^']|'')*'"),
    ("NAMED_PARAMETER", r":[A-Za-z_]\w*"),
    ("POSITIONAL_PARAMETER", r"\?"),
    ("NAME", r"[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)?"),
    ("OPERATOR", r"<>|!=|<=|>=|=|<|>"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("COMMA", r","),
)
_TOKEN_RE = re.compile("|".join(f"(?P<{kind}>{pattern})" for kind, pattern in _TOKEN_PATTERNS))


class Token(NamedTuple):
    kind: str
    """One of the pattern kinds above, ``KEYWORD`` or ``END``."""
    value: str
    position: int


def tokenize(text: str) -> list[Token]:
    """Split query text into tokens, ending with an ``END`` token.

    Keywords are recognised case-insensitively and normalised to lower case;
    string literals keep their quotes.
    """
    tokens: list[Token] = []
    position = 0
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if match is None:
            raise QueryParseError(f"Unexpected character {text[position]!r}", position)
        kind = match.lastgroup
        value = match.group()
        if kind == "NAME" and value.lower() in KEYWORDS:
            kind, value = "KEYWORD", value.lower()
        if kind != "WHITESPACE":
            tokens.append(Token(kind, value, position))
        position = match.end()
    tokens.append(Token("END", "", position))
    return tokens


def named_parameters(text: str) -> list[str]:
    """Names of the ``:name`` parameters of a query, in order of first appearance."""
    names: list[str] = []
    for token in tokenize(text):
        name = token.value[1:]
        if token.kind == "NAMED_PARAMETER" and name not in names:
            names.append(name)
    return names


def has_positional_parameters(text: str) -> bool:
    return any(token.kind == "POSITIONAL_PARAMETER" for token in tokenize(text))
