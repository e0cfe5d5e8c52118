import pytest

from sqlstore import QueryParseError
from sqlstore.query import Token, tokenize
from sqlstore.query.lexer import has_positional_parameters, named_parameters


def test_tokenize():
    tokens = tokenize("from Book where Book.title = 'it''s' and pages >= -2.5 or x != :name")
    assert [(token.kind, token.value) for token in tokens] == [
        ("KEYWORD", "from"),
        ("NAME", "Book"),
        ("KEYWORD", "where"),
        ("NAME", "Book.title"),
        ("OPERATOR", "="),
        ("STRING", "'it''s'"),
        ("KEYWORD", "and"),
        ("NAME", "pages"),
        ("OPERATOR", ">="),
        ("NUMBER", "-2.5"),
        ("KEYWORD", "or"),
        ("NAME", "x"),
        ("OPERATOR", "!="),
        ("NAMED_PARAMETER", ":name"),
        ("END", ""),
    ]


def test_keywords_are_case_insensitive():
    tokens = tokenize("FROM Book ORDER BY Book.title DESC")
    assert tokens[0] == Token("KEYWORD", "from", 0)
    assert [token.value for token in tokens if token.kind == "KEYWORD"] == ["from", "order", "by", "desc"]


def test_positions():
    tokens = tokenize("from  Book\nwhere (a = ?)")
    assert [(token.value, token.position) for token in tokens] == [
        ("from", 0), ("Book", 6), ("where", 11), ("(", 17), ("a", 18), ("=", 20), ("?", 22), (")", 23), ("", 24),
    ]


def test_unexpected_character():
    with pytest.raises(QueryParseError, match=r"Unexpected character '#' \(at position 16\)") as info:
        tokenize("from Book where #")
    assert info.value.position == 16


def test_unterminated_string():
    with pytest.raises(QueryParseError, match="Unexpected character"):
        tokenize("from Book where title = 'oops")


def test_named_parameters():
    assert named_parameters("from Book where a = :first or b = :second or c = :first") == ["first", "second"]
    assert named_parameters("from Book") == []


def test_has_positional_parameters():
    assert has_positional_parameters("from Book where a = ?")
    assert not has_positional_parameters("from Book where a = '?'")
