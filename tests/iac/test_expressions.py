"""Tests for placeholder tokenization."""

import pytest

from manifestor.exceptions import MalformedExpression
from manifestor.iac.expressions import (
    ExpressionToken,
    find_tokens,
    find_unresolved,
    split_expression,
)


class TestSplitExpression:
    """Test cases for split_expression."""

    def test_literal_only(self) -> None:
        assert split_expression("plain text") == ["plain text"]

    def test_mixed_segments(self) -> None:
        """Literals and tokens alternate in order."""
        segments = split_expression("Host={db.bindings.tcp.host};Port=5432")
        assert segments[0] == "Host="
        token = segments[1]
        assert isinstance(token, ExpressionToken)
        assert token.resource_name == "db"
        assert token.path == ("bindings", "tcp", "host")
        assert (token.start, token.end) == (5, 27)
        assert segments[2] == ";Port=5432"

    def test_adjacent_tokens(self) -> None:
        tokens = find_tokens("{a.value}{b.value}")
        assert [t.resource_name for t in tokens] == ["a", "b"]

    def test_empty_string(self) -> None:
        assert split_expression("") == []

    @pytest.mark.parametrize(
        "text",
        ["{db.value", "db.value}", "{}", "{db}", "{db..value}", "{a.{b.value}}"],
    )
    def test_malformed(self, text: str) -> None:
        """Unbalanced, empty, pathless and nested placeholders are rejected."""
        with pytest.raises(MalformedExpression):
            split_expression(text)


class TestFindUnresolved:
    """Test cases for find_unresolved."""

    def test_detects_placeholder_shapes(self) -> None:
        assert find_unresolved("x={db.value} y={cache.bindings.tcp.port}") == [
            "{db.value}",
            "{cache.bindings.tcp.port}",
        ]

    def test_ignores_non_placeholder_braces(self) -> None:
        """JSON-ish literals are not reported."""
        assert find_unresolved('{"key": 1} {}') == []
