"""Placeholder expression scanning.

A placeholder is a ``{resourceName.path.segments}`` span inside a string
field. This module only tokenizes; lookups happen in the resolver.
"""

import re
from dataclasses import dataclass
from typing import List, Tuple, Union

from ..exceptions import MalformedExpression

# Placeholder-shaped text that must never reach rendered output
PLACEHOLDER_PATTERN = re.compile(r"\{[A-Za-z0-9_\-]+(?:\.[A-Za-z0-9_\-]+)+\}")


@dataclass(frozen=True)
class ExpressionToken:
    """One ``{resource.path}`` occurrence inside a string."""

    resource_name: str
    path: Tuple[str, ...]
    start: int
    end: int


Segment = Union[str, ExpressionToken]


def _make_token(text: str, body: str, start: int, end: int) -> ExpressionToken:
    body = body.strip()
    if not body:
        raise MalformedExpression("Empty placeholder '{}'", expression=text)
    parts = body.split(".")
    if len(parts) < 2:
        raise MalformedExpression(
            f"Placeholder '{{{body}}}' has no path after the resource name",
            expression=text,
        )
    if any(not part for part in parts):
        raise MalformedExpression(
            f"Placeholder '{{{body}}}' contains an empty path segment",
            expression=text,
        )
    return ExpressionToken(
        resource_name=parts[0], path=tuple(parts[1:]), start=start, end=end
    )


def split_expression(text: str) -> List[Segment]:
    """Split text into literal strings and placeholder tokens.

    Raises:
        MalformedExpression: On unbalanced braces, nested braces or empty tokens
    """
    segments: List[Segment] = []
    literal_start = 0
    index = 0
    while index < len(text):
        char = text[index]
        if char == "}":
            raise MalformedExpression(
                f"Unbalanced '}}' at position {index}", expression=text
            )
        if char != "{":
            index += 1
            continue

        close = index + 1
        while close < len(text) and text[close] not in "{}":
            close += 1
        if close >= len(text) or text[close] == "{":
            raise MalformedExpression(
                f"Unbalanced '{{' at position {index}", expression=text
            )

        if literal_start < index:
            segments.append(text[literal_start:index])
        segments.append(_make_token(text, text[index + 1 : close], index, close + 1))
        index = close + 1
        literal_start = index

    if literal_start < len(text):
        segments.append(text[literal_start:])
    return segments


def find_tokens(text: str) -> List[ExpressionToken]:
    """Return every placeholder token in ``text`` in order of appearance."""
    return [s for s in split_expression(text) if isinstance(s, ExpressionToken)]


def find_unresolved(text: str) -> List[str]:
    """Return placeholder-shaped substrings left in already resolved text."""
    return PLACEHOLDER_PATTERN.findall(text)
