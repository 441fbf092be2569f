"""Shared test helpers for the qlang test suite."""

from __future__ import annotations

from qlang.parser import parse
from qlang.resolver import FindKind, find_identifiers, token_at
from qlang.tokens import Token


def tok(tokens: list[Token], image: str, nth: int = 0) -> Token:
    """Return the nth token with the given image."""
    matches = [t for t in tokens if t.image == image]
    assert len(matches) > nth, f"no token #{nth} with image {image!r}"
    return matches[nth]


def find_at(source: str, kind: FindKind, line: int, col: int) -> list[tuple[int, int]]:
    """Resolve the token at a 1-based position, return result start positions."""
    tokens = parse(source, "<test>")
    src = token_at(tokens, line, col)
    return [(t.span.start_line, t.span.start_col) for t in find_identifiers(kind, tokens, src)]


def images(tokens: list[Token]) -> list[str]:
    return [t.image for t in tokens]
