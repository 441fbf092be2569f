"""Identifier resolution over an annotated token list.

q scopes dynamically: a name used inside a lambda is local only if that
same lambda assigns it (or lists it as a parameter). Otherwise it refers
to the global of the enclosing namespace; intermediate lambdas are never
searched. Bindings are identified by ``(scope, name)`` where ``scope`` is
the index of the opening brace for locals and ``None`` for globals, and
``name`` is the plain image for locals and the canonical, fully
qualified name for globals.
"""

from __future__ import annotations

from enum import Enum, auto

from qlang.tokens import (
    Token,
    amended,
    assignable,
    assigned,
    global_assign,
    identifier,
    qualified,
)

Binding = tuple[int | None, str]


class FindKind(Enum):
    DEFINITION = auto()
    REFERENCE = auto()
    RENAME = auto()
    COMPLETION = auto()


def _defines(token: Token) -> bool:
    """Assignments and parameters define a binding; amends only update one."""
    return assigned(token) and not amended(token)


class _Bindings:
    """The set of bindings defined in one token list."""

    def __init__(self, tokens: list[Token]) -> None:
        self.locals: dict[int, set[str]] = {}
        self.globals: set[str] = set()

        candidates = [t for t in tokens if assignable(t) and _defines(t)]
        for tok in candidates:
            if tok.scope is not None and not qualified(tok) and not global_assign(tok):
                self.locals.setdefault(tok.scope, set()).add(tok.image)
        for tok in candidates:
            if self.resolve_local(tok) is None:
                self.globals.add(identifier(tok))

    def resolve_local(self, token: Token) -> Binding | None:
        if token.scope is None or qualified(token):
            return None
        if token.image in self.locals.get(token.scope, ()):
            return token.scope, token.image
        return None

    def resolve(self, token: Token) -> Binding | None:
        """Local binding first, then straight to the namespace global."""
        if not assignable(token):
            return None
        local = self.resolve_local(token)
        if local is not None:
            return local
        name = identifier(token)
        if name in self.globals:
            return None, name
        return None


def find_identifiers(
    kind: FindKind, tokens: list[Token], source: Token | None,
) -> list[Token]:
    """Return the tokens related to `source` for the given request kind.

    Results are in source order. An unresolvable or non-name `source`
    yields an empty list, never an exception.
    """
    if source is None or not assignable(source):
        return []

    bindings = _Bindings(tokens)
    if kind is FindKind.COMPLETION:
        return _visible(bindings, tokens, source)

    target = bindings.resolve(source)
    if target is None:
        return []

    matches = [t for t in tokens if bindings.resolve(t) == target]
    if kind is FindKind.DEFINITION:
        return [t for t in matches if _defines(t)]
    return matches


def _visible(bindings: _Bindings, tokens: list[Token], source: Token) -> list[Token]:
    """First definition of every binding visible from `source`."""
    seen: set[Binding] = set()
    result: list[Token] = []
    for tok in tokens:
        if not assignable(tok) or not _defines(tok):
            continue
        binding = bindings.resolve(tok)
        if binding is None or binding in seen:
            continue
        scope, _ = binding
        if scope is not None and scope != source.scope:
            continue
        seen.add(binding)
        result.append(tok)
    return result


def rename_text(token: Token, new_name: str) -> str:
    """Replacement text for `token`, keeping its namespace prefix.

    A new name that starts with a dot is taken verbatim.
    """
    if not new_name.startswith(".") and qualified(token):
        namespace, _, _ = token.image[1:].rpartition(".")
        return f".{namespace}.{new_name}"
    return new_name


def token_at(tokens: list[Token], line: int, col: int) -> Token | None:
    """Find the token at a 1-based position.

    A position just past the end of a token still selects it, so a
    cursor sitting right after a name resolves that name.
    """
    for tok in tokens:
        if tok.span.contains(line, col):
            return tok
    for tok in tokens:
        if tok.span.end_line == line and tok.span.end_col + 1 == col:
            return tok
    return None
