"""Semantic annotation of the q token stream.

One left-to-right pass over the flat token list attaches scope,
namespace, assignment grouping and flag metadata to every token. No tree
is built: relations between tokens are stored as indices into the list.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from qlang.lexer import tokenize
from qlang.tokens import (
    SQL_KEYWORDS,
    Token,
    TokenFlag,
    TokenKind,
    split_qualified,
)

_NAMESPACE_COMMAND = re.compile(r"\\d\s+\.([A-Za-z][\w.]*)?")
_NAMESPACE_SYSTEM = re.compile(r'"d\s+\.([A-Za-z][\w.]*)?"')

_ASSIGN_KINDS = frozenset({TokenKind.COLON, TokenKind.DOUBLE_COLON, TokenKind.AMEND_OP})
_CLOSERS = frozenset({TokenKind.RPAREN, TokenKind.RBRACKET, TokenKind.RBRACE})

# Bracket roles
_PAREN = "paren"
_TABLE = "table"
_KEYS = "keys"
_BRACKET = "bracket"
_PARAMS = "params"


@dataclass
class _Frame:
    """Bracket state of one lambda body (or of the top level)."""

    brace: int | None
    brackets: list[tuple[int, str]] = field(default_factory=list)
    sql_depth: int | None = None

    def top(self) -> str | None:
        return self.brackets[-1][1] if self.brackets else None


class Annotator:
    """Annotates a token list in place."""

    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.frames: list[_Frame] = [_Frame(brace=None)]
        self.namespace: str | None = None
        self.openers: dict[int, int] = {}

    @property
    def frame(self) -> _Frame:
        return self.frames[-1]

    def annotate(self) -> list[Token]:
        for i, tok in enumerate(self.tokens):
            tok.index = i
            if self._starts_statement(tok):
                self.frames = [_Frame(brace=None)]

            tok.scope = self.frame.brace
            tok.namespace = self._namespace_of(tok)

            match tok.kind:
                case TokenKind.LBRACE:
                    self.frames.append(_Frame(brace=i))
                case TokenKind.RBRACE:
                    if len(self.frames) > 1:
                        self.frames.pop()
                        tok.scope = self.frame.brace
                case TokenKind.LPAREN:
                    role = _TABLE if self._next_kind(i) is TokenKind.LBRACKET else _PAREN
                    self.frame.brackets.append((i, role))
                case TokenKind.LBRACKET:
                    self.frame.brackets.append((i, self._bracket_role(i)))
                case TokenKind.RPAREN:
                    self._close(i, (_PAREN, _TABLE))
                case TokenKind.RBRACKET:
                    self._close(i, (_BRACKET, _PARAMS, _KEYS))
                case TokenKind.SEMICOLON:
                    if self.frame.sql_depth is not None and len(self.frame.brackets) <= self.frame.sql_depth:
                        self.frame.sql_depth = None
                case TokenKind.KEYWORD:
                    self._keyword(i, tok)
                case TokenKind.COMMAND:
                    self._command(tok)
                case TokenKind.IDENTIFIER:
                    if self.frame.top() == _PARAMS:
                        tok.flags |= TokenFlag.ASSIGNED | TokenFlag.PARAM
                case kind if kind in _ASSIGN_KINDS:
                    if self._assignment_allowed():
                        self._assignment(i, tok)

        return self.tokens

    # ── Statements and namespaces ────────────────────────────────

    def _starts_statement(self, tok: Token) -> bool:
        """An unindented line starts a new top-level statement."""
        if tok.span.start_col != 1 or tok.kind in _CLOSERS:
            return False
        return len(self.frames) > 1 or bool(self.frame.brackets) or self.frame.sql_depth is not None

    def _namespace_of(self, tok: Token) -> str | None:
        if tok.kind is TokenKind.IDENTIFIER and tok.image.startswith("."):
            namespace, _ = split_qualified(tok.image)
            return namespace
        return self.namespace

    def _command(self, tok: Token) -> None:
        m = _NAMESPACE_COMMAND.fullmatch(tok.image.strip())
        if m is not None:
            self.namespace = m.group(1)

    def _keyword(self, i: int, tok: Token) -> None:
        if tok.image in SQL_KEYWORDS:
            self.frame.sql_depth = len(self.frame.brackets)
        elif tok.image == "from":
            if self.frame.sql_depth == len(self.frame.brackets):
                self.frame.sql_depth = None
        elif tok.image == "system" and len(self.frames) == 1:
            nxt = self.tokens[i + 1] if i + 1 < len(self.tokens) else None
            if nxt is not None and nxt.kind is TokenKind.STRING_LIT:
                m = _NAMESPACE_SYSTEM.fullmatch(nxt.image)
                if m is not None:
                    self.namespace = m.group(1)

    # ── Brackets ─────────────────────────────────────────────────

    def _next_kind(self, i: int) -> TokenKind | None:
        if i + 1 < len(self.tokens):
            return self.tokens[i + 1].kind
        return None

    def _bracket_role(self, i: int) -> str:
        prev = self.tokens[i - 1] if i > 0 else None
        if prev is not None and prev.kind is TokenKind.LBRACE and prev.index == self.frame.brace:
            return _PARAMS
        if prev is not None and self.frame.brackets and self.frame.brackets[-1] == (i - 1, _TABLE):
            return _KEYS
        return _BRACKET

    def _close(self, i: int, roles: tuple[str, ...]) -> None:
        brackets = self.frame.brackets
        for depth in range(len(brackets) - 1, -1, -1):
            opener, role = brackets[depth]
            if role in roles:
                del brackets[depth:]
                self.openers[i] = opener
                break
        if self.frame.sql_depth is not None and len(brackets) < self.frame.sql_depth:
            self.frame.sql_depth = None

    # ── Assignments ──────────────────────────────────────────────

    def _assignment_allowed(self) -> bool:
        """Column definitions in table literals and q-sql are not assignments."""
        if self.frame.top() in (_TABLE, _KEYS, _PARAMS):
            return False
        return self.frame.sql_depth is None or len(self.frame.brackets) > self.frame.sql_depth

    def _assignment(self, i: int, op: Token) -> None:
        if i == 0:
            return
        prev = self.tokens[i - 1]
        flags = TokenFlag.ASSIGNED
        if op.kind is TokenKind.AMEND_OP:
            flags |= TokenFlag.AMENDED
        elif op.kind is TokenKind.DOUBLE_COLON and self.frame.brace is not None:
            flags |= TokenFlag.GLOBAL

        targets: list[Token] = []
        if prev.kind is TokenKind.IDENTIFIER:
            targets = [prev]
        elif prev.kind is TokenKind.RBRACKET:
            target = self._indexed_target(i - 1)
            if target is not None:
                flags = (flags | TokenFlag.AMENDED) & ~TokenFlag.GLOBAL
                targets = [target]
        elif prev.kind is TokenKind.RPAREN and op.kind is not TokenKind.AMEND_OP:
            targets = self._group_targets(i - 1)

        if not targets:
            return

        value = i + 1 if i + 1 < len(self.tokens) else None
        if value is not None and self.tokens[value].kind is TokenKind.LBRACE:
            flags |= TokenFlag.LAMBDA

        op.tangled = targets[0].index
        for order, target in enumerate(targets, start=1):
            target.flags |= flags
            target.tangled = value
            if len(targets) > 1:
                target.assignment = [t.index for t in targets]
                target.order = order

    def _indexed_target(self, closer: int) -> Token | None:
        """`x[i]:v` amends `x`."""
        opener = self.openers.get(closer)
        if opener is None or opener == 0:
            return None
        if self.tokens[opener].kind is not TokenKind.LBRACKET:
            return None
        target = self.tokens[opener - 1]
        if target.kind is not TokenKind.IDENTIFIER:
            return None
        return target

    def _group_targets(self, closer: int) -> list[Token]:
        """`(a;b):v` assigns each name in the parenthesized list."""
        opener = self.openers.get(closer)
        if opener is None:
            return []
        inner = self.tokens[opener + 1:closer]
        names = inner[::2]
        separators = inner[1::2]
        if len(names) < 2 or len(separators) != len(names) - 1:
            return []
        if any(t.kind is not TokenKind.IDENTIFIER for t in names):
            return []
        if any(t.kind is not TokenKind.SEMICOLON for t in separators):
            return []
        return names


def annotate(tokens: list[Token]) -> list[Token]:
    """Attach scope, namespace and assignment metadata in place."""
    return Annotator(tokens).annotate()


def parse(text: str, filename: str = "<stdin>") -> list[Token]:
    """Lex and annotate q source. Never raises for any input text."""
    return annotate(tokenize(text, filename))
