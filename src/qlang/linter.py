"""Advisory lint pass over annotated q tokens.

The linter is independent of identifier resolution: it only looks at the
token flags and at which names each lambda reads and writes. Findings are
advisory and never block navigation features.
"""

from __future__ import annotations

import re
from collections.abc import Collection
from dataclasses import dataclass

from qlang.errors import Diagnostic, DiagnosticLabel, Severity
from qlang.lexer import ERROR_MESSAGES
from qlang.tokens import (
    PROTECTED_NAMESPACES,
    Token,
    TokenKind,
    amended,
    assignable,
    assigned,
    global_assign,
    param,
    qualified,
    split_qualified,
)

LINT_SOURCE = "qlint"

LEXER_ERROR = "LEXER_ERROR"
ASSIGN_RESERVED_WORD = "ASSIGN_RESERVED_WORD"
INVALID_ESCAPE = "INVALID_ESCAPE"
UNUSED_PARAM = "UNUSED_PARAM"
UNUSED_VAR = "UNUSED_VAR"
DECLARED_AFTER_USE = "DECLARED_AFTER_USE"
DEPRECATED_DATETIME = "DEPRECATED_DATETIME"

ALL_RULES: tuple[str, ...] = (
    LEXER_ERROR,
    ASSIGN_RESERVED_WORD,
    INVALID_ESCAPE,
    UNUSED_PARAM,
    UNUSED_VAR,
    DECLARED_AFTER_USE,
    DEPRECATED_DATETIME,
)

_VALID_ESCAPE = re.compile(r'\\(?:[ntr\\"]|[0-7]{3})')


@dataclass(frozen=True)
class LintItem:
    token: Token
    message: str
    severity: Severity
    code: str
    source: str = LINT_SOURCE
    label: str = ""
    notes: tuple[str, ...] = ()

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(
            severity=self.severity,
            code=self.code,
            message=self.message,
            labels=[DiagnosticLabel(span=self.token.span, message=self.label)],
            notes=list(self.notes),
        )


def lint(tokens: list[Token], disabled: Collection[str] = ()) -> list[LintItem]:
    """Run every enabled rule and return findings in source order."""
    items: list[LintItem] = []
    if LEXER_ERROR not in disabled:
        items.extend(_lexer_errors(tokens))
    if ASSIGN_RESERVED_WORD not in disabled:
        items.extend(_reserved_assignments(tokens))
    if INVALID_ESCAPE not in disabled:
        items.extend(_invalid_escapes(tokens))
    if DEPRECATED_DATETIME not in disabled:
        items.extend(_datetime_literals(tokens))
    items.extend(
        item for item in _local_usage(tokens) if item.code not in disabled
    )
    items.sort(key=lambda item: item.token.index)
    return items


# ── Rules ────────────────────────────────────────────────────────


def _lexer_errors(tokens: list[Token]) -> list[LintItem]:
    return [
        LintItem(
            tok,
            ERROR_MESSAGES.get(tok.error, "lexical error"),
            Severity.ERROR,
            LEXER_ERROR,
        )
        for tok in tokens
        if tok.error is not None
    ]


def _reserved_assignments(tokens: list[Token]) -> list[LintItem]:
    items: list[LintItem] = []
    for i, tok in enumerate(tokens[:-1]):
        nxt = tokens[i + 1]
        if tok.kind is TokenKind.KEYWORD and nxt.kind in (TokenKind.COLON, TokenKind.DOUBLE_COLON):
            items.append(LintItem(
                tok, f"assignment to reserved word '{tok.image}'",
                Severity.ERROR, ASSIGN_RESERVED_WORD,
                label="built-in name",
            ))
    for tok in tokens:
        if qualified(tok) and assigned(tok):
            namespace, _ = split_qualified(tok.image)
            if namespace in PROTECTED_NAMESPACES:
                items.append(LintItem(
                    tok, f"assignment into reserved namespace '.{namespace}'",
                    Severity.WARNING, ASSIGN_RESERVED_WORD,
                ))
    return items


def _invalid_escapes(tokens: list[Token]) -> list[LintItem]:
    items: list[LintItem] = []
    for tok in tokens:
        if tok.kind not in (TokenKind.STRING_LIT, TokenKind.CHAR_LIT) or tok.error:
            continue
        body = tok.image[1:-1]
        pos = body.find("\\")
        while pos >= 0:
            m = _VALID_ESCAPE.match(body, pos)
            if m is None:
                items.append(LintItem(
                    tok, f"invalid escape sequence '{body[pos:pos + 2]}'",
                    Severity.WARNING, INVALID_ESCAPE,
                ))
                break
            pos = body.find("\\", m.end())
    return items


def _datetime_literals(tokens: list[Token]) -> list[LintItem]:
    return [
        LintItem(
            tok, "datetime literals are deprecated",
            Severity.WARNING, DEPRECATED_DATETIME,
            notes=("use a timestamp literal instead, e.g. 2024.01.01D12:30:00",),
        )
        for tok in tokens
        if tok.kind is TokenKind.NUMBER_LIT and tok.error is None
        and (tok.image.endswith("z") or "T" in tok.image)
    ]


def _local_usage(tokens: list[Token]) -> list[LintItem]:
    """Unused parameters and locals, and locals read before assignment."""
    definitions: dict[tuple[int, str], list[Token]] = {}
    reads: dict[tuple[int, str], list[Token]] = {}
    for tok in tokens:
        if not assignable(tok) or tok.scope is None or qualified(tok):
            continue
        key = (tok.scope, tok.image)
        if assigned(tok) and not amended(tok) and not global_assign(tok):
            definitions.setdefault(key, []).append(tok)
        else:
            reads.setdefault(key, []).append(tok)

    items: list[LintItem] = []
    for key, defs in definitions.items():
        used = reads.get(key, [])
        first = defs[0]
        if not used:
            if param(first):
                items.append(LintItem(
                    first, f"unused parameter '{first.image}'",
                    Severity.WARNING, UNUSED_PARAM,
                    label="never read in this lambda",
                ))
            else:
                items.append(LintItem(
                    first, f"unused variable '{first.image}'",
                    Severity.WARNING, UNUSED_VAR,
                    label="assigned here, never read",
                ))
        elif not param(first) and used[0].index < first.index:
            items.append(LintItem(
                used[0], f"'{first.image}' used before it is assigned",
                Severity.WARNING, DECLARED_AFTER_USE,
                label="reads the global of the same name",
                notes=(
                    f"'{first.image}' becomes local at line {first.span.start_line}, "
                    f"column {first.span.start_col}",
                ),
            ))
    return items
