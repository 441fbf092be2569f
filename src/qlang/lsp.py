"""q Language Server — pygls-based LSP for .q files.

Provides outline, go-to-definition, references, rename, completion and
advisory lint diagnostics via stdio transport. Every request re-parses
the full document text; no parse state is kept between requests.
"""

from __future__ import annotations

import logging
from collections.abc import Collection

from lsprotocol import types as lsp
from pygls.lsp.server import LanguageServer

from qlang import __version__
from qlang.config import ServerConfig, settings_from_client
from qlang.errors import Severity
from qlang.linter import LintItem, lint
from qlang.parser import parse
from qlang.resolver import FindKind, find_identifiers, rename_text, token_at
from qlang.tokens import (
    Token,
    amended,
    assignable,
    assigned,
    describe,
    identifier,
    in_lambda,
    lambda_,
    token_id,
)

log = logging.getLogger(__name__)

# ── Conversion helpers ────────────────────────────────────────────

_SEVERITY_MAP = {
    Severity.ERROR: lsp.DiagnosticSeverity.Error,
    Severity.WARNING: lsp.DiagnosticSeverity.Warning,
    Severity.NOTE: lsp.DiagnosticSeverity.Information,
}


def span_to_range(span: object) -> lsp.Range:
    """Convert a 1-indexed inclusive Span to a 0-indexed LSP Range."""
    sl = getattr(span, "start_line", None) or 1
    sc = getattr(span, "start_col", None) or 1
    el = getattr(span, "end_line", None) or 1
    ec = getattr(span, "end_col", None) or 1
    return lsp.Range(
        start=lsp.Position(line=sl - 1, character=sc - 1),
        end=lsp.Position(line=el - 1, character=ec),
    )


def position_to_token(tokens: list[Token], position: lsp.Position) -> Token | None:
    return token_at(tokens, position.line + 1, position.character + 1)


def lint_diagnostic(item: LintItem) -> lsp.Diagnostic:
    return lsp.Diagnostic(
        range=span_to_range(item.token.span),
        message=item.message,
        severity=_SEVERITY_MAP[item.severity],
        code=item.code,
        source=item.source,
    )


# ── Request logic ────────────────────────────────────────────────


def lint_diagnostics(tokens: list[Token], disabled: Collection[str] = ()) -> list[lsp.Diagnostic]:
    return [lint_diagnostic(item) for item in lint(tokens, disabled)]


def locations(
    kind: FindKind, uri: str, tokens: list[Token], position: lsp.Position,
) -> list[lsp.Location]:
    source = position_to_token(tokens, position)
    return [
        lsp.Location(uri=uri, range=span_to_range(tok.span))
        for tok in find_identifiers(kind, tokens, source)
    ]


def rename_edit(
    uri: str, tokens: list[Token], position: lsp.Position, new_name: str,
) -> lsp.WorkspaceEdit | None:
    source = position_to_token(tokens, position)
    edits = [
        lsp.TextEdit(range=span_to_range(tok.span), new_text=rename_text(tok, new_name))
        for tok in find_identifiers(FindKind.RENAME, tokens, source)
    ]
    if not edits:
        return None
    return lsp.WorkspaceEdit(changes={uri: edits})


def completion_items(tokens: list[Token], position: lsp.Position) -> list[lsp.CompletionItem]:
    source = position_to_token(tokens, position)
    namespace = source.namespace if source is not None else None
    return [
        lsp.CompletionItem(
            label=tok.image,
            label_details=lsp.CompletionItemLabelDetails(detail=f" {identifier(tok)}"),
            insert_text=identifier(tok, namespace),
            kind=(
                lsp.CompletionItemKind.Function if lambda_(tok)
                else lsp.CompletionItemKind.Variable
            ),
        )
        for tok in find_identifiers(FindKind.COMPLETION, tokens, source)
    ]


def document_symbols(tokens: list[Token], *, debug: bool = False) -> list[lsp.DocumentSymbol]:
    """Outline of top-level assignments, lambda locals nested beneath."""
    if debug:
        return [_debug_symbol(tok, tokens) for tok in tokens]
    return [
        _symbol(tok, tokens)
        for tok in tokens
        if assignable(tok) and assigned(tok) and not in_lambda(tok)
    ]


def _symbol(token: Token, tokens: list[Token]) -> lsp.DocumentSymbol:
    rng = span_to_range(token.span)
    children = []
    if lambda_(token):
        children = [
            _symbol(child, tokens)
            for child in tokens
            if assignable(child) and assigned(child) and child.scope == token.tangled
        ]
    return lsp.DocumentSymbol(
        name=identifier(token).strip(),
        detail="Amend" if amended(token) else None,
        kind=lsp.SymbolKind.Object if lambda_(token) else lsp.SymbolKind.Variable,
        range=rng,
        selection_range=rng,
        children=children,
    )


def _debug_symbol(token: Token, tokens: list[Token]) -> lsp.DocumentSymbol:
    rng = span_to_range(token.span)
    return lsp.DocumentSymbol(
        name=token_id(token),
        detail=describe(token, tokens),
        kind=lsp.SymbolKind.Variable,
        range=rng,
        selection_range=rng,
    )


# ── Server ────────────────────────────────────────────────────────


class QLanguageServer(LanguageServer):
    """Language server holding only client settings between requests."""

    def __init__(self) -> None:
        super().__init__(
            "qlang-lsp", __version__,
            text_document_sync_kind=lsp.TextDocumentSyncKind.Full,
        )
        self.settings = ServerConfig()
        self.disabled_rules: list[str] = []

    def parse_document(self, uri: str) -> list[Token]:
        document = self.workspace.get_text_document(uri)
        tokens = parse(document.source, uri)
        log.debug("parsed %s: %d tokens", uri, len(tokens))
        return tokens


server = QLanguageServer()


def _publish(uri: str) -> None:
    if not server.settings.linting:
        return
    diagnostics = lint_diagnostics(server.parse_document(uri), server.disabled_rules)
    server.text_document_publish_diagnostics(lsp.PublishDiagnosticsParams(
        uri=uri,
        diagnostics=diagnostics,
    ))


# ── LSP Feature Handlers ─────────────────────────────────────────


@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: lsp.DidOpenTextDocumentParams) -> None:
    _publish(params.text_document.uri)


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: lsp.DidChangeTextDocumentParams) -> None:
    _publish(params.text_document.uri)


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
def did_close(params: lsp.DidCloseTextDocumentParams) -> None:
    server.text_document_publish_diagnostics(lsp.PublishDiagnosticsParams(
        uri=params.text_document.uri,
        diagnostics=[],
    ))


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(params: lsp.DidChangeConfigurationParams) -> None:
    server.settings = settings_from_client(params.settings, server.settings)
    log.info("settings changed: debug=%s linting=%s", server.settings.debug, server.settings.linting)


@server.feature(lsp.TEXT_DOCUMENT_DOCUMENT_SYMBOL)
def document_symbol(params: lsp.DocumentSymbolParams) -> list[lsp.DocumentSymbol]:
    tokens = server.parse_document(params.text_document.uri)
    return document_symbols(tokens, debug=server.settings.debug)


@server.feature(lsp.TEXT_DOCUMENT_REFERENCES)
def references(params: lsp.ReferenceParams) -> list[lsp.Location]:
    uri = params.text_document.uri
    return locations(FindKind.REFERENCE, uri, server.parse_document(uri), params.position)


@server.feature(lsp.TEXT_DOCUMENT_DEFINITION)
def definition(params: lsp.DefinitionParams) -> list[lsp.Location]:
    uri = params.text_document.uri
    return locations(FindKind.DEFINITION, uri, server.parse_document(uri), params.position)


@server.feature(lsp.TEXT_DOCUMENT_RENAME)
def rename(params: lsp.RenameParams) -> lsp.WorkspaceEdit | None:
    uri = params.text_document.uri
    return rename_edit(uri, server.parse_document(uri), params.position, params.new_name)


@server.feature(
    lsp.TEXT_DOCUMENT_COMPLETION,
    lsp.CompletionOptions(resolve_provider=False),
)
def completion(params: lsp.CompletionParams) -> list[lsp.CompletionItem]:
    tokens = server.parse_document(params.text_document.uri)
    return completion_items(tokens, params.position)


# ── Entry point ──────────────────────────────────────────────────


def main(
    *, linting: bool = False, debug: bool = False, disabled_rules: Collection[str] = (),
) -> None:
    """Start the q language server on stdio."""
    server.settings = ServerConfig(debug=debug, linting=linting)
    server.disabled_rules = list(disabled_rules)
    log.info("starting qlang-lsp %s", __version__)
    server.start_io()
