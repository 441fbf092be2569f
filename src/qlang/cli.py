"""qlang command-line interface."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from qlang import __version__
from qlang.config import QlangConfig, load_config_or_default
from qlang.errors import ConfigError, DiagnosticRenderer, Severity
from qlang.linter import lint
from qlang.parser import parse
from qlang.resolver import FindKind, find_identifiers, token_at
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

_FIND_KINDS = {kind.name.lower(): kind for kind in FindKind}


def _load_config(path: Path) -> QlangConfig:
    try:
        return load_config_or_default(path)
    except ConfigError as e:
        click.echo(f"error: {e}", err=True)
        raise SystemExit(1)


def _parse_file(path: Path) -> list[Token]:
    return parse(path.read_text(), str(path))


@click.group()
@click.version_option(__version__, prog_name="qlang")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
def main(verbose: bool) -> None:
    """Source intelligence for the q language."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--linting/--no-linting", default=None, help="Publish lint diagnostics.")
def lsp(linting: bool | None) -> None:
    """Start the q language server on stdio."""
    from qlang.lsp import main as lsp_main

    config = _load_config(Path.cwd())
    if linting is None:
        linting = config.server.linting
    lsp_main(
        linting=linting, debug=config.server.debug, disabled_rules=config.lint.disable,
    )


@main.command(name="lint")
@click.argument("path", default=".", type=click.Path(exists=True))
@click.option("--no-color", is_flag=True, help="Disable colored output.")
def lint_cmd(path: str, no_color: bool) -> None:
    """Lint q source files."""
    target = Path(path)
    config = _load_config(target)
    q_files = sorted(target.rglob("*.q")) if target.is_dir() else [target]
    if not q_files:
        click.echo("warning: no .q files found", err=True)
        return

    renderer = DiagnosticRenderer(color=not no_color)
    had_errors = False
    findings = 0
    for q_file in q_files:
        log.debug("linting %s", q_file)
        for item in lint(_parse_file(q_file), config.lint.disable):
            click.echo(renderer.render(item.to_diagnostic()), err=True)
            findings += 1
            if item.severity == Severity.ERROR:
                had_errors = True

    click.echo(f"linted {len(q_files)} file(s), {findings} finding(s)")
    if had_errors:
        raise SystemExit(1)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def outline(file: str) -> None:
    """Print the top-level assignments of a q file."""
    tokens = _parse_file(Path(file))
    for tok in tokens:
        if assignable(tok) and assigned(tok) and not in_lambda(tok):
            _echo_symbol(tok, tokens, 0)


def _echo_symbol(token: Token, tokens: list[Token], depth: int) -> None:
    kind = "function" if lambda_(token) else "variable"
    amend = " (amend)" if amended(token) else ""
    span = token.span
    click.echo(
        f"{'  ' * depth}{identifier(token)} {kind}{amend} "
        f"{span.start_line}:{span.start_col}"
    )
    if lambda_(token):
        for child in tokens:
            if assignable(child) and assigned(child) and child.scope == token.tangled:
                _echo_symbol(child, tokens, depth + 1)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def tokens(file: str) -> None:
    """Dump the annotated token stream of a q file."""
    toks = _parse_file(Path(file))
    for tok in toks:
        click.echo(f"{token_id(tok)} {describe(tok, toks)}")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("line", type=click.IntRange(min=1))
@click.argument("col", type=click.IntRange(min=1))
@click.option(
    "--kind", "kind_name", type=click.Choice(sorted(_FIND_KINDS)),
    default="reference", show_default=True, help="What to look up.",
)
def find(file: str, line: int, col: int, kind_name: str) -> None:
    """Find definitions, references or completions at LINE:COL (1-based)."""
    toks = _parse_file(Path(file))
    source = token_at(toks, line, col)
    if source is None:
        click.echo("no token at position", err=True)
        raise SystemExit(1)
    for tok in find_identifiers(_FIND_KINDS[kind_name], toks, source):
        click.echo(f"{tok.span} {tok.image}")
