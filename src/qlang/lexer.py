"""Lexer for the q language.

Produces a flat stream of positioned tokens. The lexer is tolerant of
malformed input: a bad literal becomes a token carrying an error code and
scanning resumes right after it, so editor features keep working on
half-typed text.
"""

from __future__ import annotations

import re

from qlang.source import Span
from qlang.tokens import KEYWORDS, Token, TokenKind

# Lexical error codes carried on Token.error
UNTERMINATED_STRING = "E101"
INVALID_NUMBER = "E102"
UNEXPECTED_CHARACTER = "E103"

ERROR_MESSAGES: dict[str, str] = {
    UNTERMINATED_STRING: "unterminated string literal",
    INVALID_NUMBER: "invalid numeric literal",
    UNEXPECTED_CHARACTER: "unexpected character",
}

_OPERATOR_CHARS = "+-*%!&|<>=~,^#_$?@."
_TWO_CHAR_OPERATORS = frozenset({"<=", ">=", "<>"})
_ITERATORS = frozenset({"'", "/", "\\", "':", "/:", "\\:"})
_PUNCTUATION = {
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    ";": TokenKind.SEMICOLON,
}

_NUMBER_SUFFIX = re.compile(r"[bhijefcpmdznuvtg]?|[NnWw][bhijefcpmdznuvtg]?")


class Lexer:
    """Tokenizes q source code."""

    def __init__(self, source: str, filename: str = "<stdin>") -> None:
        self.source = source
        self.filename = filename
        self.pos = 0
        self.line = 1
        self.col = 1
        self.tokens: list[Token] = []

    def lex(self) -> list[Token]:
        """Tokenize the entire source and return the token list."""
        while self.pos < len(self.source):
            if self.col == 1 and self._handle_line_start():
                continue
            ch = self.source[self.pos]
            if ch in " \t\r\n":
                self._advance()
            elif ch == "/" and self._starts_comment():
                self._skip_line_comment()
            elif ch == '"':
                self._lex_string()
            elif ch == "`":
                self._lex_symbol()
            elif ch.isdigit() or (ch == "." and self._peek(1).isdigit()):
                self._lex_number()
            elif _is_name_start(ch) or (ch == "." and _is_name_start(self._peek(1))):
                self._lex_identifier()
            else:
                self._lex_operator_or_punct()
        return self.tokens

    # ── Helpers ───────────────────────────────────────────────────

    def _peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        if idx < len(self.source):
            return self.source[idx]
        return "\0"

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return ch

    def _emit(
        self, kind: TokenKind, value: str, start_line: int, start_col: int,
        error: str | None = None,
    ) -> Token:
        end_col = self.col - 1 if self.col > 1 else 1
        span = Span(self.filename, start_line, start_col, self.line, end_col)
        tok = Token(kind, value, span, index=len(self.tokens), error=error)
        self.tokens.append(tok)
        return tok

    def _rest_of_line(self) -> str:
        end = self.source.find("\n", self.pos)
        if end < 0:
            end = len(self.source)
        return self.source[self.pos:end]

    # ── Line-start forms ─────────────────────────────────────────

    def _handle_line_start(self) -> bool:
        """Handle block comments, script end and system commands.

        Returns True when the line was consumed.
        """
        line = self._rest_of_line().rstrip()
        if line == "/":
            self._skip_block_comment()
            return True
        if line == "\\":
            # A lone backslash ends the script; the rest is commentary.
            while self.pos < len(self.source):
                self._advance()
            return True
        if line.startswith("\\") and len(line) > 1 and not line[1].isspace():
            start_line = self.line
            start_col = self.col
            for _ in range(len(line)):
                self._advance()
            self._emit(TokenKind.COMMAND, line, start_line, start_col)
            return True
        return False

    def _skip_block_comment(self) -> None:
        while self.pos < len(self.source):
            line = self._rest_of_line()
            for _ in range(len(line)):
                self._advance()
            if self.pos < len(self.source):
                self._advance()  # newline
            if line.rstrip() == "\\":
                return

    # ── Comments ─────────────────────────────────────────────────

    def _starts_comment(self) -> bool:
        """A slash starts a comment at line start or after whitespace."""
        if self.pos == 0 or self.col == 1:
            return True
        return self.source[self.pos - 1] in " \t"

    def _skip_line_comment(self) -> None:
        while self.pos < len(self.source) and self.source[self.pos] != "\n":
            self._advance()

    # ── Strings ──────────────────────────────────────────────────

    def _lex_string(self) -> None:
        start_pos = self.pos
        start_line = self.line
        start_col = self.col
        self._advance()  # opening "
        while self.pos < len(self.source) and self.source[self.pos] != '"':
            if self.source[self.pos] == "\\" and self.pos + 1 < len(self.source):
                self._advance()
            self._advance()

        if self.pos >= len(self.source):
            # Unterminated: keep only the first line so the rest of the
            # file is still tokenized.
            self.pos = start_pos
            self.line = start_line
            self.col = start_col
            line = self._rest_of_line()
            for _ in range(len(line)):
                self._advance()
            self._emit(
                TokenKind.STRING_LIT, line, start_line, start_col,
                error=UNTERMINATED_STRING,
            )
            return

        self._advance()  # closing "
        image = self.source[start_pos:self.pos]
        kind = TokenKind.CHAR_LIT if _is_char_body(image[1:-1]) else TokenKind.STRING_LIT
        self._emit(kind, image, start_line, start_col)

    # ── Symbols ──────────────────────────────────────────────────

    def _lex_symbol(self) -> None:
        start_pos = self.pos
        start_line = self.line
        start_col = self.col
        while self._peek() == "`":
            self._advance()
            is_handle = self._peek() == ":"
            while self.pos < len(self.source):
                ch = self.source[self.pos]
                if ch.isalnum() or ch in "_.":
                    self._advance()
                elif is_handle and ch in ":/":
                    self._advance()
                else:
                    break
        self._emit(TokenKind.SYMBOL_LIT, self.source[start_pos:self.pos], start_line, start_col)

    # ── Numbers ──────────────────────────────────────────────────

    def _lex_number(self) -> None:
        start_pos = self.pos
        start_line = self.line
        start_col = self.col
        error = None

        if self._peek() == "0" and self._peek(1) == "x":
            self._advance()
            self._advance()
            while self._peek() in "0123456789abcdefABCDEF":
                self._advance()
            if self._peek().isalnum():
                error = INVALID_NUMBER
                self._skip_alnum()
        else:
            self._lex_digits()
            while True:
                ch = self._peek()
                nxt = self._peek(1)
                if ch == "." and nxt.isdigit():
                    self._advance()
                    self._lex_digits()
                elif ch == "." and not _is_name_start(nxt) and nxt != ".":
                    self._advance()
                elif ch == ":" and nxt.isdigit() and self._peek(2).isdigit():
                    self._advance()
                    self._lex_digits()
                elif ch == "D" and nxt.isdigit():
                    self._advance()
                    self._lex_digits()
                elif ch == "T" and nxt.isdigit():
                    self._advance()
                    self._lex_digits()
                elif ch == "e" and (nxt.isdigit() or (nxt in "+-" and self._peek(2).isdigit())):
                    self._advance()
                    self._advance()
                    self._lex_digits()
                else:
                    break
            body = self.source[start_pos:self.pos]
            suffix_start = self.pos
            self._skip_alnum()
            suffix = self.source[suffix_start:self.pos]
            if not _NUMBER_SUFFIX.fullmatch(suffix):
                error = INVALID_NUMBER
            elif suffix == "b" and not set(body) <= {"0", "1"}:
                error = INVALID_NUMBER

        self._emit(
            TokenKind.NUMBER_LIT, self.source[start_pos:self.pos],
            start_line, start_col, error=error,
        )

    def _lex_digits(self) -> None:
        while self._peek().isdigit():
            self._advance()

    def _skip_alnum(self) -> None:
        while self.pos < len(self.source) and self.source[self.pos].isalnum():
            self._advance()

    # ── Identifiers and Keywords ─────────────────────────────────

    def _lex_identifier(self) -> None:
        start_pos = self.pos
        start_line = self.line
        start_col = self.col
        if self._peek() == ".":
            self._advance()
        while self.pos < len(self.source):
            ch = self.source[self.pos]
            if ch.isalnum() or ch == "_":
                self._advance()
            elif ch == "." and _is_name_start(self._peek(1)):
                self._advance()
            else:
                break
        word = self.source[start_pos:self.pos]
        kind = TokenKind.KEYWORD if word in KEYWORDS else TokenKind.IDENTIFIER
        self._emit(kind, word, start_line, start_col)

    # ── Operators and Punctuation ────────────────────────────────

    def _lex_operator_or_punct(self) -> None:
        start_line = self.line
        start_col = self.col
        ch = self.source[self.pos]
        two = ch + self._peek(1)

        if two == "::":
            self._advance()
            self._advance()
            self._emit(TokenKind.DOUBLE_COLON, two, start_line, start_col)
            return
        if two in _ITERATORS:
            self._advance()
            self._advance()
            self._emit(TokenKind.ITERATOR, two, start_line, start_col)
            return
        if two in _TWO_CHAR_OPERATORS:
            self._advance()
            self._advance()
            self._emit(TokenKind.OPERATOR, two, start_line, start_col)
            return
        if ch in _OPERATOR_CHARS and self._peek(1) == ":":
            self._advance()
            self._advance()
            self._emit(TokenKind.AMEND_OP, two, start_line, start_col)
            return

        self._advance()
        if ch in _PUNCTUATION:
            self._emit(_PUNCTUATION[ch], ch, start_line, start_col)
        elif ch == ":":
            self._emit(TokenKind.COLON, ch, start_line, start_col)
        elif ch in _ITERATORS:
            self._emit(TokenKind.ITERATOR, ch, start_line, start_col)
        elif ch in _OPERATOR_CHARS:
            self._emit(TokenKind.OPERATOR, ch, start_line, start_col)
        else:
            self._emit(
                TokenKind.OPERATOR, ch, start_line, start_col,
                error=UNEXPECTED_CHARACTER,
            )


def _is_name_start(ch: str) -> bool:
    return ch.isascii() and ch.isalpha()


def _is_char_body(body: str) -> bool:
    if len(body) == 1:
        return True
    if len(body) == 2 and body[0] == "\\":
        return True
    return len(body) == 4 and body[0] == "\\" and body[1:].isdigit()


def tokenize(text: str, filename: str = "<stdin>") -> list[Token]:
    """Convert q source text into positioned tokens. Never raises."""
    return Lexer(text, filename).lex()
