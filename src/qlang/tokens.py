"""Token kinds, token representation and token predicates for the q lexer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qlang.source import Span


class TokenKind(Enum):
    # Names
    IDENTIFIER = auto()
    KEYWORD = auto()

    # Literals
    NUMBER_LIT = auto()
    CHAR_LIT = auto()
    STRING_LIT = auto()
    SYMBOL_LIT = auto()

    # Operators
    OPERATOR = auto()
    ITERATOR = auto()
    COLON = auto()
    DOUBLE_COLON = auto()
    AMEND_OP = auto()

    # Punctuation
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LBRACE = auto()
    RBRACE = auto()
    SEMICOLON = auto()

    # System command (\d .ns, \l file.q, ...)
    COMMAND = auto()


class TokenFlag(Flag):
    NONE = 0
    ASSIGNED = auto()
    AMENDED = auto()
    LAMBDA = auto()
    PARAM = auto()
    GLOBAL = auto()


@dataclass(eq=False)
class Token:
    kind: TokenKind
    image: str
    span: Span
    index: int = -1
    error: str | None = None
    namespace: str | None = None
    scope: int | None = None
    tangled: int | None = None
    assignment: list[int] | None = None
    order: int = 0
    flags: TokenFlag = field(default=TokenFlag.NONE)


KEYWORDS: frozenset[str] = frozenset({
    "abs", "acos", "aj", "aj0", "ajf", "ajf0", "all", "and", "any", "asc",
    "asin", "asof", "atan", "attr", "avg", "avgs", "bin", "binr", "by",
    "ceiling", "cols", "cor", "cos", "count", "cov", "cross", "csv", "cut",
    "delete", "deltas", "desc", "dev", "differ", "distinct", "div", "do",
    "dsave", "each", "ej", "ema", "enlist", "eval", "except", "exec", "exit",
    "exp", "fby", "fills", "first", "fkeys", "flip", "floor", "from", "get",
    "getenv", "group", "gtime", "hclose", "hcount", "hdel", "hopen", "hsym",
    "iasc", "idesc", "if", "ij", "ijf", "in", "insert", "inter", "inv", "key",
    "keys", "last", "like", "lj", "ljf", "load", "log", "lower", "lsq",
    "ltime", "ltrim", "mavg", "max", "maxs", "mcount", "md5", "mdev", "med",
    "meta", "min", "mins", "mmax", "mmin", "mmu", "mod", "msum", "neg",
    "next", "not", "null", "or", "over", "parse", "peach", "pj", "prd",
    "prds", "prev", "prior", "rand", "rank", "ratios", "raze", "read0",
    "read1", "reciprocal", "reval", "reverse", "rload", "rotate", "rsave",
    "rtrim", "save", "scan", "scov", "sdev", "select", "set", "setenv",
    "show", "signum", "sin", "sqrt", "ss", "ssr", "string", "sublist", "sum",
    "sums", "sv", "svar", "system", "tables", "tan", "til", "trim", "type",
    "uj", "ujf", "ungroup", "union", "update", "upper", "upsert", "value",
    "var", "view", "views", "vs", "wavg", "where", "while", "within", "wj",
    "wj1", "wsum", "ww", "xasc", "xbar", "xcol", "xcols", "xdesc", "xexp",
    "xgroup", "xkey", "xlog", "xprev", "xrank",
})

# Keywords that open a q-sql column list, closed by `from`.
SQL_KEYWORDS: frozenset[str] = frozenset({"select", "exec", "update", "delete"})

# Namespaces that user code must never assign into.
PROTECTED_NAMESPACES: frozenset[str] = frozenset({"q", "Q"})


# ── Predicates ───────────────────────────────────────────────────


def assignable(token: Token | None) -> bool:
    """A name that can syntactically be an assignment target."""
    return token is not None and token.kind is TokenKind.IDENTIFIER


def assigned(token: Token | None) -> bool:
    return token is not None and TokenFlag.ASSIGNED in token.flags


def amended(token: Token | None) -> bool:
    return token is not None and TokenFlag.AMENDED in token.flags


def lambda_(token: Token | None) -> bool:
    """True when the token is assigned a function literal."""
    return token is not None and TokenFlag.LAMBDA in token.flags


def param(token: Token | None) -> bool:
    return token is not None and TokenFlag.PARAM in token.flags


def global_assign(token: Token | None) -> bool:
    """True when a target inside a lambda is bound with `::`."""
    return token is not None and TokenFlag.GLOBAL in token.flags


def in_lambda(token: Token | None) -> bool:
    return token is not None and token.scope is not None


def qualified(token: Token | None) -> bool:
    """True when the image carries a namespace-dot prefix, e.g. `.ns.name`."""
    if token is None or token.kind is not TokenKind.IDENTIFIER:
        return False
    return token.image.startswith(".") and token.image.count(".") >= 2


def split_qualified(image: str) -> tuple[str | None, str]:
    """Split `.ns.sub.name` into (`ns.sub`, `name`)."""
    if image.startswith(".") and image.count(".") >= 2:
        namespace, _, name = image[1:].rpartition(".")
        return namespace, name
    return None, image


def identifier(token: Token, namespace: str | None = None) -> str:
    """Return the name as it must be written from inside `namespace`.

    With the default root namespace this is the canonical, fully
    qualified name of the token.
    """
    if qualified(token):
        target, name = split_qualified(token.image)
        if target == namespace:
            return name
        return token.image
    if token.namespace is None or token.namespace == namespace:
        return token.image
    return f".{token.namespace}.{token.image}"


def token_id(token: Token) -> str:
    """Stable debug identity of a token within one parse."""
    span = token.span
    return f"{token.image}@{span.start_line}:{span.start_col}#{token.index}"


def describe(token: Token, tokens: list[Token]) -> str:
    """One-line dump of a token's annotations, for debugging the parser."""
    parts = [token.kind.name]
    if token.namespace:
        parts.append(f"({token.namespace})")
    if token.error is not None:
        parts.append(f"E={token.error}")
    if token.order:
        parts.append(f"O={token.order}")
    if token.tangled is not None:
        parts.append(f"T={token_id(tokens[token.tangled])}")
    if token.scope is not None:
        parts.append(f"S={token_id(tokens[token.scope])}")
    if token.assignment:
        parts.append("A=" + " ".join(token_id(tokens[i]) for i in token.assignment))
    if token.flags:
        parts.append("F=" + "|".join(flag.name for flag in TokenFlag if flag in token.flags))
    return " ".join(parts)
