"""Errors raised while turning query text into filters.

Every error carries a message and a hint so outer layers can show something
useful without knowing which stage failed.
"""

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from magpie.query_lexer import Token


# Supported syntax for error messages
SUPPORTED_SYNTAX = [
    'name: n:stoat, name:"river snapper"',
    "description: d:bones",
    "rarity: r:common, r:rare, rarity:unique, r:s (side deck)",
    "temple: tp:beast, tp:undead, tp:tech, tp:magick, tp:fool, tp:artistry",
    "tribe: tb:canine",
    "attack: a:2, a>=3, attack<1",
    "health: h:1, h>2, health<=4",
    'sigil: s:airborne, sigil:"touch of death"',
    "special attack: sp:mox, sp:mirror, sp:ant, sp:bell, sp:card",
    "cost: c:2b, c:4o, c:3e, c:3r2g (b blood, o bone, e energy, r/g/u/y mox)",
    "cost type: ct:b, ct:mo (has any of blood, bone, energy, mox)",
    "trait: tr:conductive, tr:ban, tr:terrain, tr:hard, tr:\"Some Trait\"",
    "boolean: implicit AND, or, ! (negation), parentheses",
]

SYNTAX_SUMMARY = (
    "Fields: name/n, description/d, rarity/r, temple/tp, tribe/tb, attack/a, "
    "health/h, sigil/s, spatk/sp, cost/c, costtype/ct, trait/tr. "
    "Numeric fields take :, =, >, <, >=, <=. Combine with or, ! and parentheses."
)


class QueryError(Exception):
    """Error turning query text into filters, with a helpful hint."""

    def __init__(
        self,
        message: str,
        hint: str | None = None,
        supported_syntax: list[str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint or "Check the query syntax"
        self.supported_syntax = supported_syntax or SUPPORTED_SYNTAX

    def __str__(self) -> str:
        return f"{self.message}. Hint: {self.hint}"


class LexError(QueryError):
    """Query text contains a symbol the lexer does not know."""

    def __init__(
        self,
        symbol: str,
        hint: str = "Operators are : = > < >= <= ! ( ) and the word or",
    ):
        super().__init__(f"Unrecognized token: {symbol}", hint=hint)
        self.symbol = symbol


class ParseError(QueryError):
    """Token stream does not follow the query grammar."""


class InvalidKeywordError(ParseError):
    def __init__(self, token: "Token"):
        super().__init__(
            f"Invalid keyword {token}",
            hint="Each term must start with a field such as name:, rarity: or attack>",
        )
        self.token = token


class ExpectedTokenError(ParseError):
    def __init__(self, expected: "Token", found: "Token"):
        super().__init__(f"Expected {expected} but found {found}")
        self.expected = expected
        self.found = found


class ExpectedTokensError(ParseError):
    def __init__(self, expected: Sequence["Token"], found: "Token"):
        options = ", ".join(str(token) for token in expected)
        super().__init__(f"Expected one of [{options}] but found {found}")
        self.expected = list(expected)
        self.found = found


class CompileError(QueryError):
    """A known field was given a value it does not understand."""

    def __init__(self, field: str, text: str, hint: str | None = None):
        super().__init__(f"Invalid {field}: {text!r}", hint=hint)
        self.field = field
        self.text = text
