"""Query lexer.

Text is first split into large chunks with a single regex (quoted strings,
word runs and symbol runs), then symbol runs are split again into operator
tokens. Two-character operators are tried before single characters at every
position, so ``(<=`` becomes ``(`` and ``<=``.
"""

import re
from dataclasses import dataclass
from enum import Enum

from magpie.errors import LexError


class TokenKind(Enum):
    EOF = "end of query"

    OPEN_PAREN = "("
    CLOSE_PAREN = ")"

    STR = "string"
    NUM = "number"

    NAME = "name"
    DESC = "description"
    RARITY = "rarity"
    TEMPLE = "temple"
    TRIBE = "tribe"
    ATTACK = "attack"
    HEALTH = "health"
    SIGIL = "sigil"
    SPATK = "spatk"
    COSTS = "cost"
    COST_TYPE = "costtype"
    TRAIT = "trait"

    OR = "or"
    NOT = "!"

    COLON = ":"
    EQUAL = "="
    GREATER = ">"
    GREATER_EQ = ">="
    LESS = "<"
    LESS_EQ = "<="


@dataclass(frozen=True)
class Token:
    """A lexed token. ``value`` holds the literal for STR and NUM tokens."""

    kind: TokenKind
    value: str | int | None = None
    text: str = ""

    def __str__(self) -> str:
        if self.kind in (TokenKind.STR, TokenKind.NUM):
            if self.value is None:
                return self.kind.value
            return f'"{self.value}"' if self.kind is TokenKind.STR else str(self.value)
        if self.kind is TokenKind.EOF:
            return self.kind.value
        return f"'{self.text or self.kind.value}'"


# Field keywords and their short aliases
KEYWORDS: dict[str, TokenKind] = {
    "name": TokenKind.NAME,
    "n": TokenKind.NAME,
    "description": TokenKind.DESC,
    "d": TokenKind.DESC,
    "rarity": TokenKind.RARITY,
    "r": TokenKind.RARITY,
    "temple": TokenKind.TEMPLE,
    "tp": TokenKind.TEMPLE,
    "tribe": TokenKind.TRIBE,
    "tb": TokenKind.TRIBE,
    "attack": TokenKind.ATTACK,
    "a": TokenKind.ATTACK,
    "health": TokenKind.HEALTH,
    "h": TokenKind.HEALTH,
    "sigil": TokenKind.SIGIL,
    "s": TokenKind.SIGIL,
    "spatk": TokenKind.SPATK,
    "sp": TokenKind.SPATK,
    "cost": TokenKind.COSTS,
    "c": TokenKind.COSTS,
    "costtype": TokenKind.COST_TYPE,
    "ct": TokenKind.COST_TYPE,
    "trait": TokenKind.TRAIT,
    "tr": TokenKind.TRAIT,
    "or": TokenKind.OR,
}

# Operators, longest first
SYMBOLS: list[tuple[str, TokenKind]] = [
    (">=", TokenKind.GREATER_EQ),
    ("<=", TokenKind.LESS_EQ),
    ("(", TokenKind.OPEN_PAREN),
    (")", TokenKind.CLOSE_PAREN),
    ("!", TokenKind.NOT),
    (":", TokenKind.COLON),
    ("=", TokenKind.EQUAL),
    (">", TokenKind.GREATER),
    ("<", TokenKind.LESS),
]

# Groups: quoted string, word run, symbol run, unterminated quote
CHUNK_PATTERN = re.compile(r'"([^"]*)"|([-\w]+)|([^\s\w"-]+)|(")')

INTEGER_PATTERN = re.compile(r"-?[0-9]+")


def _lex_word(word: str) -> Token:
    kind = KEYWORDS.get(word.lower())
    if kind is not None:
        return Token(kind, text=word)
    if INTEGER_PATTERN.fullmatch(word):
        return Token(TokenKind.NUM, int(word), text=word)
    return Token(TokenKind.STR, word, text=word)


def _lex_symbols(run: str) -> list[Token]:
    tokens = []
    pos = 0
    while pos < len(run):
        for symbol, kind in SYMBOLS:
            if run.startswith(symbol, pos):
                tokens.append(Token(kind, text=symbol))
                pos += len(symbol)
                break
        else:
            raise LexError(run[pos])
    return tokens


def tokenize(query: str) -> list[Token]:
    """Split query text into tokens, ending with an EOF token.

    Raises:
        LexError: If the text contains an unknown symbol or an unclosed quote
    """
    tokens: list[Token] = []
    for match in CHUNK_PATTERN.finditer(query):
        string, word, symbols, quote = match.groups()
        if quote is not None:
            raise LexError(quote, hint='Close quoted text with a matching "')
        if string is not None:
            tokens.append(Token(TokenKind.STR, string, text=match.group(0)))
        elif word is not None:
            tokens.append(_lex_word(word))
        else:
            tokens.extend(_lex_symbols(symbols))

    tokens.append(Token(TokenKind.EOF))
    return tokens
