"""Query parser.

A recursive descent parser turning lexer tokens into keyword nodes:

    program = { expr }
    expr    = not { "or" not }
    not     = [ "!" ] keyword
    keyword = field ":" ( NUMBER | STRING )
            | cmpfield ( ":" | "=" | ">" | "<" | ">=" | "<=" ) NUMBER
            | "(" expr ")"

Keyword values are kept as raw text; the compiler decides what they mean.
"""

from dataclasses import dataclass
from typing import Union

from magpie.errors import ExpectedTokenError, ExpectedTokensError, InvalidKeywordError
from magpie.filters import QueryOrder
from magpie.query_lexer import KEYWORDS, Token, TokenKind, tokenize

# Fields that take a string value after ":"
STRING_FIELDS = frozenset(
    {
        TokenKind.NAME,
        TokenKind.DESC,
        TokenKind.RARITY,
        TokenKind.TEMPLE,
        TokenKind.TRIBE,
        TokenKind.SIGIL,
        TokenKind.SPATK,
        TokenKind.COSTS,
        TokenKind.COST_TYPE,
        TokenKind.TRAIT,
    }
)

# Fields that take a comparison and a number
COMPARE_FIELDS = frozenset({TokenKind.ATTACK, TokenKind.HEALTH})

COMPARATORS: dict[TokenKind, QueryOrder] = {
    TokenKind.COLON: QueryOrder.EQUAL,
    TokenKind.EQUAL: QueryOrder.EQUAL,
    TokenKind.GREATER: QueryOrder.GREATER,
    TokenKind.GREATER_EQ: QueryOrder.GREATER_EQUAL,
    TokenKind.LESS: QueryOrder.LESS,
    TokenKind.LESS_EQ: QueryOrder.LESS_EQUAL,
}

# Keyword-alias words are accepted as literal values, e.g. rarity:r
_WORD_KINDS = frozenset(KEYWORDS.values())


@dataclass(frozen=True)
class FieldKeyword:
    """``field:value`` for a string field."""

    field: TokenKind
    value: str


@dataclass(frozen=True)
class CompareKeyword:
    """``field<op>number`` for a numeric field."""

    field: TokenKind
    order: QueryOrder
    value: int


@dataclass(frozen=True)
class OrKeyword:
    left: "Keyword"
    right: "Keyword"


@dataclass(frozen=True)
class NotKeyword:
    inner: "Keyword"


Keyword = Union[FieldKeyword, CompareKeyword, OrKeyword, NotKeyword]


class QueryParser:
    """Parser over an immutable token list with one token of lookahead."""

    def __init__(self, tokens: list[Token]):
        if not tokens or tokens[-1].kind is not TokenKind.EOF:
            tokens = [*tokens, Token(TokenKind.EOF)]
        self._tokens = tokens
        self._pos = 0

    @classmethod
    def from_text(cls, query: str) -> "QueryParser":
        return cls(tokenize(query))

    def parse(self) -> list[Keyword]:
        """Parse every expression up to the end of the query.

        Raises:
            ParseError: On the first token that does not fit the grammar
        """
        ast = []
        while self._current.kind is not TokenKind.EOF:
            ast.append(self.parse_or())
        return ast

    def parse_or(self) -> Keyword:
        left = self.parse_not()
        while self._current.kind is TokenKind.OR:
            self._advance()
            left = OrKeyword(left, self.parse_not())
        return left

    def parse_not(self) -> Keyword:
        if self._current.kind is not TokenKind.NOT:
            return self.parse_keyword()
        self._advance()
        return NotKeyword(self.parse_keyword())

    def parse_keyword(self) -> Keyword:
        kind = self._current.kind

        if kind in STRING_FIELDS:
            return self._parse_field_keyword()
        if kind in COMPARE_FIELDS:
            return self._parse_compare_keyword()
        if kind is TokenKind.OPEN_PAREN:
            self._advance()
            inner = self.parse_or()
            self._expect(TokenKind.CLOSE_PAREN)
            return inner

        raise InvalidKeywordError(self._advance())

    def _parse_field_keyword(self) -> FieldKeyword:
        field = self._advance().kind
        self._expect(TokenKind.COLON)

        token = self._advance()
        if token.kind in (TokenKind.STR, TokenKind.NUM):
            return FieldKeyword(field, str(token.value))
        if token.kind in _WORD_KINDS:
            return FieldKeyword(field, token.text)

        raise ExpectedTokensError([Token(TokenKind.NUM), Token(TokenKind.STR)], token)

    def _parse_compare_keyword(self) -> CompareKeyword:
        field = self._advance().kind

        token = self._advance()
        order = COMPARATORS.get(token.kind)
        if order is None:
            raise ExpectedTokensError([Token(kind) for kind in COMPARATORS], token)

        token = self._advance()
        if token.kind is not TokenKind.NUM:
            raise ExpectedTokenError(Token(TokenKind.NUM), token)

        return CompareKeyword(field, order, token.value)

    @property
    def _current(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        # Stay on EOF once reached
        if token.kind is not TokenKind.EOF:
            self._pos += 1
        return token

    def _expect(self, kind: TokenKind) -> Token:
        token = self._advance()
        if token.kind is not kind:
            raise ExpectedTokenError(Token(kind), token)
        return token


def parse_query(query: str) -> list[Keyword]:
    """Tokenize and parse query text into keyword nodes."""
    return QueryParser.from_text(query).parse()
