"""Query language parser.

Grammar (default operator OR)::

    query    := or_expr EOF
    or_expr  := and_expr ((OR | "||")? and_expr)*
    and_expr := unary ((AND | "&&") unary)*
    unary    := (NOT | "!" | "-") unary | "+" unary | primary
    primary  := "(" or_expr ")" | FIELD ":" primary | PHRASE | WORD | WORD "*"
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from docmonitor.errors import QuerySyntaxError
from docmonitor.index.storage import FIELDS


class Occur(Enum):
    MUST = "must"
    SHOULD = "should"
    MUST_NOT = "must_not"


@dataclass(frozen=True)
class TermQuery:
    field: Optional[str]
    text: str


@dataclass(frozen=True)
class PhraseQuery:
    field: Optional[str]
    text: str


@dataclass(frozen=True)
class PrefixQuery:
    field: Optional[str]
    prefix: str


@dataclass(frozen=True)
class Clause:
    occur: Occur
    query: "Query"


@dataclass(frozen=True)
class BooleanQuery:
    clauses: Tuple[Clause, ...]


Query = TermQuery | PhraseQuery | PrefixQuery | BooleanQuery


class _Kind(Enum):
    WORD = "word"
    PHRASE = "phrase"
    FIELD = "field"
    LPAREN = "("
    RPAREN = ")"
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    PLUS = "+"
    EOF = "end of query"


@dataclass(frozen=True)
class _Token:
    kind: _Kind
    value: str
    position: int


_OPERATOR_WORDS = {"AND": _Kind.AND, "OR": _Kind.OR, "NOT": _Kind.NOT}
_SYMBOLS = {"&&": _Kind.AND, "||": _Kind.OR}
_WORD_BREAKS = set('()"')


def tokenize_query(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    i = 0
    length = len(text)
    while i < length:
        char = text[i]
        if char.isspace():
            i += 1
            continue
        if text.startswith(("&&", "||"), i):
            tokens.append(_Token(_SYMBOLS[text[i : i + 2]], text[i : i + 2], i))
            i += 2
            continue
        if char == "(":
            tokens.append(_Token(_Kind.LPAREN, char, i))
            i += 1
            continue
        if char == ")":
            tokens.append(_Token(_Kind.RPAREN, char, i))
            i += 1
            continue
        if char == '"':
            end = text.find('"', i + 1)
            if end == -1:
                raise QuerySyntaxError("Unterminated phrase quote", i)
            tokens.append(_Token(_Kind.PHRASE, text[i + 1 : end], i))
            i = end + 1
            continue
        if char in "+-!":
            kind = _Kind.PLUS if char == "+" else _Kind.NOT
            tokens.append(_Token(kind, char, i))
            i += 1
            continue

        start = i
        while i < length and not text[i].isspace() and text[i] not in _WORD_BREAKS:
            i += 1
        word = text[start:i]
        field, sep, rest = word.partition(":")
        if sep and field and not field.startswith(("*", ":")):
            tokens.append(_Token(_Kind.FIELD, field, start))
            if rest:
                tokens.append(_Token(_Kind.WORD, rest, start + len(field) + 1))
            continue
        tokens.append(_Token(_OPERATOR_WORDS.get(word, _Kind.WORD), word, start))
    tokens.append(_Token(_Kind.EOF, "", length))
    return tokens


class QueryParser:
    """Parse query text into a query tree.

    Clauses without a field prefix carry ``field=None`` and are expanded over
    the searcher's default fields at evaluation time.
    """

    def __init__(self, fields: Sequence[str] = FIELDS) -> None:
        self.fields = tuple(fields)

    def parse(self, text: str) -> Query:
        if not text or not text.strip():
            raise QuerySyntaxError("Query is empty")
        self._tokens = tokenize_query(text)
        self._index = 0
        query = self._or_expr(None)
        token = self._peek()
        if token.kind is not _Kind.EOF:
            raise QuerySyntaxError(f"Unexpected {token.value!r}", token.position)
        return query

    def _peek(self) -> _Token:
        return self._tokens[self._index]

    def _next(self) -> _Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _or_expr(self, field: Optional[str]) -> Query:
        items = [self._and_expr(field)]
        while True:
            token = self._peek()
            if token.kind is _Kind.OR:
                self._next()
                if self._peek().kind in (_Kind.EOF, _Kind.RPAREN, _Kind.OR, _Kind.AND):
                    raise QuerySyntaxError("OR must be followed by a clause", token.position)
            elif token.kind in (_Kind.EOF, _Kind.RPAREN):
                break
            elif token.kind is _Kind.AND:
                raise QuerySyntaxError("AND must follow a clause", token.position)
            items.append(self._and_expr(field))
        return self._combine(items, Occur.SHOULD)

    def _and_expr(self, field: Optional[str]) -> Tuple[Optional[Occur], Query]:
        items = [self._unary(field)]
        while self._peek().kind is _Kind.AND:
            token = self._next()
            if self._peek().kind in (_Kind.EOF, _Kind.RPAREN, _Kind.OR, _Kind.AND):
                raise QuerySyntaxError("AND must be followed by a clause", token.position)
            items.append(self._unary(field))
        if len(items) == 1:
            return items[0]
        return None, self._combine(items, Occur.MUST)

    def _unary(self, field: Optional[str]) -> Tuple[Optional[Occur], Query]:
        token = self._peek()
        if token.kind in (_Kind.NOT, _Kind.PLUS):
            self._next()
            if self._peek().kind in (_Kind.EOF, _Kind.RPAREN):
                raise QuerySyntaxError(f"{token.value!r} must be followed by a clause", token.position)
            _, query = self._unary(field)
            return (Occur.MUST_NOT if token.kind is _Kind.NOT else Occur.MUST), query
        return None, self._primary(field)

    def _primary(self, field: Optional[str]) -> Query:
        token = self._next()
        if token.kind is _Kind.LPAREN:
            query = self._or_expr(field)
            closing = self._next()
            if closing.kind is not _Kind.RPAREN:
                raise QuerySyntaxError("Missing closing parenthesis", token.position)
            return query
        if token.kind is _Kind.FIELD:
            if token.value not in self.fields:
                raise QuerySyntaxError(
                    f"Unknown field {token.value!r} (expected one of: {', '.join(self.fields)})",
                    token.position,
                )
            if self._peek().kind not in (_Kind.WORD, _Kind.PHRASE, _Kind.LPAREN):
                raise QuerySyntaxError(f"Field {token.value!r} has no value", token.position)
            return self._primary(token.value)
        if token.kind is _Kind.PHRASE:
            return PhraseQuery(field, token.value)
        if token.kind is _Kind.WORD:
            if "*" in token.value:
                # Only a trailing run of '*' after a non-empty stem is a prefix.
                stem = token.value.rstrip("*")
                if not stem or "*" in stem:
                    raise QuerySyntaxError(
                        f"Unsupported wildcard in {token.value!r}", token.position
                    )
                return PrefixQuery(field, stem)
            return TermQuery(field, token.value)
        if token.kind is _Kind.RPAREN:
            raise QuerySyntaxError("Unbalanced closing parenthesis", token.position)
        raise QuerySyntaxError(f"Expected a search term but found {token.kind.value}", token.position)

    @staticmethod
    def _combine(items: List[Tuple[Optional[Occur], Query]], default: Occur) -> Query:
        if len(items) == 1 and items[0][0] is None:
            return items[0][1]
        clauses = []
        for occur, query in items:
            if occur is None or (occur is Occur.MUST and default is Occur.MUST):
                occur = default
            clauses.append(Clause(occur, query))
        return BooleanQuery(tuple(clauses))


def parse_query(text: str, fields: Sequence[str] = FIELDS) -> Query:
    """Parse ``text``; raises :class:`QuerySyntaxError` on malformed input."""
    return QueryParser(fields).parse(text)
