"""Boolean tag expressions such as ``@a and not (@b or @c)``."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterable, Iterator

_KINDS = ("tag", "not", "and", "or")
_OPERATORS = ("and", "or", "not")


class TagExpressionError(ValueError):
    """Raised for a malformed tag expression."""


@dataclass(frozen=True)
class TagOperation:
    """Node of a tag expression tree.

    `kind` is one of ``tag``, ``not``, ``and`` or ``or``; a ``tag`` node
    carries its `name` without the leading ``@``.
    """

    kind: str
    operands: tuple[TagOperation, ...] = ()
    name: str = ""

    def __post_init__(self) -> None:
        if self.kind not in _KINDS:
            raise ValueError(f"unknown tag operation {self.kind!r}")

    def eval(self, tags: Iterable[str]) -> bool:
        """Tells whether the given tags (without ``@``) satisfy this expression."""
        return self._eval(frozenset(tags))

    def _eval(self, present: frozenset[str]) -> bool:
        if self.kind == "tag":
            return self.name in present
        if self.kind == "not":
            return not self.operands[0]._eval(present)
        if self.kind == "and":
            return all(op._eval(present) for op in self.operands)
        return any(op._eval(present) for op in self.operands)

    def __str__(self) -> str:
        if self.kind == "tag":
            escaped = "".join(
                "\\" + ch if ch in "()\\" or ch.isspace() else ch for ch in self.name
            )
            return "@" + escaped
        if self.kind == "not":
            return f"not {self.operands[0]}"
        return "(" + f" {self.kind} ".join(map(str, self.operands)) + ")"


def _word(chars: list[str], escaped: bool) -> tuple[str, str]:
    word = "".join(chars)
    if not escaped and word in _OPERATORS:
        return word, word
    name = word[1:] if word.startswith("@") else word
    if not name:
        raise TagExpressionError("empty tag name")
    return "tag", name


def _tokens(text: str) -> Iterator[tuple[str, str]]:
    word: list[str] = []
    escaped = False
    chars = iter(text)
    for ch in chars:
        if ch == "\\":
            following = next(chars, None)
            if following is None:
                raise TagExpressionError("expression ends with an escape")
            word.append(following)
            escaped = True
        elif ch in "()" or ch.isspace():
            if word:
                yield _word(word, escaped)
                word, escaped = [], False
            if ch in "()":
                yield ch, ch
        else:
            word.append(ch)
    if word:
        yield _word(word, escaped)


def _parse_or(tokens: deque[tuple[str, str]]) -> TagOperation:
    left = _parse_and(tokens)
    while tokens and tokens[0][0] == "or":
        tokens.popleft()
        left = TagOperation("or", (left, _parse_and(tokens)))
    return left


def _parse_and(tokens: deque[tuple[str, str]]) -> TagOperation:
    left = _parse_unary(tokens)
    while tokens and tokens[0][0] == "and":
        tokens.popleft()
        left = TagOperation("and", (left, _parse_unary(tokens)))
    return left


def _parse_unary(tokens: deque[tuple[str, str]]) -> TagOperation:
    if not tokens:
        raise TagExpressionError("unexpected end of tag expression")
    kind, value = tokens.popleft()
    if kind == "not":
        return TagOperation("not", (_parse_unary(tokens),))
    if kind == "(":
        inner = _parse_or(tokens)
        if not tokens or tokens[0][0] != ")":
            raise TagExpressionError("expected ')'")
        tokens.popleft()
        return inner
    if kind == "tag":
        return TagOperation("tag", name=value)
    raise TagExpressionError(f"unexpected {value!r}")


def parse_tag_expression(text: str) -> TagOperation:
    """Parses a tag expression; ``not`` binds tighter than ``and``, then ``or``."""
    tokens = deque(_tokens(text))
    if not tokens:
        raise TagExpressionError("empty tag expression")
    operation = _parse_or(tokens)
    if tokens:
        raise TagExpressionError(f"unexpected {tokens[0][1]!r}")
    return operation