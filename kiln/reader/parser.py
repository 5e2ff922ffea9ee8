"""
  kiln reader: lexer and parser

- Streaming, lazy parsing
- Emits Python primitives:

    - lists -> Python list (code only; runtime lists are tuples)
    - names -> Symbol
    - strings -> str
    - integers -> int
    - true / false -> bool
    - unit -> Unit
    - shell-out shorthand $(a b c) -> [Symbol("$"), a, b, c]
"""

from __future__ import annotations

import ast
import re
from typing import Iterator, Optional

from kiln import SExpression
from kiln.errors import KilnSyntaxError
from kiln.types.symbol import Symbol
from kiln.types.unit import Unit


TOKEN_RE = re.compile(
    r"\s*("
    r"(?P<comment>;[^\n]*)"  # single-line comment
    r"|(?P<shell>\$\()"  # $( shell-out shorthand
    r"|(?P<lparen>\()"  # (
    r"|(?P<rparen>\))"  # )
    r'|(?P<string>"(?:\\.|[^\\"])*")'  # double-quoted strings
    r'|(?P<symbol>[^\s()\'",;]+)'  # fallback: names and numbers
    r")",
    re.DOTALL,
)

INT_RE = re.compile(r"[-+]?\d+\Z")

SHELL = Symbol("$")

CONSTANTS = {
    "true": True,
    "false": False,
    "unit": Unit,
}


def lex(source: str) -> Iterator[tuple[str, str]]:
    """Token generator: yields (token_type, token_value) tuples, skipping comments."""
    pos = 0
    n = len(source)
    while pos < n:
        if source[pos].isspace():
            pos += 1
            continue
        m = TOKEN_RE.match(source, pos)
        if not m or m.end() == pos:
            line = source.count("\n", 0, pos) + 1
            raise KilnSyntaxError(f"Unexpected character {source[pos]!r} on line {line}")
        pos = m.end()
        if m.group("comment"):
            continue
        for nm in ("shell", "lparen", "rparen", "string", "symbol"):
            if m.group(nm):
                yield nm, m.group(nm)
                break


class TokenStream:
    def __init__(self, token_iter: Iterator[tuple[str, str]]):
        self.tokens = iter(token_iter)
        self.buffer: list[tuple[str, str]] = []

    def peek(self) -> tuple[Optional[str], Optional[str]]:
        if not self.buffer:
            try:
                self.buffer.append(next(self.tokens))
            except StopIteration:
                return None, None
        return self.buffer[0]

    def advance(self) -> tuple[Optional[str], Optional[str]]:
        if self.buffer:
            return self.buffer.pop(0)
        return next(self.tokens, (None, None))

    def _parse_items(self) -> list[SExpression]:
        items = []
        while True:
            tok_type, _ = self.peek()
            if tok_type == "rparen":
                self.advance()
                return items
            if tok_type is None:
                raise KilnSyntaxError("Unmatched '('")
            items.append(self.parse_expr())

    def parse_expr(self) -> SExpression:
        tok_type, tok_val = self.peek()
        if tok_type is None:
            return None

        if tok_type == "symbol":
            self.advance()
            if tok_val in CONSTANTS:
                return CONSTANTS[tok_val]
            if INT_RE.match(tok_val):
                return int(tok_val)
            return Symbol(tok_val)

        if tok_type == "string":
            self.advance()
            try:
                return ast.literal_eval(tok_val)
            except (ValueError, SyntaxError) as ex:
                raise KilnSyntaxError(f"Malformed string literal {tok_val}") from ex

        if tok_type == "lparen":
            self.advance()
            return self._parse_items()

        if tok_type == "shell":
            self.advance()
            return [SHELL, *self._parse_items()]

        if tok_type == "rparen":
            raise KilnSyntaxError("Unexpected ')'")

        raise KilnSyntaxError(f"Unknown token: {tok_type} {tok_val}")

    def parse_all(self) -> Iterator[SExpression]:
        while True:
            tok_type, _ = self.peek()
            if tok_type is None:
                break
            yield self.parse_expr()


def read_program(source: str) -> list[SExpression]:
    """Read every top-level form of `source`."""
    return list(TokenStream(lex(source)).parse_all())
