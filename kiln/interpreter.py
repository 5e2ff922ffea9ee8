from __future__ import annotations
from typing import Iterable

from kiln import Value
from kiln.builtin.env_builtin import register
from kiln.effects.footprint import Footprint
from kiln.evaluation.evaluator import evaluate
from kiln.reader.parser import lex, TokenStream
from kiln.runtime_context import tracking
from kiln.types.environment import Environment
from kiln.types.unit import Unit


class Interpreter:
    """
    Reads and evaluates kiln code statement by statement in textual order,
    with no scheduling and no caching. Maintains one Environment across calls
    and accumulates everything evaluated into `footprint`.
    """

    def __init__(self, argv: Iterable[str] = ()):
        self.env: Environment = Environment()
        register(self.env, argv)
        self.footprint = Footprint()

    def eval(self, code: str) -> Value:
        """Evaluate every form in `code`; returns the last value, or unit."""
        stream = TokenStream(lex(code))
        result: Value = Unit
        with tracking(self.footprint):
            for expr in stream.parse_all():
                result = evaluate(expr, self.env)
        return result
