"""Canonical source rendering of forms and values.

The output is whitespace- and comment-insensitive with respect to the original
text, which is what lets a function's printed definition serve as its identity.
"""

from __future__ import annotations

import json

from kiln import SExpression
from kiln.types.symbol import Symbol
from kiln.types.unit import UnitType


def to_source(expr: SExpression) -> str:
    if isinstance(expr, Symbol):
        return expr.id
    if isinstance(expr, bool):
        return "true" if expr else "false"
    if isinstance(expr, int):
        return str(expr)
    if isinstance(expr, str):
        return json.dumps(expr, ensure_ascii=False)
    if isinstance(expr, UnitType):
        return "unit"
    if isinstance(expr, list):
        return "(" + " ".join(to_source(e) for e in expr) + ")"
    if isinstance(expr, tuple):
        return "(list" + "".join(" " + to_source(e) for e in expr) + ")"
    return str(expr)
