"""Free-variable analysis over kiln forms.

Used by the planner (to find which top-level statements a statement reads)
and by function identity hashing (to find which outer bindings a function
body depends on). The analysis is conservative: a name is only treated as
bound where a binding form visibly binds it, and a `define` inside a body is
treated as local to that whole body.
"""

from __future__ import annotations

from kiln import SExpression
from kiln.types.symbol import Symbol

DEFINE = Symbol("define")
DEFN = Symbol("defn")
LAMBDA = Symbol("lambda")
LET = Symbol("let")
IF = Symbol("if")
PROGN = Symbol("progn")
BEGIN = Symbol("begin")

FORM_NAMES = frozenset({DEFINE, DEFN, LAMBDA, LET, IF, PROGN, BEGIN})


def _params(params: SExpression) -> frozenset[Symbol]:
    if isinstance(params, list):
        return frozenset(p for p in params if isinstance(p, Symbol))
    return frozenset()


def body_free_vars(forms: list[SExpression], bound: frozenset[Symbol]) -> set[Symbol]:
    local = {
        f[1]
        for f in forms
        if isinstance(f, list) and len(f) >= 2 and f[0] in (DEFINE, DEFN) and isinstance(f[1], Symbol)
    }
    inner = bound | local
    out: set[Symbol] = set()
    for f in forms:
        out |= free_vars(f, inner)
    return out


def free_vars(expr: SExpression, bound: frozenset[Symbol] = frozenset()) -> set[Symbol]:
    if isinstance(expr, Symbol):
        if expr.is_keyword or expr in bound or expr in FORM_NAMES:
            return set()
        return {expr}
    if not isinstance(expr, list) or not expr:
        return set()

    match expr:
        case [Symbol() as h, Symbol(), value] if h == DEFINE:
            return free_vars(value, bound)
        case [Symbol() as h, Symbol() as name, params, *rest] if h == DEFN:
            return body_free_vars(rest, bound | _params(params) | {name})
        case [Symbol() as h, params, *rest] if h == LAMBDA:
            return body_free_vars(rest, bound | _params(params))
        case [Symbol() as h, list() as bindings, *rest] if h == LET:
            out: set[Symbol] = set()
            names = set()
            for binding in bindings:
                if isinstance(binding, list) and len(binding) == 2 and isinstance(binding[0], Symbol):
                    out |= free_vars(binding[1], bound)
                    names.add(binding[0])
            return out | body_free_vars(rest, bound | names)
        case [Symbol() as h, *rest] if h in (PROGN, BEGIN):
            return body_free_vars(rest, bound)

    out = set()
    for item in expr:
        out |= free_vars(item, bound)
    return out
