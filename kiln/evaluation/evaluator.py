"""Core evaluator for kiln.

A strict, tree-walking evaluator: special forms are dispatched through the
SPECIAL_FORMS table, every other list is a call whose arguments are evaluated
left to right before the callee runs. Effects are recorded by the callee into
the current footprint; the evaluator itself knows nothing about caching.
"""

from __future__ import annotations

from kiln import SExpression, Value
from kiln.errors import KilnTypeError
from kiln.types.environment import Environment
from kiln.types.symbol import Symbol
from kiln.evaluation.apply import apply
from kiln.evaluation.special_forms import SPECIAL_FORMS


def evaluate(expr: SExpression, env: Environment) -> Value:
    match expr:
        case []:
            raise KilnTypeError("Cannot evaluate an empty call ()")

        case [Symbol() as head, *tail_args] if head in SPECIAL_FORMS:
            return SPECIAL_FORMS[head](tail_args, env, evaluate)

        case [head, *tail_args]:
            fn = evaluate(head, env)
            args = [evaluate(arg, env) for arg in tail_args]
            return apply(fn, args, env)

        case Symbol():
            # Keywords (:reads, :writes ...) are self-evaluating call options
            if expr.is_keyword:
                return expr
            return env.lookup(expr)

    # --- Atoms return as-is ---
    return expr
