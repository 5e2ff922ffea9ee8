from kiln import EvaluatorFn
from kiln import SExpression, Value
from kiln.errors import ArityError, KilnTypeError
from kiln.types.environment import Environment
from kiln.types.symbol import Symbol
from kiln.types.unit import Unit


def let_form(
    tail: list[SExpression],
    env: Environment,
    evaluate_fn: EvaluatorFn,
) -> Value:
    """
    (let ((name expr) ...) body...)
    Binding expressions are evaluated in order in the outer scope; the body
    runs in a new frame holding the bindings.
    """
    if not tail or not isinstance(tail[0], list):
        raise ArityError("let requires a binding list")

    local_env = Environment(outer=env)
    for binding in tail[0]:
        if not (isinstance(binding, list) and len(binding) == 2 and isinstance(binding[0], Symbol)):
            raise KilnTypeError(f"Malformed let binding {binding!r}")
        name, val_expr = binding
        local_env.define(name, evaluate_fn(val_expr, env))

    result: Value = Unit
    for e in tail[1:]:
        result = evaluate_fn(e, local_env)
    return result
