from kiln import EvaluatorFn
from kiln import SExpression, Value
from kiln.errors import ArityError, KilnTypeError
from kiln.types.environment import Environment
from kiln.types.symbol import Symbol
from kiln.types.unit import Unit


def define_form(
    tail: list[SExpression],
    env: Environment,
    evaluate_fn: EvaluatorFn,
) -> Value:
    """
    (define name value)
    Binds in the current frame and yields unit.
    """
    if len(tail) != 2:
        raise ArityError("define requires exactly 2 arguments")

    name, val_expr = tail
    if not isinstance(name, Symbol) or name.is_keyword:
        raise KilnTypeError(f"define expects a name, got {name!r}")
    value = evaluate_fn(val_expr, env)  # normal evaluation
    env.define(name, value)
    return Unit
