from kiln import EvaluatorFn
from kiln import SExpression, Value
from kiln.errors import ArityError
from kiln.types.environment import Environment
from kiln.types.unit import Unit


def is_true(value: Value) -> bool:
    # Only false and unit are false
    return not (value is False or value is Unit)


def if_form(
    tail: list[SExpression],
    env: Environment,
    evaluate_fn: EvaluatorFn,
) -> Value:
    if len(tail) not in (2, 3):
        raise ArityError("if requires a condition, a then-expression and an optional else")

    if is_true(evaluate_fn(tail[0], env)):
        return evaluate_fn(tail[1], env)
    elif len(tail) > 2:
        return evaluate_fn(tail[2], env)
    else:
        return Unit
