from kiln import EvaluatorFn
from kiln import SExpression, Value
from kiln.types.environment import Environment
from kiln.types.unit import Unit


def progn_form(
    tail: list[SExpression],
    env: Environment,
    evaluate_fn: EvaluatorFn,
) -> Value:
    result: Value = Unit
    for e in tail:
        result = evaluate_fn(e, env)
    return result
