from kiln import EvaluatorFn
from kiln import SExpression, Value
from kiln.errors import ArityError, KilnTypeError
from kiln.types.environment import Environment
from kiln.types.function import Function
from kiln.types.symbol import Symbol
from kiln.types.unit import Unit

PROGN = Symbol("progn")


def make_body(body_forms: list[SExpression]) -> SExpression:
    # Multiple body forms are an implicit progn; no body yields unit.
    if not body_forms:
        return Unit
    if len(body_forms) == 1:
        return body_forms[0]
    return [PROGN, *body_forms]


def check_formals(params: SExpression, where: str) -> list[Symbol]:
    if not isinstance(params, list):
        raise KilnTypeError(f"{where} expects a parameter list, got {params!r}")
    for p in params:
        if not isinstance(p, Symbol) or p.is_keyword:
            raise KilnTypeError(f"{where}: parameter {p!r} is not a name")
    if len(set(params)) != len(params):
        raise KilnTypeError(f"{where}: duplicate parameter names")
    return list(params)


def lambda_form(
    tail: list[SExpression],
    env: Environment,
    evaluate_fn: EvaluatorFn,
) -> Value:
    """(lambda (params...) body...)"""
    if not tail:
        raise ArityError("lambda requires at least a parameter list")

    formals = check_formals(tail[0], "lambda")
    return Function(
        formals,
        make_body(tail[1:]),
        env,
        source=[Symbol("lambda"), *tail],
    )
