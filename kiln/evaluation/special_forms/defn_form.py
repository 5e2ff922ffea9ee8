"""(defn name (params...) [:reads paths] [:writes paths] [:uncached] body...)

Paths are a string literal or a list of string literals, either bare
`("a" "b")` or spelled `(list "a" "b")`. They are author declarations: the
function promises it reads / writes those paths, which makes them visible to
the scheduler before the function ever runs.
"""

from typing import Optional

from kiln import EvaluatorFn
from kiln import SExpression, Value
from kiln.errors import ArityError, KilnTypeError
from kiln.types.environment import Environment
from kiln.types.function import Function
from kiln.types.symbol import Symbol
from kiln.types.unit import Unit
from kiln.evaluation.special_forms.lambda_form import check_formals, make_body

READS = Symbol(":reads")
WRITES = Symbol(":writes")
UNCACHED = Symbol(":uncached")
LIST = Symbol("list")


def literal_paths(expr: SExpression) -> Optional[tuple[str, ...]]:
    """Paths spelled literally in source, or None when `expr` is not a literal."""
    if isinstance(expr, str):
        return (expr,)
    if isinstance(expr, list):
        items = expr[1:] if expr and expr[0] == LIST else expr
        if all(isinstance(i, str) for i in items):
            return tuple(items)
    return None


def parse_options(rest: list[SExpression]) -> tuple[tuple[str, ...], tuple[str, ...], bool, list[SExpression]]:
    reads: tuple[str, ...] = ()
    writes: tuple[str, ...] = ()
    cacheable = True
    i = 0
    while i < len(rest) and isinstance(rest[i], Symbol) and rest[i] in (READS, WRITES, UNCACHED):
        option = rest[i]
        if option == UNCACHED:
            cacheable = False
            i += 1
            continue
        if i + 1 >= len(rest):
            raise ArityError(f"defn option {option} requires a value")
        paths = literal_paths(rest[i + 1])
        if paths is None:
            raise KilnTypeError(f"defn option {option} expects literal paths, got {rest[i + 1]!r}")
        if option == READS:
            reads += paths
        else:
            writes += paths
        i += 2
    return reads, writes, cacheable, rest[i:]


def defn_form(
    tail: list[SExpression],
    env: Environment,
    evaluate_fn: EvaluatorFn,
) -> Value:
    if len(tail) < 2:
        raise ArityError("defn requires a name and a parameter list")
    name = tail[0]
    if not isinstance(name, Symbol) or name.is_keyword:
        raise KilnTypeError(f"defn expects a name, got {name!r}")
    formals = check_formals(tail[1], f"defn {name}")
    reads, writes, cacheable, body_forms = parse_options(tail[2:])

    fn = Function(
        formals,
        make_body(body_forms),
        env,
        name=name.id,
        source=[Symbol("defn"), *tail],
        reads=reads,
        writes=writes,
        cacheable=cacheable,
    )
    env.define(name, fn)
    return Unit
