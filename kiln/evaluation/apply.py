"""Application engine for kiln.

Centralizes call semantics so the evaluator, the builtins that take function
arguments and the scheduler all apply functions the same way:
- user Functions run in a fresh footprint scope of their own, which records
  the function's declared reads before the body and declared writes after it
  and is merged into the caller's footprint on return;
- Builtins are invoked with the runtime env and the list of argument values.
"""

from __future__ import annotations

from kiln import Value
from kiln.effects.footprint import Footprint, record_file_read, record_file_write
from kiln.errors import KilnTypeError
from kiln.runtime_context import tracking
from kiln.types.builtin import Builtin
from kiln.types.environment import Environment
from kiln.types.function import Function


def evaluate_call(fn: Function, args: list[Value]) -> Value:
    """Run a user function on already-evaluated arguments."""
    # Local import: the evaluator imports this module
    from kiln.evaluation.evaluator import evaluate

    call_env = fn.extend_env(list(args))
    with tracking(Footprint()):
        for path in fn.reads:
            record_file_read(path)
        result = evaluate(fn.body, call_env)
        for path in fn.writes:
            record_file_write(path)
    return result


def apply(head: Value, args: list[Value], env: Environment) -> Value:
    """Apply either a user Function or a Builtin."""
    if isinstance(head, Function):
        return evaluate_call(head, args)
    if isinstance(head, Builtin):
        return head(env, args)
    raise KilnTypeError(f"Cannot call non-function {head!r}")
