"""Turning a program into a dependency graph of CallNodes.

Planning happens in two passes over the top-level forms:

1. every `defn` is evaluated into the root environment (definitions are
   hoisted, so statement order never matters for calling a function);
2. every other statement becomes a CallNode, in textual order.

Top-level names are single-assignment: a statement that reads `x` depends on
the one statement that binds `x`, and that statement must come earlier in
the file. Function bodies count as part of the statements that call them,
so a statement also depends on the bindings the functions it calls read.

Declared effects are collected statically: the `:reads` / `:writes`
declarations of every function a statement can reach, the `:reads` /
`:writes` of `$` forms, and the paths passed to `read-file`, `exists?` and
`write-file`. A path is known statically when it is a literal or a name an
earlier top-level `define` bound to literal paths. A statement whose
declared reads overlap another statement's declared writes waits for the
writer, unless the reader already precedes the writer in the graph.
"""

from __future__ import annotations

from typing import Optional

from kiln import SExpression
from kiln.errors import DuplicateDefinitionError, KilnTypeError, UndefinedVariableError
from kiln.evaluation.evaluator import evaluate
from kiln.evaluation.free_vars import DEFINE, DEFN, free_vars
from kiln.evaluation.special_forms.defn_form import LIST, literal_paths
from kiln.effects.footprint import normalize_path
from kiln.scheduler.node import CallNode
from kiln.types.environment import Environment
from kiln.types.function import Function
from kiln.types.symbol import Symbol

READS = Symbol(":reads")
WRITES = Symbol(":writes")
SHELL = Symbol("$")
FILE_READERS = frozenset({Symbol("read-file"), Symbol("exists?")})
FILE_WRITERS = frozenset({Symbol("write-file")})


def _is_form(expr: SExpression, head: Symbol) -> bool:
    return isinstance(expr, list) and len(expr) >= 2 and expr[0] == head and isinstance(expr[1], Symbol)


def _function_body(fn: Function) -> SExpression:
    return fn.source if fn.source is not None else fn.body


def mentioned_names(expr: SExpression, env: Environment) -> frozenset[Symbol]:
    """Free names of `expr` plus, transitively, those of the user functions it can reach."""
    seen: set[int] = set()
    out: set[Symbol] = set()
    pending = [free_vars(expr)]
    while pending:
        for sym in pending.pop():
            out.add(sym)
            home = env.find(sym)
            if home is None:
                continue
            bound = home.vars[sym]
            if isinstance(bound, Function) and id(bound) not in seen:
                seen.add(id(bound))
                pending.append(free_vars(_function_body(bound)))
    return frozenset(out)


def resolve_paths(expr: SExpression, constants: dict[Symbol, tuple[str, ...]]) -> Optional[tuple[str, ...]]:
    """Paths `expr` denotes before anything runs, or None when they depend on evaluation.

    Besides literals, a name bound at top level to literal paths resolves to
    those paths, and so does a `(list ...)` of such parts.
    """
    if isinstance(expr, Symbol):
        return constants.get(expr)
    if isinstance(expr, list) and expr and expr[0] == LIST:
        out: tuple[str, ...] = ()
        for item in expr[1:]:
            part = resolve_paths(item, constants)
            if part is None:
                return None
            out += part
        return out
    return literal_paths(expr)


def declared_effects(
    expr: SExpression,
    env: Environment,
    constants: Optional[dict[Symbol, tuple[str, ...]]] = None,
    top_level: frozenset[Symbol] = frozenset(),
) -> tuple[frozenset[str], frozenset[str]]:
    """Declared (reads, writes) of `expr` and of every user function it reaches.

    A `$` declaration naming a top-level binding whose value is not literal
    paths raises KilnTypeError; names local to a function body are skipped.
    """
    constants = constants or {}
    reads: set[str] = set()
    writes: set[str] = set()
    seen: set[int] = set()

    def shell_operand(operand: SExpression, local: frozenset[Symbol]) -> tuple[str, ...]:
        if isinstance(operand, Symbol) and operand in local:
            return ()
        paths = resolve_paths(operand, constants)
        if paths is not None:
            return paths
        if isinstance(operand, Symbol) and operand in top_level:
            raise KilnTypeError(f"Declared path {operand} must be bound to literal paths")
        return ()

    def scan(e: SExpression, local: frozenset[Symbol]) -> None:
        if isinstance(e, Symbol):
            if e in local:
                return
            home = env.find(e)
            fn = home.vars[e] if home is not None else None
            if isinstance(fn, Function) and id(fn) not in seen:
                seen.add(id(fn))
                reads.update(fn.reads)
                writes.update(fn.writes)
                scan(_function_body(fn), frozenset(fn.formals))
            return
        if not isinstance(e, list) or not e:
            return
        head = e[0]
        if head == SHELL:
            for i, item in enumerate(e[:-1]):
                if item in (READS, WRITES):
                    paths = shell_operand(e[i + 1], local)
                    (reads if item == READS else writes).update(paths)
        elif head in FILE_READERS and len(e) > 1 and not (isinstance(e[1], Symbol) and e[1] in local):
            reads.update(resolve_paths(e[1], constants) or ())
        elif head in FILE_WRITERS and len(e) > 1 and not (isinstance(e[1], Symbol) and e[1] in local):
            writes.update(resolve_paths(e[1], constants) or ())
        for item in e:
            scan(item, local)

    scan(expr, frozenset())
    return (
        frozenset(normalize_path(p) for p in reads),
        frozenset(normalize_path(p) for p in writes),
    )


def _precedes(nodes: list[CallNode], first: CallNode, second: CallNode) -> bool:
    """True if `second` already (transitively) depends on `first`."""
    stack = list(second.deps)
    visited: set[int] = set()
    while stack:
        idx = stack.pop()
        if idx == first.index:
            return True
        if idx in visited:
            continue
        visited.add(idx)
        stack.extend(nodes[idx].deps)
    return False


def add_effect_edges(nodes: list[CallNode]) -> None:
    for writer in nodes:
        if not writer.writes:
            continue
        for reader in nodes:
            if reader is writer or not (reader.reads & writer.writes):
                continue
            if writer.index in reader.deps or _precedes(nodes, reader, writer):
                continue
            reader.deps.add(writer.index)


def plan(forms: list[SExpression], env: Environment) -> list[CallNode]:
    """Hoist definitions into `env` and return the statements as CallNodes."""
    statements = []
    for form in forms:
        if _is_form(form, DEFN):
            if form[1] in env.vars:
                raise DuplicateDefinitionError(f"{form[1]} is already defined")
            evaluate(form, env)
        else:
            statements.append(form)

    later_binders = {form[1] for form in statements if _is_form(form, DEFINE)}
    top_level = frozenset(later_binders)
    # top-level names bound to literal paths, as planned so far
    constants: dict[Symbol, tuple[str, ...]] = {}
    binders: dict[Symbol, int] = {}
    nodes: list[CallNode] = []
    for index, form in enumerate(statements):
        binds = None
        expr = form
        if _is_form(form, DEFINE) and len(form) == 3:
            binds, expr = form[1], form[2]

        mentions = mentioned_names(expr, env)
        deps = set()
        for sym in mentions:
            if sym in binders:
                deps.add(binders[sym])
            elif sym in later_binders and env.find(sym) is None:
                raise UndefinedVariableError(f"{sym} is used before its definition")

        if binds is not None:
            if binds in binders or env.find(binds) is not None:
                raise DuplicateDefinitionError(f"{binds} is already defined")
            binders[binds] = index

        reads, writes = declared_effects(expr, env, constants, top_level)
        if binds is not None:
            paths = resolve_paths(expr, constants)
            if paths is not None:
                constants[binds] = paths
        nodes.append(CallNode(index, expr, binds, mentions, reads, writes, deps))

    add_effect_edges(nodes)
    return nodes
