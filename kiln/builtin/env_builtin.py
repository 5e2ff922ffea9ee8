"""Built-in functions for the kiln runtime environment.

This module defines the effectful exemplars (`getenv`, file access, the
shell-out primitive from `kiln.builtin.shell`), the `args` binding, and the
small pure library (arithmetic, comparison, list and string helpers) that
programs need to compute paths and arguments. Every builtin is registered
with its effect contract.
"""
from __future__ import annotations

import os
from typing import Iterable

from kiln import Value
from kiln.builtin.shell import declare_shell_paths, shell_out
from kiln.effects.footprint import record_env_read, record_file_read, record_file_write
from kiln.errors import (
    ArityError,
    FileAccessError,
    KilnIndexError,
    KilnTypeError,
    MissingEnvVarError,
)
from kiln.types.builtin import Builtin
from kiln.types.environment import Environment
from kiln.types.symbol import Symbol
from kiln.types.unit import Unit


def _arity(name: str, args: list[Value], *allowed: int) -> None:
    if len(args) not in allowed:
        expected = " or ".join(str(n) for n in allowed)
        raise ArityError(f"{name} expects {expected} argument(s), got {len(args)}")


def _int_args(name: str, args: list[Value]) -> list[int]:
    for a in args:
        if isinstance(a, bool) or not isinstance(a, int):
            raise KilnTypeError(f"All arguments to {name} must be integers, got {a!r}")
    return args


def _str_arg(name: str, value: Value) -> str:
    if not isinstance(value, str):
        raise KilnTypeError(f"{name} expects a string, got {value!r}")
    return value


# -------------------------------
# Environment
# -------------------------------
def getenv(env: Environment, args: list[Value]) -> Value:
    """(getenv name) or (getenv name default).

    The read is recorded before the lookup: a miss is a dependency too, since
    a later run where the variable is set must not reuse this result.
    """
    _arity("getenv", args, 1, 2)
    name = _str_arg("getenv", args[0])
    record_env_read(name)
    value = os.environ.get(name)
    if value is None:
        if len(args) == 2:
            return args[1]
        raise MissingEnvVarError(name)
    return value


# -------------------------------
# Files
# -------------------------------
def read_file(env: Environment, args: list[Value]) -> str:
    """(read-file path) => the file's text."""
    _arity("read-file", args, 1)
    path = _str_arg("read-file", args[0])
    record_file_read(path)
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except OSError as ex:
        raise FileAccessError(path, ex.strerror or str(ex)) from ex


def write_file(env: Environment, args: list[Value]) -> Value:
    """(write-file path text) => unit; records the write with the new content digest."""
    _arity("write-file", args, 2)
    path = _str_arg("write-file", args[0])
    text = _str_arg("write-file", args[1])
    parent = os.path.dirname(path)
    try:
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as ex:
        raise FileAccessError(path, ex.strerror or str(ex)) from ex
    record_file_write(path)
    return Unit


def file_exists(env: Environment, args: list[Value]) -> bool:
    """(exists? path); absence is observed too, so the read is always recorded."""
    _arity("exists?", args, 1)
    path = _str_arg("exists?", args[0])
    record_file_read(path)
    return os.path.exists(path)


def _declare_read(args: list[Value]) -> tuple[tuple[str, ...], tuple[str, ...]]:
    return (tuple(a for a in args[:1] if isinstance(a, str)), ())


def _declare_write(args: list[Value]) -> tuple[tuple[str, ...], tuple[str, ...]]:
    return ((), tuple(a for a in args[:1] if isinstance(a, str)))


# -------------------------------
# Arithmetic
# -------------------------------
def add(env: Environment, expr: list[Value]) -> int:
    """Return the sum of all arguments."""
    return sum(_int_args("+", expr))


def sub(env: Environment, expr: list[Value]) -> int:
    """Subtract all subsequent numbers from the first; unary negation for one arg."""
    if not expr:
        raise ArityError("- requires at least 1 argument")
    _int_args("-", expr)
    if len(expr) == 1:
        return -expr[0]
    result = expr[0]
    for x in expr[1:]:
        result -= x
    return result


def mul(env: Environment, expr: list[Value]) -> int:
    """Return the product of all arguments."""
    result = 1
    for x in _int_args("*", expr):
        result *= x
    return result


def div(env: Environment, expr: list[Value]) -> int:
    """Integer division, left to right."""
    if len(expr) < 2:
        raise ArityError("/ requires at least 2 arguments")
    _int_args("/", expr)
    result = expr[0]
    for x in expr[1:]:
        if x == 0:
            raise KilnTypeError("Division by zero")
        result //= x
    return result


def mod(env: Environment, expr: list[Value]) -> int:
    """(mod n d) => n % d. Exactly 2 integer arguments."""
    _arity("mod", expr, 2)
    n, d = _int_args("mod", expr)
    if d == 0:
        raise KilnTypeError("Modulo by zero")
    return n % d


# -------------------------------
# Comparison
# -------------------------------
def equals(env: Environment, expr: list[Value]) -> bool:
    """True if all arguments are structurally equal; bools never equal ints."""
    if len(expr) <= 1:
        return True
    first = expr[0]
    return all(is_equal(first, other) for other in expr[1:])


def not_equals(env: Environment, expr: list[Value]) -> bool:
    return not equals(env, expr)


def is_equal(a: Value, b: Value) -> bool:
    if a is b:
        return True
    if isinstance(a, tuple) and isinstance(b, tuple):
        if len(a) != len(b):
            return False
        return all(is_equal(x, y) for x, y in zip(a, b))
    if type(a) != type(b):
        return False
    return a == b


def _ordered(name: str, expr: list[Value], op) -> bool:
    if len(expr) < 2:
        raise ArityError(f"{name} requires at least 2 arguments")
    if not (all(isinstance(a, str) for a in expr) or
            all(isinstance(a, int) and not isinstance(a, bool) for a in expr)):
        raise KilnTypeError(f"{name} compares integers or strings, not a mix")
    return all(op(a, b) for a, b in zip(expr, expr[1:]))


def lt(env: Environment, expr: list[Value]) -> bool:
    return _ordered("<", expr, lambda a, b: a < b)


def lte(env: Environment, expr: list[Value]) -> bool:
    return _ordered("<=", expr, lambda a, b: a <= b)


def gt(env: Environment, expr: list[Value]) -> bool:
    return _ordered(">", expr, lambda a, b: a > b)


def gte(env: Environment, expr: list[Value]) -> bool:
    return _ordered(">=", expr, lambda a, b: a >= b)


def logical_not(env: Environment, expr: list[Value]) -> bool:
    _arity("not", expr, 1)
    return expr[0] is False or expr[0] is Unit


# -------------------------------
# Lists and strings
# -------------------------------
def list_builtin(env: Environment, expr: list[Value]) -> tuple:
    return tuple(expr)


def length(env: Environment, expr: list[Value]) -> int:
    _arity("len", expr, 1)
    seq = expr[0]
    if not isinstance(seq, (tuple, str)):
        raise KilnTypeError(f"len expects a list or a string, got {seq!r}")
    return len(seq)


def nth(env: Environment, expr: list[Value]) -> Value:
    """(nth list index) => element; negative indices are out of range."""
    _arity("nth", expr, 2)
    seq, index = expr
    if not isinstance(seq, tuple):
        raise KilnTypeError(f"Cannot index a non-list value {seq!r}")
    if isinstance(index, bool) or not isinstance(index, int):
        raise KilnTypeError(f"List index must be an integer, got {index!r}")
    if not 0 <= index < len(seq):
        raise KilnIndexError(f"Index {index} out of range for a list of length {len(seq)}")
    return seq[index]


def concat(env: Environment, expr: list[Value]) -> Value:
    """Concatenate strings with strings or lists with lists; a new value every time."""
    if all(isinstance(a, str) for a in expr):
        return "".join(expr)
    if all(isinstance(a, tuple) for a in expr):
        return tuple(v for part in expr for v in part)
    raise KilnTypeError("concat expects all strings or all lists")


def to_string(env: Environment, expr: list[Value]) -> str:
    """(str value) => display text of an int, bool, string or unit."""
    _arity("str", expr, 1)
    value = expr[0]
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, str)):
        return str(value)
    if value is Unit:
        return "unit"
    raise KilnTypeError(f"Cannot convert {value!r} to a string")


def register(env: Environment, argv: Iterable[str] = ()) -> None:
    """Register all builtin functions and the `args` list into the given environment."""
    pure = [
        ("+", add),
        ("-", sub),
        ("*", mul),
        ("/", div),
        ("mod", mod),
        ("=", equals),
        ("!=", not_equals),
        ("<", lt),
        ("<=", lte),
        (">", gt),
        (">=", gte),
        ("not", logical_not),
        ("list", list_builtin),
        ("len", length),
        ("nth", nth),
        ("concat", concat),
        ("str", to_string),
    ]
    env.update({Symbol(name): Builtin(name, fn) for name, fn in pure})
    env.update(
        {
            Symbol("getenv"): Builtin("getenv", getenv, {"env"}),
            Symbol("read-file"): Builtin("read-file", read_file, {"fs"}, declare=_declare_read),
            Symbol("exists?"): Builtin("exists?", file_exists, {"fs"}, declare=_declare_read),
            Symbol("write-file"): Builtin("write-file", write_file, {"fs"}, declare=_declare_write),
            Symbol("$"): Builtin(
                "$", shell_out, {"process", "fs"}, cacheable=True, declare=declare_shell_paths
            ),
        }
    )
    env.define(Symbol("args"), tuple(str(a) for a in argv))
