"""Deterministic structural hashing of values, functions and files.

Equal values always produce equal digests no matter how they were built, and
distinct variants never collide by construction (every encoding is tagged and
length-prefixed), so `true` and `1` or `"1"` and `1` hash differently.
"""

from __future__ import annotations

import hashlib
import os
from typing import Optional

from kiln import Value
from kiln.errors import KilnTypeError
from kiln.evaluation.free_vars import LAMBDA, free_vars
from kiln.reader.printer import to_source
from kiln.types.builtin import Builtin
from kiln.types.function import Function
from kiln.types.symbol import Symbol
from kiln.types.unit import UnitType

# Digest recorded for a path that does not exist
MISSING = "missing"

_CHUNK = 1 << 16


def _frame(tag: bytes, payload: bytes) -> bytes:
    return tag + str(len(payload)).encode() + b":" + payload


def _encode(value: Value) -> bytes:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return _frame(b"b", b"1" if value else b"0")
    if isinstance(value, int):
        return _frame(b"i", str(value).encode())
    if isinstance(value, str):
        return _frame(b"s", value.encode("utf-8"))
    if isinstance(value, tuple):
        return _frame(b"l", b"".join(_encode(v) for v in value))
    if isinstance(value, UnitType):
        return _frame(b"u", b"")
    if isinstance(value, Symbol):
        return _frame(b"k", value.id.encode("utf-8"))
    if isinstance(value, Function):
        return _frame(b"f", function_identity(value).encode())
    if isinstance(value, Builtin):
        return _frame(b"p", value.name.encode("utf-8"))
    raise KilnTypeError(f"Cannot hash value of type {type(value).__name__}")


def value_hash(value: Value) -> str:
    return hashlib.sha256(_encode(value)).hexdigest()


def is_cacheable_value(value: Value) -> bool:
    """True for values that can be persisted: no functions anywhere inside."""
    if isinstance(value, (Function, Builtin)):
        return False
    if isinstance(value, tuple):
        return all(is_cacheable_value(v) for v in value)
    return True


def function_identity(fn: Function, _active: Optional[frozenset[int]] = None) -> str:
    """Identity of a user function: its canonical definition text plus
    whatever its body reaches in its closure.

    Referenced user functions contribute their own identity, so editing a
    callee changes the identity of every caller. Other referenced bindings
    (closure variables, top-level values such as `args`) contribute their
    value hash.
    """
    active = (_active or frozenset()) | {id(fn)}
    source = fn.source if fn.source is not None else [LAMBDA, fn.formals, fn.body]
    h = hashlib.sha256()
    h.update(b"fn:" + to_source(source).encode("utf-8"))
    for sym in sorted(free_vars(source)):
        env = fn.env.find(sym)
        if env is None:
            continue
        bound = env.vars[sym]
        if isinstance(bound, Function):
            part = f"rec:{sym.id}" if id(bound) in active else function_identity(bound, active)
        elif isinstance(bound, Builtin):
            part = f"builtin:{bound.name}"
        else:
            part = value_hash(bound)
        h.update(f"\0{sym.id}={part}".encode("utf-8"))
    return h.hexdigest()


def callable_identity(fn: Function | Builtin) -> str:
    if isinstance(fn, Builtin):
        return f"builtin:{fn.name}"
    return function_identity(fn)


def file_digest(path: str) -> str:
    """Content digest of `path`, or MISSING when it does not exist.

    Directories hash their sorted entry names.
    """
    if os.path.isdir(path):
        names = "\0".join(sorted(os.listdir(path)))
        return "dir:" + hashlib.sha256(names.encode("utf-8")).hexdigest()
    h = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            while chunk := f.read(_CHUNK):
                h.update(chunk)
    except FileNotFoundError:
        return MISSING
    return h.hexdigest()
