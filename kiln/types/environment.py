"""Runtime environment for kiln.

The Environment stores bindings of Symbols to evaluated values and supports
nested scopes via an `outer` link. The root environment of a build holds the
builtins, `args`, every hoisted `defn` and the values published by completed
top-level statements.
"""

from __future__ import annotations

from io import StringIO
from typing import Iterator, Optional

from kiln import Value
from kiln.errors import KilnTypeError, UndefinedVariableError
from kiln.types.symbol import Symbol


class Environment:
    """Hierarchical mapping from Symbols to values."""

    __slots__ = ("vars", "outer")

    def __init__(self, outer: Optional[Environment] = None):
        self.vars: dict[Symbol, Value] = {}
        self.outer: Environment | None = outer

    def define(self, name: Symbol, value: Value) -> None:
        """Bind `name` to `value` in this frame.

        Raises KilnTypeError if `name` is not a Symbol.
        """
        if not isinstance(name, Symbol):
            raise KilnTypeError(f"Cannot define {name!r}: not a name")
        self.vars[name] = value

    def find(self, symbol: Symbol) -> Optional[Environment]:
        """Find the nearest environment in the chain that contains `symbol`."""
        env: Optional[Environment] = self
        while env is not None:
            if symbol in env.vars:
                return env
            env = env.outer
        return None

    def lookup(self, name: Symbol) -> Value:
        """Look up the value bound to `name`, innermost frame first."""
        env = self.find(name)
        if env is None:
            raise UndefinedVariableError(f"Undefined variable {name}")
        return env.vars[name]

    def frames(self) -> Iterator[Environment]:
        env: Optional[Environment] = self
        while env is not None:
            yield env
            env = env.outer

    def update(self, mapping: dict[Symbol, Value]) -> None:
        """Bulk-define a mapping of Symbol -> value in the current frame."""
        for k, v in mapping.items():
            self.define(k, v)

    def _write_vars(self, buffer: StringIO) -> None:
        """Write this frame's variables into the buffer in a compact form."""
        buffer.write("{")
        first = True
        for k, v in self.vars.items():
            if not first:
                buffer.write(", ")
            buffer.write(f"{k}: {v!r}")
            first = False
        buffer.write("}")

    def __str__(self) -> str:
        """Human-readable single-frame view with an indicator for parent."""
        with StringIO() as buffer:
            self._write_vars(buffer)
            if self.outer is not None:
                buffer.write(" -> ...")  # indicate parent exists
            return buffer.getvalue()

    def __repr__(self) -> str:
        """Detailed chain representation for debugging purposes."""
        chain = []
        for env in self.frames():
            with StringIO() as env_buf:
                env._write_vars(env_buf)
                chain.append(env_buf.getvalue())
        return "<Environment chain: " + " -> ".join(chain) + ">"
