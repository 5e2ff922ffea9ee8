"""User function representation and argument binding for kiln."""

from __future__ import annotations

from io import StringIO

from kiln import SExpression, Value
from kiln.errors import ArityError
from kiln.types.environment import Environment
from kiln.types.symbol import Symbol


class Function:
    """A first-class user function: formals, body, closure env and effect declarations.

    `source` is the form that created the function (a `defn` or `lambda`);
    its canonical text is what identifies the function to the cache.
    `reads` and `writes` are the paths the author declared the function
    touches; `cacheable` is False for functions defined with `:uncached`.
    """

    __slots__ = ("name", "formals", "body", "env", "source", "reads", "writes", "cacheable")

    def __init__(
        self,
        formals: list[Symbol],
        body: SExpression,
        env: Environment | None = None,
        *,
        name: str | None = None,
        source: SExpression = None,
        reads: tuple[str, ...] = (),
        writes: tuple[str, ...] = (),
        cacheable: bool = True,
    ):
        self.formals: list[Symbol] = list(formals)
        self.body: SExpression = body
        # Avoid shared default Environment across instances
        self.env: Environment = env if env is not None else Environment()
        self.name = name
        self.source = source
        self.reads = tuple(reads)
        self.writes = tuple(writes)
        self.cacheable = cacheable

    def __str__(self) -> str:
        with StringIO() as buffer:
            buffer.write("(fn ")
            if self.name:
                buffer.write(self.name + " ")
            buffer.write("(")
            buffer.write(" ".join(str(f) for f in self.formals))
            buffer.write("))")
            return buffer.getvalue()

    def __repr__(self) -> str:
        return str(self)

    def extend_env(self, args: list[Value]) -> Environment:
        """Bind argument values to the formals in a new frame over the closure env."""
        if len(args) != len(self.formals):
            label = self.name or "lambda"
            raise ArityError(
                f"{label} expects {len(self.formals)} argument(s), got {len(args)}"
            )
        local_env = Environment(outer=self.env)
        for formal, value in zip(self.formals, args):
            local_env.define(formal, value)
        return local_env
