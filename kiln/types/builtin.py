"""Host-implemented functions exposed to kiln programs."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from kiln import Value

BuiltinFn = Callable[..., Value]
# Maps evaluated call arguments to (declared reads, declared writes)
DeclareFn = Callable[[list], tuple[tuple[str, ...], tuple[str, ...]]]


class Builtin:
    """A named builtin with its effect contract.

    `effects` names the kinds of external state the builtin may touch
    ("env", "fs", "process"); an empty contract marks a pure builtin.
    Only builtins flagged `cacheable` are memoized when called from a
    top-level statement.
    """

    __slots__ = ("name", "fn", "effects", "cacheable", "declare")

    def __init__(
        self,
        name: str,
        fn: BuiltinFn,
        effects: Iterable[str] = (),
        *,
        cacheable: bool = False,
        declare: Optional[DeclareFn] = None,
    ):
        self.name = name
        self.fn = fn
        self.effects = frozenset(effects)
        self.cacheable = cacheable
        self.declare = declare

    @property
    def pure(self) -> bool:
        return not self.effects

    def declared_paths(self, args: list[Value]) -> tuple[tuple[str, ...], tuple[str, ...]]:
        if self.declare is None:
            return (), ()
        return self.declare(args)

    def __call__(self, env, args: list[Value]) -> Value:
        return self.fn(env, args)

    def __repr__(self) -> str:
        return f"<builtin {self.name}>"
