from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from kiln import SExpression, Value
from kiln.cache.fingerprint import CallFingerprint
from kiln.effects.footprint import Footprint
from kiln.reader.printer import to_source
from kiln.types.symbol import Symbol


class NodeState(Enum):
    PENDING = "pending"
    FINGERPRINTED = "fingerprinted"
    CACHE_HIT = "cache-hit"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass(eq=False)
class CallNode:
    """One top-level statement of a build run.

    `expr` is the expression to evaluate (for `(define name e)` it is `e`,
    and `binds` is `name`). `deps` holds the indices of nodes that must be
    DONE before this one is admitted, from data flow and from declared
    effect overlap.
    """

    index: int
    expr: SExpression
    binds: Optional[Symbol] = None
    mentions: frozenset[Symbol] = frozenset()
    reads: frozenset[str] = frozenset()
    writes: frozenset[str] = frozenset()
    deps: set[int] = field(default_factory=set)
    state: NodeState = NodeState.PENDING
    fingerprint: Optional[CallFingerprint] = None
    value: Value = None
    footprint: Optional[Footprint] = None
    error: Optional[BaseException] = None

    @property
    def label(self) -> str:
        text = to_source(self.expr)
        if self.binds is not None:
            text = f"{self.binds} = {text}"
        return text if len(text) <= 60 else text[:57] + "..."

    def __repr__(self) -> str:
        return f"<CallNode {self.index} {self.state.value} {self.label}>"
