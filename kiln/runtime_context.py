from __future__ import annotations
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from kiln.effects.footprint import Footprint

# Context-local so that scheduler worker threads never share a footprint.
_current_footprint: ContextVar[Optional["Footprint"]] = ContextVar(
    "kiln_current_footprint", default=None
)


def get_current_footprint() -> Optional["Footprint"]:
    return _current_footprint.get()


@contextmanager
def tracking(footprint: "Footprint") -> Iterator["Footprint"]:
    """Make `footprint` the target of effect recording for the enclosed block.

    On exit the footprint is merged into whichever footprint was current
    before, so an enclosing call always sees everything its callees did,
    including when the block raises.
    """
    outer = _current_footprint.get()
    token = _current_footprint.set(footprint)
    try:
        yield footprint
    finally:
        _current_footprint.reset(token)
        if outer is not None:
            outer.merge(footprint)
