from __future__ import annotations

import hashlib
from dataclasses import dataclass
from functools import cached_property
from typing import Tuple


def _digest(*parts: str) -> str:
    h = hashlib.sha256()
    for part in parts:
        h.update(part.encode("utf-8"))
        h.update(b"\0")
    return h.hexdigest()


def call_key(function_id: str, arg_hashes: Tuple[str, ...]) -> str:
    """Key of a call independent of its environment and file inputs.

    Learned footprint shapes and per-call locks are keyed by this.
    """
    return _digest("call", function_id, *arg_hashes)


# Equality is componentwise; `key` is the storage address derived from all components.
@dataclass(frozen=True)
class CallFingerprint:
    function_id: str
    arg_hashes: Tuple[str, ...]
    # (name, hash of the value at resolution time), sorted by name
    env: Tuple[Tuple[str, str], ...] = ()
    # (path, content digest at resolution time), sorted by path
    files: Tuple[Tuple[str, str], ...] = ()

    @property
    def call_key(self) -> str:
        return call_key(self.function_id, self.arg_hashes)

    @cached_property
    def key(self) -> str:
        flat = [f"{n}={h}" for n, h in self.env] + [f"{p}={h}" for p, h in self.files]
        return _digest(
            "fp", self.function_id, str(len(self.arg_hashes)), *self.arg_hashes,
            str(len(self.env)), *flat,
        )
