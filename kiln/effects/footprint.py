"""Effect footprints: what one call execution observably touched.

A Footprint is filled while its call runs (through the `record_*` helpers,
which always target the footprint made current by
`kiln.runtime_context.tracking`) and frozen once the call completes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from kiln.effects.hashing import file_digest
from kiln.runtime_context import get_current_footprint


def normalize_path(path: str) -> str:
    return os.path.normpath(os.fspath(path))


@dataclass
class Footprint:
    env_reads: set[str] = field(default_factory=set)
    files_read: set[str] = field(default_factory=set)
    # path -> content digest right after the write
    files_written: dict[str, str] = field(default_factory=dict)
    exit_code: Optional[int] = None
    frozen: bool = False

    @property
    def pure(self) -> bool:
        return not (self.env_reads or self.files_read or self.files_written) and self.exit_code is None

    def _check_open(self) -> None:
        if self.frozen:
            raise RuntimeError("footprint of a completed call cannot change")

    def add_env_read(self, name: str) -> None:
        self._check_open()
        self.env_reads.add(name)

    def add_file_read(self, path: str) -> None:
        self._check_open()
        self.files_read.add(normalize_path(path))

    def add_file_write(self, path: str, digest: str) -> None:
        self._check_open()
        self.files_written[normalize_path(path)] = digest

    def set_exit_code(self, code: int) -> None:
        self._check_open()
        self.exit_code = code

    def merge(self, other: Footprint) -> None:
        """Fold a finished nested call's effects into this one."""
        self._check_open()
        self.env_reads.update(other.env_reads)
        self.files_read.update(other.files_read)
        self.files_written.update(other.files_written)
        if other.exit_code is not None:
            self.exit_code = other.exit_code

    def freeze(self) -> Footprint:
        self.env_reads = frozenset(self.env_reads)
        self.files_read = frozenset(self.files_read)
        self.files_written = dict(self.files_written)
        self.frozen = True
        return self


# --- recording against the current call ---

def record_env_read(name: str) -> None:
    fp = get_current_footprint()
    if fp is not None:
        fp.add_env_read(name)


def record_file_read(path: str) -> None:
    fp = get_current_footprint()
    if fp is not None:
        fp.add_file_read(path)


def record_file_write(path: str) -> None:
    """Record a write to `path`, capturing the content digest as it is now."""
    fp = get_current_footprint()
    if fp is not None:
        fp.add_file_write(path, file_digest(normalize_path(path)))


def record_exit_code(code: int) -> None:
    fp = get_current_footprint()
    if fp is not None:
        fp.set_exit_code(code)
