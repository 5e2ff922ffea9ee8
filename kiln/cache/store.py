"""Content-addressed call cache.

Entries are addressed by CallFingerprint: the callee's identity, the hashes of
its argument values, and the *current* value of every environment variable
and the *current* content of every file the call is known to depend on. A
changed input therefore yields a different address, and the old entry is
simply never found again; it ages out through `collect_garbage`.

Which env vars and files a call depends on cannot be known before it has run
once. After each execution the observed footprint is stored as the call's
shape, and later lookups for the same call key fingerprint against that
shape. The first execution of a call key is always a miss.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from kiln import Value
from kiln.cache.fingerprint import CallFingerprint
from kiln.cache.storage import CacheStorage, InMemoryStorage
from kiln.effects.footprint import Footprint, normalize_path
from kiln.effects.hashing import MISSING, file_digest, is_cacheable_value, value_hash
from kiln.errors import StaleInputError

logger = logging.getLogger(__name__)

ENTRY_PREFIX = "entry:"
SHAPE_PREFIX = "shape:"

_UNSET = "unset"


@dataclass(frozen=True)
class CacheEntry:
    value: Value
    footprint: Footprint
    # path -> digest of each file the call wrote, as left by the call
    files_written: dict[str, str]


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


@dataclass(frozen=True)
class Shape:
    """The env names and file paths a call was last seen to depend on."""
    env_names: frozenset[str]
    file_paths: frozenset[str]


class Cache:
    """Thread-safe facade over a CacheStorage.

    `lookup`, `resolve_fingerprint` and `commit` may be called from any
    worker. Callers that want check-then-run atomicity for one call take
    `exclusive(call_key)`; distinct call keys never contend.
    """

    def __init__(self, storage: Optional[CacheStorage] = None):
        self.storage: CacheStorage = storage if storage is not None else InMemoryStorage()
        # call key -> lock, kept only while some thread holds or waits on it
        self._locks: dict[str, _KeyLock] = {}
        self._locks_guard = threading.Lock()

    # --- fingerprints ---

    def resolve_fingerprint(
        self,
        function_id: str,
        arg_values: Iterable[Value],
        env_names: Iterable[str] = (),
        file_paths: Iterable[str] = (),
        required_paths: Iterable[str] = (),
    ) -> CallFingerprint:
        """Fingerprint a call against the current environment and filesystem.

        Raises StaleInputError when a path in `required_paths` (inputs the
        author declared) does not exist. Other missing paths hash as missing,
        which simply fails to match any earlier entry.
        """
        required = {normalize_path(p) for p in required_paths}
        env = []
        for name in sorted(set(env_names)):
            current = os.environ.get(name)
            env.append((name, _UNSET if current is None else value_hash(current)))
        files = []
        for path in sorted({normalize_path(p) for p in file_paths} | required):
            digest = file_digest(path)
            if digest == MISSING and path in required:
                raise StaleInputError(path)
            files.append((path, digest))
        return CallFingerprint(
            function_id,
            tuple(value_hash(v) for v in arg_values),
            tuple(env),
            tuple(files),
        )

    # --- entries ---

    def lookup(self, fingerprint: CallFingerprint) -> Optional[CacheEntry]:
        return self.storage.get(ENTRY_PREFIX + fingerprint.key)

    def commit(self, fingerprint: CallFingerprint, value: Value, footprint: Footprint) -> bool:
        """Store a result unless an entry already exists for this fingerprint.

        Results holding functions are not persisted. Returns True if stored.
        """
        if not is_cacheable_value(value):
            logger.debug("not caching %s: result holds a function", fingerprint.key[:12])
            return False
        entry = CacheEntry(value, footprint, dict(footprint.files_written))
        stored = self.storage.add(ENTRY_PREFIX + fingerprint.key, entry)
        if stored:
            logger.debug("committed %s", fingerprint.key[:12])
        return stored

    def mark_validated(self, fingerprint: CallFingerprint) -> None:
        """Record a hit on the entry and on the shape that led to it."""
        self.storage.touch(ENTRY_PREFIX + fingerprint.key)
        self.storage.touch(SHAPE_PREFIX + fingerprint.call_key)

    # --- learned shapes ---

    def shape(self, call_key: str) -> Optional[Shape]:
        return self.storage.get(SHAPE_PREFIX + call_key)

    def learn(self, call_key: str, footprint: Footprint) -> Shape:
        shape = Shape(frozenset(footprint.env_reads), frozenset(footprint.files_read))
        self.storage.put(SHAPE_PREFIX + call_key, shape)
        return shape

    # --- maintenance ---

    def collect_garbage(self, max_entries: int) -> int:
        """Drop the least recently validated entries (and shapes) beyond `max_entries`."""
        dropped = self.storage.evict(ENTRY_PREFIX, max_entries)
        self.storage.evict(SHAPE_PREFIX, max_entries)
        if dropped:
            logger.info("cache gc dropped %d entries", dropped)
        return dropped

    @contextmanager
    def exclusive(self, call_key: str) -> Iterator[None]:
        with self._locks_guard:
            held = self._locks.get(call_key)
            if held is None:
                held = self._locks[call_key] = _KeyLock()
            held.users += 1
        try:
            with held.lock:
                yield
        finally:
            with self._locks_guard:
                held.users -= 1
                if held.users == 0:
                    del self._locks[call_key]
