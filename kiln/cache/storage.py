"""
Storage backends for the kiln cache.

The cache keeps two kinds of records in one key space, distinguished by key
prefix: call entries (`entry:<fingerprint>`) and learned footprint shapes
(`shape:<call key>`). Every record carries a last-validated timestamp that
garbage collection uses to drop the least recently validated entries.

Public API:
- CacheStorage: Protocol for storage backends
- InMemoryStorage: in-process storage (tests, throwaway builds)
- SQLiteStorage: SQLite-backed storage that survives process restarts
"""

from __future__ import annotations

import itertools
import pickle
import sqlite3
import threading
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CacheStorage(Protocol):
    """
    Protocol for cache storage backends.

    Implementations must be thread-safe for concurrent access.
    Values are opaque - the storage layer handles serialization.
    """

    def get(self, key: str) -> Any | None:
        """Get value by key. Returns None if not found."""
        ...

    def put(self, key: str, value: Any) -> None:
        """Store value with key. Overwrites if exists."""
        ...

    def add(self, key: str, value: Any) -> bool:
        """Store value only if key is absent. Returns True if stored."""
        ...

    def touch(self, key: str) -> None:
        """Mark key as validated now."""
        ...

    def delete(self, key: str) -> bool:
        """Delete key. Returns True if key existed."""
        ...

    def keys(self, prefix: str = "") -> Iterable[str]:
        """Keys starting with prefix."""
        ...

    def evict(self, prefix: str, keep: int) -> int:
        """Keep the `keep` most recently validated keys under prefix; return how many were dropped."""
        ...

    def clear(self) -> None:
        """Delete all entries."""
        ...


class InMemoryStorage:
    """
    In-memory storage. Not durable across restarts.

    Thread-safe via a reentrant lock. Validation order is tracked with a
    monotonically increasing counter rather than wall-clock time.
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._validated: dict[str, int] = {}
        self._clock = itertools.count()
        self._lock = threading.RLock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._validated[key] = next(self._clock)

    def add(self, key: str, value: Any) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self.put(key, value)
            return True

    def touch(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                self._validated[key] = next(self._clock)

    def delete(self, key: str) -> bool:
        with self._lock:
            self._validated.pop(key, None)
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> Iterable[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]

    def evict(self, prefix: str, keep: int) -> int:
        with self._lock:
            ordered = sorted(
                (k for k in self._data if k.startswith(prefix)),
                key=lambda k: self._validated[k],
                reverse=True,
            )
            stale = ordered[keep:]
            for k in stale:
                self.delete(k)
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._validated.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:
        with self._lock:
            return f"InMemoryStorage({len(self._data)} entries)"


class SQLiteStorage:
    """
    SQLite-backed durable storage.

    Values are serialized using pickle. Thread-safe via connection-per-thread;
    concurrent writers wait on SQLite's own lock.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Args:
            db_path: Path to SQLite database file. Use ":memory:" for in-memory
                (note: in-memory databases are private to each thread's connection).
        """
        self._db_path = str(db_path)
        self._local = threading.local()
        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local connection."""
        if not hasattr(self._local, "conn"):
            self._local.conn = sqlite3.connect(self._db_path, timeout=30.0)
        return self._local.conn

    def _init_schema(self) -> None:
        conn = self._get_conn()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS cache (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                created_at REAL NOT NULL,
                validated_at REAL NOT NULL
            )
            """
        )
        conn.commit()

    def get(self, key: str) -> Any | None:
        cursor = self._get_conn().execute(
            "SELECT value FROM cache WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        return pickle.loads(row[0]) if row else None

    def put(self, key: str, value: Any) -> None:
        now = time.time()
        blob = pickle.dumps(value)
        conn = self._get_conn()
        conn.execute(
            """
            INSERT INTO cache (key, value, created_at, validated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = ?, validated_at = ?
            """,
            (key, blob, now, now, blob, now),
        )
        conn.commit()

    def add(self, key: str, value: Any) -> bool:
        now = time.time()
        conn = self._get_conn()
        cursor = conn.execute(
            "INSERT OR IGNORE INTO cache (key, value, created_at, validated_at) VALUES (?, ?, ?, ?)",
            (key, pickle.dumps(value), now, now),
        )
        conn.commit()
        return cursor.rowcount > 0

    def touch(self, key: str) -> None:
        conn = self._get_conn()
        conn.execute(
            "UPDATE cache SET validated_at = ? WHERE key = ?", (time.time(), key)
        )
        conn.commit()

    def delete(self, key: str) -> bool:
        conn = self._get_conn()
        cursor = conn.execute("DELETE FROM cache WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0

    def keys(self, prefix: str = "") -> Iterable[str]:
        cursor = self._get_conn().execute(
            "SELECT key FROM cache WHERE substr(key, 1, ?) = ?", (len(prefix), prefix)
        )
        return [row[0] for row in cursor.fetchall()]

    def evict(self, prefix: str, keep: int) -> int:
        conn = self._get_conn()
        cursor = conn.execute(
            """
            DELETE FROM cache WHERE key IN (
                SELECT key FROM cache WHERE substr(key, 1, ?) = ?
                ORDER BY validated_at DESC, key
                LIMIT -1 OFFSET ?
            )
            """,
            (len(prefix), prefix, keep),
        )
        conn.commit()
        return cursor.rowcount

    def clear(self) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM cache")
        conn.commit()

    def close(self) -> None:
        """Close the thread-local connection if open."""
        if hasattr(self._local, "conn"):
            self._local.conn.close()
            del self._local.conn

    def __len__(self) -> int:
        cursor = self._get_conn().execute("SELECT COUNT(*) FROM cache")
        return cursor.fetchone()[0]

    def __repr__(self) -> str:
        return f"SQLiteStorage({self._db_path!r})"
