from __future__ import annotations
import os
from pathlib import Path


_DEFAULT_CACHE_DIR = '.kiln-cache'
_DEFAULT_MAX_ENTRIES = 10_000


def _int_from_env(var: str, default: int) -> int:
    raw = os.environ.get(var)
    if not raw or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_cache_dir() -> Path:
    raw = os.environ.get('KILN_CACHE_DIR')
    if not raw or not raw.strip():
        return Path.cwd() / _DEFAULT_CACHE_DIR
    return Path(raw.strip())


def get_cache_path() -> Path:
    """Location of the persistent cache database; the directory is created on demand."""
    root = get_cache_dir()
    root.mkdir(parents=True, exist_ok=True)
    return root / 'cache.sqlite3'


def get_worker_limit() -> int:
    return max(1, _int_from_env('KILN_WORKERS', os.cpu_count() or 1))


def get_max_entries() -> int:
    return max(0, _int_from_env('KILN_CACHE_MAX_ENTRIES', _DEFAULT_MAX_ENTRIES))
