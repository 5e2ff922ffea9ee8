import os

import pytest

from kiln.config import get_cache_dir, get_cache_path, get_max_entries, get_worker_limit


def test_cache_dir_defaults_to_working_directory(workdir):
    assert get_cache_dir() == workdir / ".kiln-cache"


def test_cache_path_creates_directory(workdir, monkeypatch):
    monkeypatch.setenv("KILN_CACHE_DIR", str(workdir / "a" / "b"))
    path = get_cache_path()
    assert path == workdir / "a" / "b" / "cache.sqlite3"
    assert path.parent.is_dir()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("3", 3),
        ("0", 1),
        ("-2", 1),
        ("  ", os.cpu_count() or 1),
        ("many", os.cpu_count() or 1),
    ]
)
def test_worker_limit(monkeypatch, raw, expected):
    monkeypatch.setenv("KILN_WORKERS", raw)
    assert get_worker_limit() == expected


def test_max_entries(monkeypatch):
    assert get_max_entries() == 10_000
    monkeypatch.setenv("KILN_CACHE_MAX_ENTRIES", "5")
    assert get_max_entries() == 5
