import threading

import pytest
from hypothesis import given, strategies as st

from kiln.cache.fingerprint import CallFingerprint, call_key
from kiln.cache.storage import CacheStorage, InMemoryStorage, SQLiteStorage
from kiln.cache.store import ENTRY_PREFIX, SHAPE_PREFIX, Cache
from kiln.effects.footprint import Footprint
from kiln.effects.hashing import MISSING, file_digest, value_hash
from kiln.errors import StaleInputError
from kiln.interpreter import Interpreter
from kiln.types.unit import Unit

args = st.lists(st.one_of(st.integers(), st.text(max_size=8), st.booleans()), max_size=4)


def fingerprint(cache, *values, env=(), files=(), fid="f"):
    return cache.resolve_fingerprint(fid, list(values), env, files)


@given(args)
def test_fingerprint_is_deterministic(values):
    cache = Cache()
    a = cache.resolve_fingerprint("f", values)
    b = cache.resolve_fingerprint("f", list(values))
    assert a == b
    assert a.key == b.key
    assert a.call_key == call_key("f", tuple(value_hash(v) for v in values))


@given(args, args)
def test_fingerprint_separates_arguments(x, y):
    cache = Cache()
    a = cache.resolve_fingerprint("f", x)
    b = cache.resolve_fingerprint("f", y)
    assert (a.key == b.key) == ([value_hash(v) for v in x] == [value_hash(v) for v in y])


def test_fingerprint_separates_functions(cache):
    assert fingerprint(cache, 1, fid="f").key != fingerprint(cache, 1, fid="g").key


def test_fingerprint_tracks_env_values(cache, monkeypatch):
    unset = fingerprint(cache, env=["TOKEN"])
    monkeypatch.setenv("TOKEN", "")
    empty = fingerprint(cache, env=["TOKEN"])
    monkeypatch.setenv("TOKEN", "a")
    a = fingerprint(cache, env=["TOKEN"])
    assert len({unset.key, empty.key, a.key}) == 3
    assert fingerprint(cache, env=["TOKEN"]) == a


def test_fingerprint_tracks_file_contents(cache, workdir):
    (workdir / "in.txt").write_text("one")
    digest = file_digest("in.txt")
    one = fingerprint(cache, files=["in.txt"])
    (workdir / "in.txt").write_text("two")
    assert fingerprint(cache, files=["./in.txt"]).key != one.key
    assert one.files == (("in.txt", digest),)


def test_missing_learned_path_hashes_as_missing(cache, workdir):
    fp = fingerprint(cache, files=["gone.txt"])
    assert fp.files == (("gone.txt", MISSING),)


def test_missing_declared_path_is_stale(cache, workdir):
    with pytest.raises(StaleInputError) as info:
        cache.resolve_fingerprint("f", [], required_paths=["in.txt"])
    assert info.value.path == "in.txt"
    (workdir / "in.txt").write_text("x")
    fp = cache.resolve_fingerprint("f", [], required_paths=["in.txt"])
    assert fp.files == (("in.txt", file_digest("in.txt")),)


def test_commit_is_insert_if_absent(cache):
    fp = fingerprint(cache, 1)
    assert cache.lookup(fp) is None
    assert cache.commit(fp, "first", Footprint().freeze())
    assert not cache.commit(fp, "second", Footprint().freeze())
    assert cache.lookup(fp).value == "first"


def test_commit_keeps_written_digests(cache):
    footprint = Footprint()
    footprint.add_file_write("out.txt", "abc")
    fp = fingerprint(cache, 1)
    cache.commit(fp, 0, footprint.freeze())
    assert cache.lookup(fp).files_written == {"out.txt": "abc"}


def test_function_results_are_not_committed(cache):
    interp = Interpreter()
    f = interp.eval("(lambda (x) x)")
    fp = fingerprint(cache, 1)
    assert not cache.commit(fp, (1, f), Footprint().freeze())
    assert cache.lookup(fp) is None


def test_learn_records_shape(cache):
    assert cache.shape("k") is None
    footprint = Footprint()
    footprint.add_env_read("TOKEN")
    footprint.add_file_read("in.txt")
    cache.learn("k", footprint)
    shape = cache.shape("k")
    assert shape.env_names == {"TOKEN"}
    assert shape.file_paths == {"in.txt"}


def test_gc_drops_least_recently_validated(cache):
    a, b, c = (fingerprint(cache, n) for n in "abc")
    for fp in (a, b, c):
        cache.commit(fp, fp.arg_hashes, Footprint().freeze())
    cache.mark_validated(a)
    assert cache.collect_garbage(2) == 1
    assert cache.lookup(b) is None
    assert cache.lookup(a) is not None
    assert cache.lookup(c) is not None
    assert cache.collect_garbage(2) == 0


def test_hits_keep_their_shape_alive(cache):
    hot, cold = fingerprint(cache, "hot"), fingerprint(cache, "cold")
    for fp in (hot, cold):
        cache.learn(fp.call_key, Footprint())
        cache.commit(fp, 1, Footprint().freeze())
    cache.mark_validated(hot)
    cache.collect_garbage(1)
    assert cache.shape(hot.call_key) is not None
    assert cache.lookup(hot) is not None
    assert cache.shape(cold.call_key) is None


def test_gc_bounds_shapes_too(cache):
    for n in range(3):
        cache.learn(f"k{n}", Footprint())
    cache.collect_garbage(1)
    assert list(cache.storage.keys(SHAPE_PREFIX)) == ["shape:k2"]


def test_exclusive_is_per_key(cache):
    entered = threading.Event()

    def contender():
        with cache.exclusive("k"):
            entered.set()

    with cache.exclusive("k"):
        t = threading.Thread(target=contender)
        t.start()
        assert not entered.wait(0.2)
        with cache.exclusive("other"):
            pass
    t.join(5)
    assert entered.is_set()
    assert cache._locks == {}


def test_exclusive_releases_its_lock_on_error(cache):
    with pytest.raises(ValueError):
        with cache.exclusive("k"):
            assert set(cache._locks) == {"k"}
            raise ValueError("boom")
    assert cache._locks == {}
    with cache.exclusive("k"):
        pass


@pytest.mark.parametrize("make", [lambda p: InMemoryStorage(), lambda p: SQLiteStorage(p / "c.db")])
def test_storage_backends(tmp_path, make):
    storage = make(tmp_path)
    assert isinstance(storage, CacheStorage)
    assert storage.get("x") is None
    assert storage.add("entry:x", 1)
    assert not storage.add("entry:x", 2)
    storage.put("entry:y", (1, "a"))
    storage.put("shape:z", 3)
    assert storage.get("entry:x") == 1
    assert storage.get("entry:y") == (1, "a")
    assert sorted(storage.keys("entry:")) == ["entry:x", "entry:y"]
    assert storage.delete("entry:x")
    assert not storage.delete("entry:x")
    assert len(storage) == 2
    storage.clear()
    assert len(storage) == 0


def test_sqlite_cache_survives_reopen(tmp_path):
    path = tmp_path / "cache.sqlite3"
    first = Cache(SQLiteStorage(path))
    footprint = Footprint()
    footprint.add_env_read("FOO")
    fp = first.resolve_fingerprint("f", [1])
    first.commit(fp, (Unit, "x"), footprint.freeze())
    first.learn(fp.call_key, footprint)

    second = Cache(SQLiteStorage(path))
    entry = second.lookup(fp)
    assert entry.value == (Unit, "x")
    assert entry.value[0] is Unit
    assert entry.footprint.env_reads == {"FOO"}
    assert second.shape(fp.call_key).env_names == {"FOO"}


def test_sqlite_storage_is_usable_from_threads(tmp_path):
    storage = SQLiteStorage(tmp_path / "c.db")

    def write(n):
        storage.put(f"{ENTRY_PREFIX}{n}", n)

    threads = [threading.Thread(target=write, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)
    assert sorted(storage.get(k) for k in storage.keys(ENTRY_PREFIX)) == list(range(8))


def test_fingerprint_key_covers_all_components():
    base = CallFingerprint("f", ("a",), (("TOKEN", "1"),), (("in", "d"),))
    variants = [
        CallFingerprint("g", ("a",), (("TOKEN", "1"),), (("in", "d"),)),
        CallFingerprint("f", ("b",), (("TOKEN", "1"),), (("in", "d"),)),
        CallFingerprint("f", ("a",), (("TOKEN", "2"),), (("in", "d"),)),
        CallFingerprint("f", ("a",), (("TOKEN", "1"),), (("in", "e"),)),
        CallFingerprint("f", ("a",), (), (("TOKEN", "1"), ("in", "d"))),
    ]
    assert len({base.key, *(v.key for v in variants)}) == 6
    assert all(v.call_key == base.call_key for v in variants[2:])
