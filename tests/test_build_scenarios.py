"""End-to-end runs of small build programs against a shared cache."""

import pytest

from kiln.build import Build
from kiln.cache.storage import SQLiteStorage
from kiln.cache.store import ENTRY_PREFIX, Cache
from kiln.errors import BuildFailedError, MissingEnvVarError
from kiln.types.symbol import Symbol

BUILD_SCRIPT = '(define py (nth args 0)) (define status ($ py "build.py"))'


def test_unset_variable_fails_the_build(build):
    with pytest.raises(BuildFailedError) as info:
        build.run('(define token (getenv "TOKEN"))')
    assert isinstance(info.value.first, MissingEnvVarError)
    assert info.value.first.name == "TOKEN"
    node = info.value.failures[0][0]
    assert node.footprint.env_reads == {"TOKEN"}


def test_default_for_unset_variable(build):
    report = build.run('(define foo (getenv "FOO" "swag"))')
    assert report.bindings[Symbol("foo")] == "swag"
    assert report.nodes[0].footprint.env_reads == {"FOO"}


def test_second_run_of_shell_out_is_a_full_hit(build, spawns, python_argv):
    first = build.run(BUILD_SCRIPT, python_argv)
    assert [n.index for n in first.misses] == [1]
    assert first.bindings[Symbol("status")] == 0

    second = build.run(BUILD_SCRIPT, python_argv)
    assert [n.index for n in second.hits] == [1]
    assert second.misses == []
    assert second.bindings[Symbol("status")] == 0
    assert second.nodes[1].footprint.exit_code == 0
    assert len(spawns()) == 1


def test_duplicate_call_within_a_run_spawns_once(build, spawns, python_argv):
    report = build.run(
        '(define py (nth args 0)) (define a ($ py "build.py")) (define b ($ py "build.py"))',
        python_argv,
    )
    assert len(spawns()) == 1
    assert len(report.hits) == 1
    assert len(report.misses) == 1
    assert report.bindings[Symbol("a")] == report.bindings[Symbol("b")] == 0


def test_nonzero_exit_is_a_cached_value(build, spawns, python_argv):
    program = '(define py (nth args 0)) (define status ($ py "build.py" "exit=2"))'
    assert build.run(program, python_argv).bindings[Symbol("status")] == 2
    assert build.run(program, python_argv).bindings[Symbol("status")] == 2
    assert len(spawns()) == 1


def test_env_change_invalidates(build, monkeypatch):
    program = '(defn token () (getenv "TOKEN")) (define t (token))'
    monkeypatch.setenv("TOKEN", "a")
    assert build.run(program).bindings[Symbol("t")] == "a"

    again = build.run(program)
    assert again.hits and again.bindings[Symbol("t")] == "a"

    monkeypatch.setenv("TOKEN", "b")
    changed = build.run(program)
    assert changed.hits == []
    assert changed.bindings[Symbol("t")] == "b"


def test_env_change_reaches_through_nested_calls(build, monkeypatch, spawns, python_argv):
    program = (
        '(defn mode () (getenv "FOO" "debug")) '
        '(defn compile () ($ (nth args 0) "build.py" (mode))) '
        "(define status (compile))"
    )
    build.run(program, python_argv)
    monkeypatch.setenv("FOO", "release")
    build.run(program, python_argv)
    build.run(program, python_argv)
    assert spawns() == ["debug", "release"]


def test_pure_calls_are_transparent(build):
    program = "(defn area (w h) (* w h)) (define x (area 3 4)) (define y (area 4 3))"
    cold = build.run(program)
    warm = build.run(program)
    assert cold.bindings == warm.bindings == {Symbol("x"): 12, Symbol("y"): 12}
    assert cold.hits == []
    assert [n.index for n in warm.hits] == [0, 1]
    assert all(n.footprint.pure for n in warm.nodes)


def test_fingerprints_are_stable_across_runs(build):
    program = "(defn area (w h) (* w h)) (define x (area 3 4))"
    first = build.run(program).nodes[0].fingerprint
    second = build.run(program).nodes[0].fingerprint
    assert first == second
    assert first.key == second.key


def test_editing_a_function_misses(build):
    assert build.run("(defn f () 1) (define x (f))").bindings[Symbol("x")] == 1
    report = build.run("(defn f () 2) (define x (f))")
    assert report.hits == []
    assert report.bindings[Symbol("x")] == 2


def test_args_change_misses(build, spawns, python_argv):
    build.run(BUILD_SCRIPT, python_argv)
    build.run('(define py (nth args 0)) (define status ($ py "build.py" (nth args 1)))',
              python_argv + ["v2"])
    assert spawns() == ["", "v2"]


def test_cache_persists_across_builds(workdir, spawns, python_argv):
    path = workdir / "cache.sqlite3"
    Build(Cache(SQLiteStorage(path)), workers=2).run(BUILD_SCRIPT, python_argv)
    report = Build(Cache(SQLiteStorage(path)), workers=2).run(BUILD_SCRIPT, python_argv)
    assert [n.index for n in report.hits] == [1]
    assert len(spawns()) == 1


def test_default_build_uses_configured_cache_dir(workdir, spawns, python_argv, monkeypatch):
    monkeypatch.setenv("KILN_CACHE_DIR", str(workdir / "store"))
    monkeypatch.setenv("KILN_WORKERS", "3")
    build = Build()
    assert isinstance(build.cache.storage, SQLiteStorage)
    assert build.workers == 3
    assert (workdir / "store" / "cache.sqlite3").exists()
    build.run(BUILD_SCRIPT, python_argv)
    assert Build().run(BUILD_SCRIPT, python_argv).hits


def test_gc_runs_after_each_build(build, cache, monkeypatch):
    monkeypatch.setenv("KILN_CACHE_MAX_ENTRIES", "1")
    build.run("(defn f (x) x) (define a (f 1)) (define b (f 2))")
    assert len(list(cache.storage.keys(ENTRY_PREFIX))) == 1


def test_gc_keeps_a_frequently_hit_call_reachable(build, monkeypatch):
    monkeypatch.setenv("KILN_CACHE_MAX_ENTRIES", "2")
    build.run("(defn f (x) x) (define a (f 1))")
    build.run("(defn f (x) x) (define a (f 1)) (define b (f 2))")
    build.run("(defn f (x) x) (define a (f 1)) (define c (f 3))")
    report = build.run("(defn f (x) x) (define a (f 1))")
    assert [n.index for n in report.hits] == [0]
