import sys

import pytest

from kiln.build import Build
from kiln.cache.storage import InMemoryStorage
from kiln.cache.store import Cache

# Every test runs in its own empty working directory with the variables used
# by the scenarios unset, so builds never see the developer's environment.

SCRUBBED_VARS = (
    "TOKEN",
    "FOO",
    "KILN_CACHE_DIR",
    "KILN_WORKERS",
    "KILN_CACHE_MAX_ENTRIES",
)

# Logs its arguments to spawns.log, then acts on them:
#   out=PATH    write "built" to PATH
#   sleep=SECS  sleep before exiting
#   exit=N      exit with status N
SPAWN_SCRIPT = """\
import sys, time
with open("spawns.log", "a") as log:
    log.write(" ".join(sys.argv[1:]) + "\\n")
code = 0
for arg in sys.argv[1:]:
    key, _, value = arg.partition("=")
    if key == "sleep":
        time.sleep(float(value))
    elif key == "out":
        with open(value, "w") as f:
            f.write("built\\n")
    elif key == "exit":
        code = int(value)
sys.exit(code)
"""


@pytest.fixture(autouse=True)
def _scrub_env(monkeypatch):
    for name in SCRUBBED_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def cache():
    return Cache(InMemoryStorage())


@pytest.fixture
def build(cache, workdir):
    return Build(cache, workers=4)


@pytest.fixture
def python_argv():
    """argv that makes `(nth args 0)` the running interpreter."""
    return [sys.executable]


@pytest.fixture
def spawns(workdir):
    """Writes build.py into the working directory; returns a reader for its spawn log."""
    (workdir / "build.py").write_text(SPAWN_SCRIPT)

    def read():
        log = workdir / "spawns.log"
        return log.read_text().splitlines() if log.exists() else []

    return read
