"""The shell-out builtin: `($ program args... [:reads paths] [:writes paths])`.

Only the exit code is surfaced to the program. The engine cannot see which
files a child process touches, so the author declares them with `:reads`
and `:writes`; those declarations are recorded on the current footprint
(reads hashed before the spawn, writes hashed after exit) and feed both the
cache fingerprint and the scheduler's effect-overlap edges.
"""

from __future__ import annotations

import logging
import subprocess

from kiln import Value
from kiln.effects.footprint import record_exit_code, record_file_read, record_file_write
from kiln.errors import ArityError, KilnTypeError
from kiln.types.environment import Environment
from kiln.types.symbol import Symbol

logger = logging.getLogger(__name__)

READS = Symbol(":reads")
WRITES = Symbol(":writes")

# Exit status reported when the program cannot be started, as a shell would
NOT_FOUND_EXIT = 127


def _paths(option: Symbol, value: Value) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, tuple) and all(isinstance(v, str) for v in value):
        return value
    raise KilnTypeError(f"$ option {option} expects a path or a list of paths, got {value!r}")


def split_options(args: list[Value]) -> tuple[list[str], tuple[str, ...], tuple[str, ...]]:
    """Separate the command line from the :reads / :writes declarations."""
    command: list[str] = []
    reads: tuple[str, ...] = ()
    writes: tuple[str, ...] = ()
    i = 0
    while i < len(args):
        arg = args[i]
        if isinstance(arg, Symbol) and arg in (READS, WRITES):
            if i + 1 >= len(args):
                raise ArityError(f"$ option {arg} requires a value")
            paths = _paths(arg, args[i + 1])
            if arg == READS:
                reads += paths
            else:
                writes += paths
            i += 2
            continue
        if isinstance(arg, bool) or not isinstance(arg, (str, int)):
            raise KilnTypeError(f"$ arguments must be strings or integers, got {arg!r}")
        command.append(str(arg))
        i += 1
    return command, reads, writes


def declare_shell_paths(args: list[Value]) -> tuple[tuple[str, ...], tuple[str, ...]]:
    _, reads, writes = split_options(args)
    return reads, writes


def shell_out(env: Environment, args: list[Value]) -> int:
    command, reads, writes = split_options(args)
    if not command:
        raise ArityError("$ requires a program to run")

    for path in reads:
        record_file_read(path)
    logger.debug("spawning %s", command)
    try:
        completed = subprocess.run(command, check=False)
        code = completed.returncode
    except OSError as ex:
        logger.warning("could not start %s: %s", command[0], ex)
        code = NOT_FOUND_EXIT
    for path in writes:
        record_file_write(path)
    record_exit_code(code)
    logger.debug("%s exited with %d", command[0], code)
    return code
