from __future__ import annotations

import logging
from typing import Iterable, Optional

from kiln.builtin.env_builtin import register
from kiln.cache.storage import SQLiteStorage
from kiln.cache.store import Cache
from kiln.config import get_cache_path, get_max_entries, get_worker_limit
from kiln.reader.parser import read_program
from kiln.scheduler.graph import plan
from kiln.scheduler.scheduler import BuildReport, Scheduler
from kiln.types.environment import Environment

logger = logging.getLogger(__name__)


class Build:
    """
    Runs kiln programs against one cache.

    Each `run` reads the source, binds builtins and `args` into a fresh root
    environment, plans the statements into a dependency graph and executes
    it. Nothing but the cache outlives a run.

    With no cache given, the persistent store under the configured cache
    directory is used; with no worker count, the configured limit.
    """

    def __init__(self, cache: Optional[Cache] = None, workers: Optional[int] = None):
        self.cache = cache if cache is not None else Cache(SQLiteStorage(get_cache_path()))
        self.workers = workers if workers is not None else get_worker_limit()

    def run(self, source: str, argv: Iterable[str] = ()) -> BuildReport:
        env = Environment()
        register(env, argv)
        nodes = plan(read_program(source), env)
        logger.debug("planned %d nodes", len(nodes))
        report = Scheduler(self.cache, self.workers).run(nodes, env)
        self.cache.collect_garbage(get_max_entries())
        return report
