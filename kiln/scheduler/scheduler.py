"""Dependency-aware concurrent execution of CallNodes.

Nodes whose dependencies are all DONE are admitted in declaration order to a
fixed-size thread pool. Statements of the form `(f args...)` or
`(define name (f args...))`, where `f` is a cacheable function, go through
the cache:

    PENDING -> FINGERPRINTED -> CACHE_HIT -> DONE
                             -> RUNNING   -> DONE (after commit)

Anything else is evaluated every run (PENDING -> RUNNING -> DONE). Any
state can move to FAILED. After the first failure no further nodes are
admitted; nodes already running finish, and every failure is reported
together in a BuildFailedError.
"""

from __future__ import annotations

import heapq
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Optional

from kiln import Value
from kiln.cache.fingerprint import call_key
from kiln.cache.store import Cache, CacheEntry
from kiln.effects.footprint import Footprint
from kiln.effects.hashing import callable_identity, file_digest, value_hash
from kiln.errors import BuildFailedError
from kiln.evaluation.apply import apply
from kiln.evaluation.evaluator import evaluate
from kiln.evaluation.special_forms import SPECIAL_FORMS
from kiln.runtime_context import get_current_footprint, tracking
from kiln.scheduler.node import CallNode, NodeState
from kiln.types.builtin import Builtin
from kiln.types.environment import Environment
from kiln.types.function import Function
from kiln.types.symbol import Symbol
from kiln.types.unit import Unit

logger = logging.getLogger(__name__)


class BuildReport:
    """Outcome of one scheduler run: the nodes and every state transition, in order."""

    def __init__(self, nodes: list[CallNode]):
        self.nodes = nodes
        self.history: list[tuple[int, NodeState]] = []
        self._lock = threading.Lock()

    def record(self, node: CallNode, state: NodeState) -> None:
        with self._lock:
            node.state = state
            self.history.append((node.index, state))
        logger.debug("node %d %s: %s", node.index, state.value, node.label)

    def states(self, index: int) -> list[NodeState]:
        with self._lock:
            return [s for i, s in self.history if i == index]

    @property
    def hits(self) -> list[CallNode]:
        return [n for n in self.nodes if NodeState.CACHE_HIT in self.states(n.index)]

    @property
    def misses(self) -> list[CallNode]:
        return [
            n for n in self.nodes
            if n.fingerprint is not None and NodeState.RUNNING in self.states(n.index)
        ]

    @property
    def bindings(self) -> dict[Symbol, Value]:
        return {n.binds: n.value for n in self.nodes if n.binds is not None and n.state is NodeState.DONE}

    @property
    def value(self) -> Value:
        return self.nodes[-1].value if self.nodes else Unit


def _outputs_intact(entry: CacheEntry) -> bool:
    return all(file_digest(path) == digest for path, digest in entry.files_written.items())


class Scheduler:
    def __init__(self, cache: Cache, workers: int = 1):
        self.cache = cache
        self.workers = max(1, workers)

    # --- one node ---

    def _call_parts(self, expr, env: Environment) -> Optional[tuple[Function | Builtin, list[Value]]]:
        """Resolve a cacheable call statement to (callee, evaluated args), or None."""
        if not (isinstance(expr, list) and expr):
            return None
        head = expr[0]
        if not isinstance(head, Symbol) or head in SPECIAL_FORMS:
            return None
        fn = evaluate(head, env)
        if not isinstance(fn, (Function, Builtin)) or not fn.cacheable:
            return None
        return fn, [evaluate(arg, env) for arg in expr[1:]]

    def _declared_reads(self, fn: Function | Builtin, args: list[Value]) -> tuple[str, ...]:
        if isinstance(fn, Function):
            return fn.reads
        return fn.declared_paths(args)[0]

    def _cached_call(self, node: CallNode, fn, args: list[Value], env: Environment,
                     report: BuildReport) -> Value:
        function_id = callable_identity(fn)
        key = call_key(function_id, tuple(value_hash(a) for a in args))
        declared = self._declared_reads(fn, args)
        with self.cache.exclusive(key):
            shape = self.cache.shape(key)
            node.fingerprint = self.cache.resolve_fingerprint(
                function_id,
                args,
                shape.env_names if shape else (),
                shape.file_paths if shape else (),
                required_paths=declared,
            )
            report.record(node, NodeState.FINGERPRINTED)

            entry = self.cache.lookup(node.fingerprint) if shape is not None else None
            if entry is not None and _outputs_intact(entry):
                report.record(node, NodeState.CACHE_HIT)
                self.cache.mark_validated(node.fingerprint)
                get_current_footprint().merge(entry.footprint)
                return entry.value

            report.record(node, NodeState.RUNNING)
            call_footprint = Footprint()
            with tracking(call_footprint):
                value = apply(fn, args, env)
            call_footprint.freeze()

            node.fingerprint = self.cache.resolve_fingerprint(
                function_id, args, call_footprint.env_reads, call_footprint.files_read
            )
            self.cache.learn(key, call_footprint)
            self.cache.commit(node.fingerprint, value, call_footprint)
            return value

    def _execute(self, node: CallNode, env: Environment, report: BuildReport) -> Value:
        footprint = Footprint()
        try:
            with tracking(footprint):
                scope = Environment(outer=env)
                parts = self._call_parts(node.expr, scope)
                if parts is not None:
                    value = self._cached_call(node, parts[0], parts[1], scope, report)
                else:
                    report.record(node, NodeState.RUNNING)
                    value = evaluate(node.expr, scope)
        except Exception as ex:
            node.error = ex
            node.footprint = footprint.freeze()
            report.record(node, NodeState.FAILED)
            raise
        node.value = value
        node.footprint = footprint.freeze()
        if node.binds is not None:
            env.define(node.binds, value)
        report.record(node, NodeState.DONE)
        return value

    # --- the graph ---

    def run(self, nodes: list[CallNode], env: Environment) -> BuildReport:
        report = BuildReport(nodes)
        dependents: dict[int, list[int]] = {n.index: [] for n in nodes}
        waiting: dict[int, int] = {}
        for n in nodes:
            waiting[n.index] = len(n.deps)
            for d in n.deps:
                dependents[d].append(n.index)
        ready = [n.index for n in nodes if not n.deps]
        heapq.heapify(ready)

        failures: list[tuple[CallNode, BaseException]] = []
        running: dict[Future, CallNode] = {}
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="kiln") as pool:
            while True:
                while ready and not failures and len(running) < self.workers:
                    node = nodes[heapq.heappop(ready)]
                    running[pool.submit(self._execute, node, env, report)] = node
                if not running:
                    break
                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda f: running[f].index):
                    node = running.pop(future)
                    error = future.exception()
                    if error is not None:
                        logger.warning("node %d failed: %s", node.index, error)
                        failures.append((node, error))
                        continue
                    for idx in dependents[node.index]:
                        waiting[idx] -= 1
                        if waiting[idx] == 0:
                            heapq.heappush(ready, idx)

        if failures:
            raise BuildFailedError(failures, report) from failures[0][1]
        logger.info(
            "build finished: %d nodes, %d cache hits", len(nodes), len(report.hits)
        )
        return report
