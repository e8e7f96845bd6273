"""Executor: runs an operation graph on a worker pool.

Operations whose dependencies have all finished are submitted to a
``ThreadPoolExecutor``. A failed operation fails only its own branch: every
operation that (transitively) depends on it is skipped, everything else keeps
going. A cancel event stops new operations from starting while letting
in-flight ones finish.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Literal

from infragraph.engine.errors import ApplyCanceled, ProviderError, StateStoreError
from infragraph.engine.graph import DependencyGraph
from infragraph.engine.operations import LiveState, OperationEnv, build_operations
from infragraph.engine.types import (
    Action,
    ActionOutcome,
    ApplyResult,
    Outcome,
    ResourceChange,
    success_outcome,
)

if TYPE_CHECKING:
    from infragraph.core.state import State
    from infragraph.core.store import StateStore
    from infragraph.engine.operations import Operation
    from infragraph.engine.providers import ProviderContext
    from infragraph.engine.registry import ProviderRegistry

logger = logging.getLogger(__name__)

ProgressEvent = Literal["start", "done", "failed", "skipped"]
ProgressCallback = Callable[[ResourceChange, ProgressEvent], None]

DEFAULT_PARALLELISM = 10


class Executor:
    """Applies planned changes through providers, in parallel where the graph allows."""

    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        ctx: ProviderContext,
        store: StateStore,
        parallelism: int = DEFAULT_PARALLELISM,
        cancel: threading.Event | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self._registry = registry
        self._ctx = ctx
        self._store = store
        self._parallelism = parallelism
        self._cancel = cancel or threading.Event()
        self._progress = progress

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def run(self, changes: list[ResourceChange], state: State) -> ApplyResult:
        """Apply *changes* (planned against *state*) and report every outcome.

        Raises:
            StateStoreError: A result could not be persisted. Raised after
                in-flight operations finish; nothing new is started.
            ApplyCanceled: The run was interrupted. Carries the partial result.
        """
        ops = build_operations(changes, state)
        graph = DependencyGraph(ops, {k: op.deps for k, op in ops.items()})
        order = graph.topological_order()
        logger.info("Applying %d operations (parallelism=%d)", len(ops), self._parallelism)

        env = OperationEnv(
            ctx=self._ctx, registry=self._registry, store=self._store, live=LiveState(state)
        )
        run = _Run(ops, graph, order)
        fatal: StateStoreError | None = None
        interrupted = False

        with ThreadPoolExecutor(
            max_workers=self._parallelism, thread_name_prefix="infragraph-apply"
        ) as pool:
            running: dict[Future[None], str] = {}
            while True:
                while (
                    run.ready
                    and len(running) < self._parallelism
                    and not self._cancel.is_set()
                ):
                    key = run.ready.popleft()
                    op = ops[key]
                    blocker = run.failed_dependency(key)
                    if blocker is not None:
                        self._skip(run, op, blocker)
                        continue
                    if op.change is None:
                        run.finish(key, Outcome.UNCHANGED)
                        continue
                    self._emit(op.change, "start")
                    logger.debug("Starting %s: %s", key, op.change.action.value)
                    running[pool.submit(op.run, env)] = key

                if not running:
                    break

                try:
                    done, _ = wait(running, return_when=FIRST_COMPLETED)
                except KeyboardInterrupt:
                    logger.warning("Interrupted; waiting for %d in-flight operations", len(running))
                    self._cancel.set()
                    interrupted = True
                    continue

                for future in done:
                    key = running.pop(future)
                    fatal = self._collect(run, ops[key], future) or fatal
                    if fatal is not None:
                        self._cancel.set()

        result = run.result(changes)
        if fatal is not None:
            raise fatal
        if interrupted or self._cancel.is_set():
            raise ApplyCanceled("Apply canceled", result=result)
        return result

    def _collect(self, run: _Run, op: Operation, future: Future[None]) -> StateStoreError | None:
        change = op.change
        assert change is not None
        try:
            future.result()
        except ProviderError as exc:
            logger.warning("%s", exc)
            run.finish(op.key, Outcome.FAILED, error=exc.message)
            self._emit(change, "failed")
            return None
        except StateStoreError as exc:
            logger.error("State write failed for %s: %s", op.key, exc)
            run.finish(op.key, Outcome.FAILED, error=str(exc))
            self._emit(change, "failed")
            return exc
        logger.debug("Finished %s", op.key)
        run.finish(op.key, success_outcome(change.action))
        self._emit(change, "done")
        return None

    def _skip(self, run: _Run, op: Operation, blocker: str) -> None:
        logger.info("Skipping %s: dependency %s failed", op.key, blocker)
        run.finish(op.key, Outcome.SKIPPED, blocked_by=blocker)
        if op.change is not None:
            self._emit(op.change, "skipped")

    def _emit(self, change: ResourceChange, event: ProgressEvent) -> None:
        if self._progress is not None:
            self._progress(change, event)


class _Run:
    """Bookkeeping for one execution: readiness, outcomes, failure roots."""

    def __init__(
        self, ops: dict[str, Operation], graph: DependencyGraph, order: list[str]
    ) -> None:
        self._ops = ops
        self._graph = graph
        self._pending = {k: set(graph.dependencies_of(k)) for k in order}
        self.ready: deque[str] = deque(k for k in order if not self._pending[k])
        self.outcomes: dict[str, ActionOutcome] = {}
        # key -> address of the failed operation at the root of its failure
        self._blocked: dict[str, str] = {}

    def failed_dependency(self, key: str) -> str | None:
        for dep in self._graph.dependencies_of(key):
            if dep in self._blocked and self._ops[dep].propagates_failure:
                return self._blocked[dep]
        return None

    def finish(
        self,
        key: str,
        outcome: Outcome,
        *,
        error: str | None = None,
        blocked_by: str | None = None,
    ) -> None:
        op = self._ops[key]
        if op.change is not None:
            self.outcomes[key] = ActionOutcome(
                address=op.change.address,
                resource_type=op.change.resource_type,
                action=op.change.action,
                outcome=outcome,
                error=error,
                blocked_by=blocked_by,
            )
        if outcome == Outcome.FAILED:
            self._blocked[key] = key
        elif outcome == Outcome.SKIPPED and blocked_by is not None:
            self._blocked[key] = blocked_by
        for dependent in self._graph.dependents_of(key):
            pending = self._pending[dependent]
            pending.discard(key)
            if not pending:
                self.ready.append(dependent)

    def result(self, changes: list[ResourceChange]) -> ApplyResult:
        """Outcomes in plan order; NOOPs are unchanged, unstarted operations canceled."""
        outcomes: list[ActionOutcome] = []
        for change in changes:
            if change.action == Action.NOOP:
                outcome = ActionOutcome(
                    address=change.address,
                    resource_type=change.resource_type,
                    action=change.action,
                    outcome=Outcome.UNCHANGED,
                )
            else:
                outcome = self.outcomes.get(change.address) or ActionOutcome(
                    address=change.address,
                    resource_type=change.resource_type,
                    action=change.action,
                    outcome=Outcome.CANCELED,
                )
            outcomes.append(outcome)
        return ApplyResult(outcomes=outcomes)
