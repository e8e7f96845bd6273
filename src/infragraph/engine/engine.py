"""Plan/apply engine."""

from __future__ import annotations

import contextlib
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from infragraph import __version__
from infragraph.core.state import compute_attributes_hash, compute_state_digest
from infragraph.engine.errors import ProviderError, StalePlanError
from infragraph.engine.executor import DEFAULT_PARALLELISM, Executor, ProgressCallback
from infragraph.engine.graph import build_graph
from infragraph.engine.lock import StateLock
from infragraph.engine.planner import Planner, compute_config_digest
from infragraph.engine.providers import ProviderContext
from infragraph.engine.types import ApplyResult, Plan, PlanMetadata

if TYPE_CHECKING:
    import threading
    from collections.abc import Sequence
    from pathlib import Path

    from infragraph.core.state import State
    from infragraph.core.store import StateStore
    from infragraph.engine.graph import ResourceGraph
    from infragraph.engine.registry import ProviderRegistry
    from infragraph.resources.base import ResourceDeclaration

logger = logging.getLogger(__name__)


class Engine:
    """Terraform-like plan/apply engine over a declarative resource graph."""

    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        store: StateStore,
        ctx: ProviderContext | None = None,
        parallelism: int = DEFAULT_PARALLELISM,
        lock_path: Path | None = None,
        lock_timeout: float | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._ctx = ctx or ProviderContext()
        self._parallelism = parallelism
        self._lock_path = lock_path
        self._lock_timeout = lock_timeout
        self._planner = Planner(registry, self._ctx)

    @property
    def store(self) -> StateStore:
        return self._store

    def _lock(self) -> contextlib.AbstractContextManager[object]:
        if self._lock_path is None:
            return contextlib.nullcontext()
        return StateLock(self._lock_path, timeout=self._lock_timeout)

    def graph(self, declarations: Sequence[ResourceDeclaration]) -> ResourceGraph:
        """Build and validate the resource graph without touching state."""
        graph = build_graph(declarations)
        self._planner.validate(graph)
        return graph

    def _refresh_state_in_place(self, state: State) -> bool:
        logger.debug("Refreshing %d state records", len(state.resources))
        changed = False

        for address, inst in list(state.resources.items()):
            provider = self._registry.get(inst.resource_type)
            try:
                attrs = provider.read(self._ctx, inst)
            except Exception as exc:
                raise ProviderError(address, "read", str(exc)) from exc
            if attrs is None:
                logger.info("%s no longer exists; dropping it from state", address)
                del state.resources[address]
                changed = True
                continue

            new_hash = compute_attributes_hash(attrs)
            if attrs != inst.attributes or new_hash != inst.attributes_hash:
                inst.attributes = attrs
                inst.attributes_hash = new_hash
                inst.updated_at = datetime.now(UTC)
                changed = True

        logger.debug("State refreshed, changed=%s", changed)
        return changed

    def refresh(self, *, persist: bool = False) -> tuple[State, State]:
        """Refresh state from providers. Returns (pre_refresh, post_refresh)."""
        with self._lock():
            state = self._store.load()
            snapshot = state.model_copy(deep=True)
            changed = self._refresh_state_in_place(state)
            if changed and persist:
                self._store.replace(state)
                state = self._store.load()
            return snapshot, state

    def plan(
        self,
        declarations: Sequence[ResourceDeclaration],
        *,
        destroy: bool = False,
        refresh: bool = True,
    ) -> Plan:
        """Plan changes. Fails before any mutation on invalid declarations.

        Raises:
            DuplicateAddressError, UnresolvedReference, CycleDetected,
            UnknownResourceTypeError, ValidationError: The declarations are invalid.
        """
        logger.info(
            "Planning %d resources (destroy=%s, refresh=%s)", len(declarations), destroy, refresh
        )
        graph = None if destroy else self.graph(declarations)

        # Only lock when refresh may write state.
        lock_cm = self._lock() if refresh else contextlib.nullcontext()
        with lock_cm:
            state = self._store.load()
            if refresh and self._refresh_state_in_place(state):
                self._store.replace(state)
                state = self._store.load()

        if graph is None:
            changes = self._planner.plan_deletes(state, set(state.resources))
        else:
            changes = self._planner.plan(graph, state)

        metadata = PlanMetadata(
            created_at=datetime.now(UTC),
            destroy=destroy,
            refresh=refresh,
            state_lineage=state.lineage,
            state_serial=state.serial,
            state_digest=compute_state_digest(state),
            config_digest=compute_config_digest([] if destroy else declarations),
            engine_version=__version__,
        )
        plan = Plan(metadata=metadata, changes=changes)
        logger.info("Plan: %s", plan.summary())
        return plan

    def apply(
        self,
        plan: Plan,
        *,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ApplyResult:
        """Apply a plan. Provider failures are reported in the result, not raised.

        Raises:
            StalePlanError: State changed since the plan was made.
            StateStoreError: State could not be persisted mid-apply.
            ApplyCanceled: The apply was interrupted.
        """
        with self._lock():
            state = self._store.load()

            # Stale plan detection
            if state.lineage != plan.metadata.state_lineage:
                raise StalePlanError("State lineage changed; re-run plan")
            if state.serial != plan.metadata.state_serial:
                raise StalePlanError("State serial changed; re-run plan")
            if compute_state_digest(state) != plan.metadata.state_digest:
                raise StalePlanError("State digest changed; re-run plan")

            executor = Executor(
                registry=self._registry,
                ctx=self._ctx,
                store=self._store,
                parallelism=self._parallelism,
                cancel=cancel,
                progress=progress,
            )
            result = executor.run(plan.changes, state)
            logger.info("Apply finished: %s", result.summary())
            return result
