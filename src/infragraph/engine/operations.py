"""Apply operations.

Terraform runs apply by executing a graph of operations (resource nodes + other
nodes). This module implements a minimal version of that idea: each operation
knows how to apply itself and lists dependencies on other operations. The
executor decides when an operation may run.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from infragraph.core.state import ResourceInstance, compute_attributes_hash
from infragraph.engine.errors import ProviderError
from infragraph.engine.types import Action
from infragraph.resources.expressions import (
    UNKNOWN,
    contains_unknown,
    lookup_path,
    resolve,
    split_address,
)

if TYPE_CHECKING:
    from infragraph.core.state import State
    from infragraph.core.store import StateStore
    from infragraph.engine.providers import ProviderContext, ResourceProvider
    from infragraph.engine.registry import ProviderRegistry
    from infragraph.engine.types import ResourceChange
    from infragraph.resources.expressions import Reference

BARRIER_KEY = "__engine__.apply_barrier"


class LiveState:
    """Thread-safe view of records as the apply progresses.

    Starts from the planned-against state; every successful operation
    updates it so that later operations resolve references against the
    outputs that were actually produced.
    """

    def __init__(self, state: State) -> None:
        self._records = {a: r.model_copy(deep=True) for a, r in state.resources.items()}
        self._lock = threading.Lock()

    def get(self, address: str) -> ResourceInstance | None:
        with self._lock:
            return self._records.get(address)

    def put(self, record: ResourceInstance) -> None:
        with self._lock:
            self._records[record.address] = record

    def pop(self, address: str) -> None:
        with self._lock:
            self._records.pop(address, None)

    def lookup(self, ref: Reference) -> Any:
        record = self.get(ref.address)
        if record is None:
            return UNKNOWN
        head, *_ = ref.path
        return lookup_path({head: record.value_of(head)}, ref.path)


@dataclass
class OperationEnv:
    """Collaborators shared by every operation of one apply."""

    ctx: ProviderContext
    registry: ProviderRegistry
    store: StateStore
    live: LiveState


class Operation(Protocol):
    key: str
    deps: list[str]
    change: ResourceChange | None
    propagates_failure: bool

    def run(self, env: OperationEnv) -> None:
        """Execute this operation.

        Raises:
            ProviderError: The provider call failed.
            StateStoreError: The result could not be persisted.
        """


@dataclass
class BarrierOperation:
    """A no-op node used to enforce ordering between operation phases.

    Failures before the barrier do not propagate through it.
    """

    key: str
    deps: list[str] = field(default_factory=list)
    change: ResourceChange | None = None
    propagates_failure: bool = False

    def run(self, env: OperationEnv) -> None:
        _ = env


def _provider(env: OperationEnv, change: ResourceChange) -> ResourceProvider:
    return env.registry.get(change.resource_type)


def _call(change: ResourceChange, fn: Any, *args: Any) -> Any:
    try:
        return fn(*args)
    except Exception as exc:
        raise ProviderError(change.address, change.action.value, str(exc) or repr(exc)) from exc


def _resolved_attrs(change: ResourceChange, env: OperationEnv) -> dict[str, Any]:
    if change.desired is None:
        raise ProviderError(change.address, change.action.value, "missing desired attributes")
    attrs = resolve(change.desired, env.live.lookup)
    if contains_unknown(attrs):
        raise ProviderError(
            change.address, change.action.value, "attribute values still unknown at apply time"
        )
    return attrs


def _prior(change: ResourceChange, env: OperationEnv) -> ResourceInstance:
    prior = env.live.get(change.address)
    if prior is None:
        raise ProviderError(change.address, change.action.value, "no state record to act on")
    return prior


@dataclass
class CreateOperation:
    key: str
    change: ResourceChange
    deps: list[str] = field(default_factory=list)
    propagates_failure: bool = True

    def run(self, env: OperationEnv) -> None:
        change = self.change
        attrs = _resolved_attrs(change, env)
        result = _call(change, _provider(env, change).create, env.ctx, change.address, attrs)

        _, name = split_address(change.address)
        now = datetime.now(UTC)
        record = ResourceInstance(
            address=change.address,
            resource_type=change.resource_type,
            name=name,
            id=result.id,
            attributes=attrs,
            outputs=dict(result.outputs),
            attributes_hash=compute_attributes_hash(attrs),
            dependencies=list(change.dependencies),
            created_at=now,
            updated_at=now,
        )
        env.store.save(record)
        env.live.put(record)


@dataclass
class UpdateOperation:
    key: str
    change: ResourceChange
    deps: list[str] = field(default_factory=list)
    propagates_failure: bool = True

    def run(self, env: OperationEnv) -> None:
        change = self.change
        attrs = _resolved_attrs(change, env)
        prior = _prior(change, env)
        outputs = _call(change, _provider(env, change).update, env.ctx, prior, attrs)

        record = prior.model_copy(
            update={
                "attributes": attrs,
                "outputs": {**prior.outputs, **(outputs or {})},
                "attributes_hash": compute_attributes_hash(attrs),
                "dependencies": list(change.dependencies),
                "updated_at": datetime.now(UTC),
            },
            deep=True,
        )
        env.store.save(record)
        env.live.put(record)


@dataclass
class DeleteOperation:
    key: str
    change: ResourceChange
    deps: list[str] = field(default_factory=list)
    propagates_failure: bool = True

    def run(self, env: OperationEnv) -> None:
        change = self.change
        prior = _prior(change, env)
        _call(change, _provider(env, change).delete, env.ctx, prior)
        env.store.remove(change.address)
        env.live.pop(change.address)


def _acting_dependencies(
    change: ResourceChange, by_address: dict[str, ResourceChange], acting: set[str]
) -> list[str]:
    """Nearest create/update dependencies of *change*, looking through NOOPs."""
    found: list[str] = []
    seen: set[str] = set()
    stack = list(reversed(change.dependencies))
    while stack:
        dep = stack.pop()
        if dep in seen:
            continue
        seen.add(dep)
        if dep in acting:
            found.append(dep)
        elif (noop := by_address.get(dep)) is not None and noop.action == Action.NOOP:
            stack.extend(reversed(noop.dependencies))
    return found


def build_operations(changes: list[ResourceChange], state: State) -> dict[str, Operation]:
    """Turn planned changes into an operation graph (NOOPs are dropped)."""
    ops: dict[str, Operation] = {}
    create_update_set: set[str] = set()
    delete_set: set[str] = set()

    for c in changes:
        op: Operation
        match c.action:
            case Action.NOOP:
                continue
            case Action.CREATE:
                op = CreateOperation(key=c.address, change=c)
                create_update_set.add(c.address)
            case Action.UPDATE:
                op = UpdateOperation(key=c.address, change=c)
                create_update_set.add(c.address)
            case Action.DELETE:
                op = DeleteOperation(key=c.address, change=c)
                delete_set.add(c.address)
            case _:
                raise ValueError(f"Unknown action: {c.action}")

        if op.key in ops:
            raise ValueError(f"Duplicate operation key in plan: {op.key}")
        ops[op.key] = op

    # create/update: dependencies must run before dependents. Unchanged
    # resources have no operation, so edges pass through them.
    by_address = {c.address: c for c in changes}
    for addr in create_update_set:
        op = ops[addr]
        assert op.change is not None
        op.deps.extend(_acting_dependencies(op.change, by_address, create_update_set))

    # deletes: dependents must be deleted before dependencies (invert edges)
    for addr in delete_set:
        inst = state.resources.get(addr)
        if inst is None:
            raise ValueError(f"Missing state for delete operation: {addr}")
        for dep in inst.dependencies:
            if dep in delete_set:
                ops[dep].deps.append(addr)

    # Ensure create/update runs before deletes (Terraform-like default ordering).
    if create_update_set and delete_set:
        if BARRIER_KEY in ops:
            raise ValueError(f"Barrier operation key conflicts with plan: {BARRIER_KEY}")

        ops[BARRIER_KEY] = BarrierOperation(key=BARRIER_KEY, deps=sorted(create_update_set))
        for addr in delete_set:
            ops[addr].deps.append(BARRIER_KEY)

    return ops
