"""Planner: diff the desired resource graph against the last-known state."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import TYPE_CHECKING, Any

from infragraph.engine.errors import ValidationError
from infragraph.engine.graph import DependencyGraph
from infragraph.engine.types import Action, ResourceChange
from infragraph.resources.expressions import UNKNOWN, contains_unknown, lookup_path, resolve

if TYPE_CHECKING:
    from collections.abc import Sequence

    from infragraph.core.state import State
    from infragraph.engine.graph import ResourceGraph
    from infragraph.engine.providers import ProviderContext
    from infragraph.engine.registry import ProviderRegistry
    from infragraph.resources.base import ResourceDeclaration
    from infragraph.resources.expressions import Reference

logger = logging.getLogger(__name__)


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def compute_config_digest(declarations: Sequence[ResourceDeclaration]) -> str:
    items = [
        {
            "address": d.address,
            "attributes": d.attributes,
            "depends_on": sorted(d.depends_on),
        }
        for d in declarations
    ]
    items.sort(key=lambda x: x["address"])
    return hashlib.sha256(_canonical_json(items).encode("utf-8")).hexdigest()


def attribute_diff(planned: dict[str, Any], prior: dict[str, Any]) -> dict[str, Any]:
    """Keys whose planned value differs from the recorded one.

    Unknown planned values always count as a difference. Keys recorded
    previously but no longer declared show up with ``"to": None``.
    """
    diff = {
        k: {"from": prior.get(k), "to": v}
        for k, v in planned.items()
        if contains_unknown(v) or k not in prior or prior[k] != v
    }
    for k in prior:
        if k not in planned:
            diff[k] = {"from": prior[k], "to": None}
    return diff


class Planner:
    """Computes create/update/delete/no-op changes in dependency order."""

    def __init__(self, registry: ProviderRegistry, ctx: ProviderContext) -> None:
        self._registry = registry
        self._ctx = ctx

    def validate(self, graph: ResourceGraph) -> None:
        """Check every declaration against its provider before planning.

        Raises:
            UnknownResourceTypeError: A declared type has no provider.
            ValidationError: One or more providers rejected a declaration.
        """
        errors: list[str] = []
        for decl in graph.declarations:
            provider = self._registry.get(decl.resource_type)
            errors.extend(
                f"{decl.address}: {msg}" for msg in provider.validate(self._ctx, decl)
            )
        if errors:
            raise ValidationError(errors)

    def plan(self, graph: ResourceGraph, state: State) -> list[ResourceChange]:
        """Plan changes for every declared resource, then deletes for the rest.

        References resolve against *planned* values: a declared attribute of
        the target resolves to its resolved declared value; an output resolves
        to the recorded value only when the target is unchanged. Outputs of a
        resource being created or updated (other than its id) are unknown.
        """
        planned: dict[str, dict[str, Any]] = {}
        actions: dict[str, Action] = {}

        def lookup(ref: Reference) -> Any:
            attrs = planned[ref.address]
            head, *_ = ref.path
            if head in attrs:
                return lookup_path(attrs, ref.path)
            record = state.resources.get(ref.address)
            if record is None or actions[ref.address] == Action.CREATE:
                return UNKNOWN
            # an update may recompute outputs; only the id is stable
            if actions[ref.address] == Action.UPDATE and head != "id":
                return UNKNOWN
            return lookup_path({head: record.value_of(head)}, ref.path)

        changes: list[ResourceChange] = []
        for address in graph.topological_order():
            decl = graph.get(address)
            resolved = resolve(decl.attributes, lookup)
            planned[address] = resolved
            change = self._classify_change(decl, resolved, state, graph.dependencies_of(address))
            actions[address] = change.action
            changes.append(change)

        removed = set(state.resources) - set(graph.addresses)
        changes.extend(self.plan_deletes(state, removed))
        return changes

    def _classify_change(
        self,
        decl: ResourceDeclaration,
        resolved: dict[str, Any],
        state: State,
        deps: list[str],
    ) -> ResourceChange:
        """Classify a single resource as CREATE, UPDATE, or NOOP."""
        address = decl.address
        prior_inst = state.resources.get(address)
        if prior_inst is None:
            logger.debug("Classified %s as create", address)
            return ResourceChange(
                address=address,
                resource_type=decl.resource_type,
                action=Action.CREATE,
                desired=dict(decl.attributes),
                planned=resolved,
                dependencies=deps,
            )

        prior = dict(prior_inst.attributes)
        diff = attribute_diff(resolved, prior)
        action = Action.UPDATE if diff else Action.NOOP
        logger.debug("Classified %s as %s", address, action.value)
        return ResourceChange(
            address=address,
            resource_type=decl.resource_type,
            action=action,
            desired=dict(decl.attributes),
            prior=prior,
            planned=resolved,
            diff=diff or None,
            dependencies=deps,
        )

    def plan_deletes(self, state: State, addresses: set[str]) -> list[ResourceChange]:
        """Plan delete changes for the given addresses in reverse dependency order."""
        changes: list[ResourceChange] = []
        for address in self._delete_order(state, addresses):
            inst = state.resources[address]
            self._registry.get(inst.resource_type)  # fail early if unknown
            logger.debug("Classified %s as delete", address)
            changes.append(
                ResourceChange(
                    address=address,
                    resource_type=inst.resource_type,
                    action=Action.DELETE,
                    prior=dict(inst.attributes),
                    dependencies=[d for d in inst.dependencies if d in addresses],
                )
            )
        return changes

    @staticmethod
    def _delete_order(state: State, addresses: set[str]) -> list[str]:
        nodes = [a for a in state.resources if a in addresses]
        dep_map = {a: [d for d in state.resources[a].dependencies if d in addresses] for a in nodes}
        return DependencyGraph(nodes, dep_map).reverse_topological_order()
