from __future__ import annotations

from typing import Any

import pytest

from infragraph.core.state import ResourceInstance, State
from infragraph.engine.errors import UnknownResourceTypeError, ValidationError
from infragraph.engine.graph import build_graph
from infragraph.engine.planner import Planner, attribute_diff, compute_config_digest
from infragraph.engine.providers import ProviderContext, ResourceProvider
from infragraph.engine.registry import ProviderRegistry
from infragraph.engine.types import Action
from infragraph.resources import UNKNOWN, ResourceDeclaration


class RequiresCidr(ResourceProvider):
    def validate(self, ctx: ProviderContext, declaration: ResourceDeclaration) -> list[str]:
        _ = ctx
        return [] if "cidr" in declaration.attributes else ["missing required attribute 'cidr'"]


def _planner() -> Planner:
    registry = ProviderRegistry()
    registry.register("test_net", RequiresCidr())
    registry.register("test_app", ResourceProvider())
    return Planner(registry, ProviderContext())


def _decl(address: str, **attributes: Any) -> ResourceDeclaration:
    return ResourceDeclaration.from_address(address, attributes)


def _record(
    address: str,
    attributes: dict[str, Any],
    *,
    id: str = "",
    outputs: dict[str, Any] | None = None,
    dependencies: list[str] | None = None,
) -> ResourceInstance:
    resource_type, name = address.split(".")
    return ResourceInstance(
        address=address,
        resource_type=resource_type,
        name=name,
        id=id,
        attributes=attributes,
        outputs=outputs or {},
        dependencies=dependencies or [],
    )


def _state(*records: ResourceInstance) -> State:
    return State(lineage="l-1", resources={r.address: r for r in records})


class TestAttributeDiff:
    def test_reports_changed_new_unknown_and_removed_keys(self) -> None:
        planned = {"same": 1, "changed": 2, "new": 3, "later": UNKNOWN}
        prior = {"same": 1, "changed": 1, "later": "x", "gone": 4}

        diff = attribute_diff(planned, prior)

        assert set(diff) == {"changed", "new", "later", "gone"}
        assert diff["changed"] == {"from": 1, "to": 2}
        assert diff["new"] == {"from": None, "to": 3}
        assert diff["gone"] == {"from": 4, "to": None}

    def test_equal_attributes_have_no_diff(self) -> None:
        assert attribute_diff({"a": [1, 2]}, {"a": [1, 2]}) == {}


class TestPlan:
    def test_new_resources_are_created_in_dependency_order(self) -> None:
        app = _decl("test_app.svc", vpc="${test_net.vpc.id}")
        vpc = _decl("test_net.vpc", cidr="10.0.0.0/16")

        changes = _planner().plan(build_graph([app, vpc]), State())

        assert [c.address for c in changes] == ["test_net.vpc", "test_app.svc"]
        assert all(c.action == Action.CREATE for c in changes)
        assert changes[1].dependencies == ["test_net.vpc"]

    def test_unchanged_resource_is_noop(self) -> None:
        vpc = _decl("test_net.vpc", cidr="10.0.0.0/16")
        state = _state(_record("test_net.vpc", {"cidr": "10.0.0.0/16"}, id="vpc-1"))

        (change,) = _planner().plan(build_graph([vpc]), state)

        assert change.action == Action.NOOP
        assert change.diff is None

    def test_changed_resource_is_updated_with_diff(self) -> None:
        vpc = _decl("test_net.vpc", cidr="10.1.0.0/16")
        state = _state(_record("test_net.vpc", {"cidr": "10.0.0.0/16"}, id="vpc-1"))

        (change,) = _planner().plan(build_graph([vpc]), state)

        assert change.action == Action.UPDATE
        assert change.diff == {"cidr": {"from": "10.0.0.0/16", "to": "10.1.0.0/16"}}
        assert change.prior == {"cidr": "10.0.0.0/16"}

    def test_reference_to_declared_attribute_resolves_to_planned_value(self) -> None:
        lb = _decl("test_net.lb", cidr="x", port=80)
        app = _decl("test_app.b", target="${test_net.lb.port}")

        changes = _planner().plan(build_graph([lb, app]), State())

        assert changes[1].planned == {"target": 80}
        assert changes[1].desired == {"target": "${test_net.lb.port}"}

    def test_output_of_resource_being_created_is_unknown(self) -> None:
        vpc = _decl("test_net.vpc", cidr="10.0.0.0/16")
        app = _decl("test_app.svc", vpc="${test_net.vpc.id}", label="vpc ${test_net.vpc.id}")

        changes = _planner().plan(build_graph([vpc, app]), State())

        assert changes[1].planned == {"vpc": UNKNOWN, "label": UNKNOWN}

    def test_output_of_existing_resource_resolves_to_recorded_value(self) -> None:
        vpc = _decl("test_net.vpc", cidr="10.0.0.0/16")
        app = _decl("test_app.svc", vpc="${test_net.vpc.id}", arn="${test_net.vpc.arn}")
        state = _state(
            _record(
                "test_net.vpc", {"cidr": "10.0.0.0/16"}, id="vpc-1", outputs={"arn": "arn:vpc-1"}
            ),
            _record(
                "test_app.svc",
                {"vpc": "vpc-1", "arn": "arn:vpc-1"},
                id="svc-1",
                dependencies=["test_net.vpc"],
            ),
        )

        changes = _planner().plan(build_graph([vpc, app]), state)

        assert [c.action for c in changes] == [Action.NOOP, Action.NOOP]

    def test_dependent_of_recreated_target_is_updated(self) -> None:
        vpc = _decl("test_net.vpc", cidr="10.0.0.0/16")
        app = _decl("test_app.svc", vpc="${test_net.vpc.id}")
        state = _state(_record("test_app.svc", {"vpc": "vpc-old"}, id="svc-1"))

        changes = _planner().plan(build_graph([vpc, app]), state)

        assert [c.action for c in changes] == [Action.CREATE, Action.UPDATE]
        assert changes[1].diff == {"vpc": {"from": "vpc-old", "to": UNKNOWN}}

    def test_output_of_updated_target_is_unknown(self) -> None:
        vpc = _decl("test_net.vpc", cidr="10.1.0.0/16")
        app = _decl(
            "test_app.svc",
            vpc="${test_net.vpc.id}",
            arn="${test_net.vpc.arn}",
            cidr="${test_net.vpc.cidr}",
        )
        state = _state(
            _record(
                "test_net.vpc", {"cidr": "10.0.0.0/16"}, id="vpc-1", outputs={"arn": "arn:vpc-1"}
            ),
            _record(
                "test_app.svc",
                {"vpc": "vpc-1", "arn": "arn:vpc-1", "cidr": "10.0.0.0/16"},
                id="svc-1",
                dependencies=["test_net.vpc"],
            ),
        )

        changes = _planner().plan(build_graph([vpc, app]), state)

        assert [c.action for c in changes] == [Action.UPDATE, Action.UPDATE]
        assert changes[1].planned == {"vpc": "vpc-1", "arn": UNKNOWN, "cidr": "10.1.0.0/16"}
        assert set(changes[1].diff or {}) == {"arn", "cidr"}

    def test_id_of_updated_target_stays_known(self) -> None:
        vpc = _decl("test_net.vpc", cidr="10.1.0.0/16")
        app = _decl("test_app.svc", vpc="${test_net.vpc.id}")
        state = _state(
            _record("test_net.vpc", {"cidr": "10.0.0.0/16"}, id="vpc-1"),
            _record("test_app.svc", {"vpc": "vpc-1"}, id="svc-1", dependencies=["test_net.vpc"]),
        )

        changes = _planner().plan(build_graph([vpc, app]), state)

        assert [c.action for c in changes] == [Action.UPDATE, Action.NOOP]

    def test_removed_resource_produces_exactly_one_delete(self) -> None:
        vpc = _decl("test_net.vpc", cidr="10.0.0.0/16")
        state = _state(
            _record("test_net.vpc", {"cidr": "10.0.0.0/16"}, id="vpc-1"),
            _record("test_app.old", {"x": 1}, id="old-1"),
        )

        changes = _planner().plan(build_graph([vpc]), state)

        deletes = [c for c in changes if c.action == Action.DELETE]
        assert [c.address for c in deletes] == ["test_app.old"]
        assert deletes[0].prior == {"x": 1}

    def test_deletes_run_dependents_first(self) -> None:
        state = _state(
            _record("test_net.vpc", {"cidr": "x"}, id="vpc-1"),
            _record("test_app.svc", {"vpc": "vpc-1"}, id="svc-1", dependencies=["test_net.vpc"]),
        )

        changes = _planner().plan_deletes(state, set(state.resources))

        assert [c.address for c in changes] == ["test_app.svc", "test_net.vpc"]
        assert changes[0].dependencies == ["test_net.vpc"]

    def test_delete_of_unknown_type_raises(self) -> None:
        state = _state(_record("test_other.x", {}, id="x-1"))
        with pytest.raises(UnknownResourceTypeError):
            _planner().plan_deletes(state, {"test_other.x"})


class TestValidate:
    def test_collects_errors_with_addresses(self) -> None:
        graph = build_graph([_decl("test_net.a"), _decl("test_net.b")])

        with pytest.raises(ValidationError) as exc_info:
            _planner().validate(graph)

        assert exc_info.value.errors == [
            "test_net.a: missing required attribute 'cidr'",
            "test_net.b: missing required attribute 'cidr'",
        ]

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(UnknownResourceTypeError, match="test_nope"):
            _planner().validate(build_graph([_decl("test_nope.a")]))


class TestConfigDigest:
    def test_independent_of_declaration_order(self) -> None:
        a = _decl("test_net.a", cidr="x")
        b = _decl("test_net.b", cidr="y")
        assert compute_config_digest([a, b]) == compute_config_digest([b, a])

    def test_changes_with_attributes(self) -> None:
        a = _decl("test_net.a", cidr="x")
        a2 = _decl("test_net.a", cidr="z")
        assert compute_config_digest([a]) != compute_config_digest([a2])
