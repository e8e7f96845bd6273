from __future__ import annotations

from infragraph.config.registry import default_registry
from infragraph.providers.simulated import SimulatedCloud, SimulatedProvider
from infragraph.resources.catalog import CATALOG


class TestDefaultRegistry:
    def test_every_catalog_type_registered(self) -> None:
        reg = default_registry()
        assert reg.resource_types == sorted(spec.resource_type for spec in CATALOG)

    def test_providers_are_simulated(self) -> None:
        reg = default_registry()
        for spec in CATALOG:
            provider = reg.get(spec.resource_type)
            assert isinstance(provider, SimulatedProvider)
            assert provider.spec is spec

    def test_ecs_stack_types_present(self) -> None:
        reg = default_registry()
        for resource_type in (
            "aws_vpc",
            "aws_ecr_repository",
            "aws_ecs_cluster",
            "aws_ecs_service",
            "aws_lb_listener",
            "aws_codepipeline",
            "aws_appautoscaling_policy",
        ):
            assert resource_type in reg

    def test_independent_instances(self) -> None:
        reg1 = default_registry()
        reg2 = default_registry()
        assert reg1 is not reg2
        assert reg1.get("aws_vpc") is not reg2.get("aws_vpc")

    def test_shared_cloud(self) -> None:
        cloud = SimulatedCloud()
        reg = default_registry(cloud)
        vpc = reg.get("aws_vpc")
        subnet = reg.get("aws_subnet")
        assert vpc._cloud is cloud  # type: ignore[attr-defined]
        assert subnet._cloud is cloud  # type: ignore[attr-defined]
