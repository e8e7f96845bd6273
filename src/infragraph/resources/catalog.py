"""Built-in AWS resource type catalog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, TypeAlias

Category: TypeAlias = Literal[
    "network",
    "identity",
    "storage",
    "registry",
    "pipeline",
    "cluster",
    "service",
    "load-balancer",
    "autoscaling",
]


@dataclass(frozen=True, slots=True)
class ResourceTypeSpec:
    """Static description of a resource type.

    ``required`` attributes must be declared; ``outputs`` are the values a
    provider reports after create/update (always including ``id`` and ``arn``).
    """

    resource_type: str
    category: Category
    service: str
    id_prefix: str
    required: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @property
    def all_outputs(self) -> tuple[str, ...]:
        return ("id", "arn", *self.outputs)


CATALOG: tuple[ResourceTypeSpec, ...] = (
    # network
    ResourceTypeSpec(
        "aws_vpc", "network", "ec2", "vpc", ("cidr_block",), ("default_route_table_id",)
    ),
    ResourceTypeSpec("aws_subnet", "network", "ec2", "subnet", ("vpc_id", "cidr_block")),
    ResourceTypeSpec("aws_internet_gateway", "network", "ec2", "igw", ("vpc_id",)),
    ResourceTypeSpec("aws_route_table", "network", "ec2", "rtb", ("vpc_id",)),
    ResourceTypeSpec("aws_security_group", "network", "ec2", "sg", ("vpc_id",)),
    # identity / storage
    ResourceTypeSpec(
        "aws_iam_role", "identity", "iam", "role", ("assume_role_policy",), ("unique_id",)
    ),
    ResourceTypeSpec(
        "aws_s3_bucket", "storage", "s3", "bucket", ("bucket",), ("bucket_domain_name",)
    ),
    # registry
    ResourceTypeSpec(
        "aws_ecr_repository", "registry", "ecr", "repo", ("name",), ("repository_url",)
    ),
    # build/deploy pipeline
    ResourceTypeSpec(
        "aws_codebuild_project",
        "pipeline",
        "codebuild",
        "build",
        ("name", "service_role", "source"),
    ),
    ResourceTypeSpec(
        "aws_codepipeline", "pipeline", "codepipeline", "pipeline", ("name", "role_arn", "stages")
    ),
    # compute
    ResourceTypeSpec("aws_ecs_cluster", "cluster", "ecs", "cluster", ("name",)),
    ResourceTypeSpec(
        "aws_ecs_task_definition",
        "service",
        "ecs",
        "taskdef",
        ("family", "container_definitions"),
        ("revision",),
    ),
    ResourceTypeSpec(
        "aws_ecs_service", "service", "ecs", "service", ("name", "cluster", "task_definition")
    ),
    # load balancing
    ResourceTypeSpec(
        "aws_lb", "load-balancer", "elasticloadbalancing", "lb", ("subnets",), ("dns_name",)
    ),
    ResourceTypeSpec(
        "aws_lb_target_group",
        "load-balancer",
        "elasticloadbalancing",
        "tg",
        ("port", "protocol", "vpc_id"),
    ),
    ResourceTypeSpec(
        "aws_lb_listener",
        "load-balancer",
        "elasticloadbalancing",
        "listener",
        ("load_balancer_arn", "port", "default_action"),
    ),
    # autoscaling
    ResourceTypeSpec(
        "aws_appautoscaling_target",
        "autoscaling",
        "application-autoscaling",
        "target",
        ("resource_id", "min_capacity", "max_capacity"),
    ),
    ResourceTypeSpec(
        "aws_appautoscaling_policy",
        "autoscaling",
        "application-autoscaling",
        "policy",
        ("resource_id", "policy_type"),
    ),
)


def catalog_by_type() -> dict[str, ResourceTypeSpec]:
    return {spec.resource_type: spec for spec in CATALOG}
