"""Engine-facing resource provider interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from infragraph.core.state import ResourceInstance
    from infragraph.resources.base import ResourceDeclaration


@dataclass(frozen=True)
class ProviderContext:
    """Context passed to providers."""

    region: str = "us-east-1"
    account_id: str = "000000000000"


@dataclass(frozen=True)
class ProviderResult:
    """What a provider reports after creating a resource."""

    id: str
    outputs: dict[str, Any] = field(default_factory=dict)


class ResourceProvider:
    """Base class for resource providers.

    Providers translate resolved attributes into cloud API calls.
    Subclass and override the CRUD methods. ``validate`` and ``read`` are
    optional. Any exception raised by a CRUD method fails that one action;
    retries, if wanted, belong inside the provider.
    """

    def validate(self, ctx: ProviderContext, declaration: ResourceDeclaration) -> list[str]:
        """Single-resource validation of the declared expressions.

        Return list of error messages (empty = valid).
        """
        _ = ctx, declaration
        return []

    def read(self, ctx: ProviderContext, prior: ResourceInstance) -> dict[str, Any] | None:
        """Read current attributes. Return None if the resource no longer exists.

        The default assumes nothing changed outside of this tool.
        """
        _ = ctx
        return dict(prior.attributes)

    def create(self, ctx: ProviderContext, address: str, attrs: dict[str, Any]) -> ProviderResult:
        """Create the resource. Return its identifier and outputs."""
        raise NotImplementedError

    def update(
        self, ctx: ProviderContext, prior: ResourceInstance, attrs: dict[str, Any]
    ) -> dict[str, Any]:
        """Update the resource in place. Return its outputs."""
        raise NotImplementedError

    def delete(self, ctx: ProviderContext, prior: ResourceInstance) -> None:
        """Delete the resource."""
        raise NotImplementedError
