"""Resource type registry for provider dispatch."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from infragraph.engine.errors import UnknownResourceTypeError

if TYPE_CHECKING:
    from infragraph.engine.providers import ResourceProvider

_TYPE_RE = re.compile(r"^[a-z][a-z0-9_]*$")


class ProviderRegistry:
    """Registry mapping resource_type -> provider."""

    def __init__(self) -> None:
        self._providers: dict[str, ResourceProvider] = {}

    def register(
        self, resource_type: str, provider: ResourceProvider, *, replace: bool = False
    ) -> None:
        if not _TYPE_RE.match(resource_type):
            raise ValueError(f"Invalid resource type name: {resource_type!r}")

        if resource_type in self._providers and not replace:
            raise ValueError(f"Resource type already registered: {resource_type}")

        self._providers[resource_type] = provider

    def get(self, resource_type: str) -> ResourceProvider:
        try:
            return self._providers[resource_type]
        except KeyError as e:
            raise UnknownResourceTypeError(resource_type) from e

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._providers

    @property
    def resource_types(self) -> list[str]:
        return sorted(self._providers)
