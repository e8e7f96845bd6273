"""Resource declarations."""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from infragraph.resources.expressions import Reference, find_references, split_address

DEPENDS_ON_KEY = "depends_on"


class ResourceDeclaration(BaseModel):
    """One declared resource: identity plus attribute expressions.

    Declarations are pure data - they define the desired state.
    Providers know how to create, update and delete them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    resource_type: str = Field(pattern=r"^[a-z][a-z0-9_]*$")
    name: str = Field(pattern=r"^[A-Za-z0-9_-]+$")
    attributes: dict[str, Any] = Field(default_factory=dict)
    depends_on: tuple[str, ...] = ()

    @field_validator("depends_on")
    @classmethod
    def _valid_addresses(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for address in v:
            split_address(address)
        return v

    @field_validator("attributes")
    @classmethod
    def _no_reserved_keys(cls, v: dict[str, Any]) -> dict[str, Any]:
        if DEPENDS_ON_KEY in v:
            raise ValueError(f"'{DEPENDS_ON_KEY}' is reserved and cannot be an attribute")
        # Surface malformed reference tokens at load time.
        find_references(v)
        return v

    @computed_field
    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., 'aws_vpc.main')."""
        return f"{self.resource_type}.{self.name}"

    @classmethod
    def from_address(cls, address: str, body: dict[str, Any] | None) -> Self:
        """Build a declaration from a ``{address: body}`` entry of the declaration file."""
        resource_type, name = split_address(address)
        attributes = dict(body or {})
        depends_on = attributes.pop(DEPENDS_ON_KEY, None) or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]
        return cls(
            resource_type=resource_type,
            name=name,
            attributes=attributes,
            depends_on=tuple(depends_on),
        )

    def references(self) -> list[Reference]:
        """Distinct references in attribute expressions, in document order."""
        seen: set[Reference] = set()
        refs: list[Reference] = []
        for ref in find_references(self.attributes):
            if ref not in seen:
                seen.add(ref)
                refs.append(ref)
        return refs

    def dependency_addresses(self) -> list[str]:
        """Addresses this declaration depends on: explicit ``depends_on`` then references."""
        deps: list[str] = []
        for address in [*self.depends_on, *(r.address for r in self.references())]:
            if address not in deps:
                deps.append(address)
        return deps
